"""
Neptun Smart

Modbus-TCP communication core for the Neptun Smart water leak
prevention controller.
"""

__version__ = "1.0.0"
