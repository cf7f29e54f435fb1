"""
Virtual Neptun Smart controller for testing without hardware
"""

from .virtual_neptun import VirtualNeptunSmart, WirelessSensor

__all__ = ["VirtualNeptunSmart", "WirelessSensor"]
