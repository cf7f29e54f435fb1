"""
Reconnect Throttler

Collapses bursts of reconnect requests into a single trailing run per
cooldown window.
"""

import asyncio
from collections.abc import Awaitable, Callable

from neptun_smart.common.config import RECONNECT_COOLDOWN_S
from neptun_smart.common.logging_setup import get_service_logger

logger = get_service_logger("device.throttle")


class ReconnectThrottler:
    """
    Time-based debounce for reconnect attempts.

    The first request arms one pending run that fires after the cooldown.
    Requests that arrive while a run is pending are folded into it. The
    pending slot is released just before the action runs, so a failure
    reported by the action itself arms the next window.
    """

    def __init__(
        self,
        action: Callable[[], Awaitable[None]],
        cooldown_s: float = RECONNECT_COOLDOWN_S,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._action = action
        self._cooldown_s = cooldown_s
        self._sleep = sleep
        self._pending: asyncio.Task | None = None
        self._active: asyncio.Task | None = None

        self.stats = {
            "requests": 0,
            "collapsed": 0,
            "executions": 0,
            "failures": 0,
        }

    @property
    def cooldown_s(self) -> float:
        return self._cooldown_s

    @property
    def pending(self) -> bool:
        return self._pending is not None and not self._pending.done()

    def request_reconnect(self) -> bool:
        """
        Ask for a reconnect.

        Returns True if this call armed a new run, False if it was folded
        into the one already pending. Must be called from the event loop.
        """
        self.stats["requests"] += 1

        if self.pending:
            self.stats["collapsed"] += 1
            return False

        self._pending = asyncio.get_running_loop().create_task(self._run())
        logger.debug(f"Reconnect scheduled in {self._cooldown_s:.0f}s")
        return True

    def cancel(self) -> None:
        """Drop a pending run and stop one that is already executing"""
        if self.pending:
            self._pending.cancel()
        self._pending = None

        # A run cancelling itself (disconnect from inside the action) finishes normally
        active = self._active
        if active is not None and not active.done() and active is not asyncio.current_task():
            active.cancel()
        self._active = None

    async def _run(self) -> None:
        await self._sleep(self._cooldown_s)

        self._pending = None
        self._active = asyncio.current_task()
        self.stats["executions"] += 1

        try:
            await self._action()
        except Exception as e:
            self.stats["failures"] += 1
            logger.error(f"Reconnect attempt failed: {e}", exc_info=True)
        finally:
            if self._active is asyncio.current_task():
                self._active = None
