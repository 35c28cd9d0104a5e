"""Wall-clock time source for control loops.

Every loop in the system reads time and suspends through a clock object so
the same code runs in real time on the robot and in virtual time under
``sim.SimulatedClock``.
"""

import asyncio
import time


class Clock:
    """Monotonic wall clock with cooperative ``asyncio`` sleeps."""

    def now(self) -> float:
        """Current time (seconds)."""
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        """Suspend the calling coroutine for ``seconds``."""
        await asyncio.sleep(seconds)
