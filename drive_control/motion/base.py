"""Types shared by every motion primitive."""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..config import CHAIN_TOLERANCE_SCALE, MAX_VOLTAGE


class Direction(Enum):
    FORWARD = "forward"
    REVERSE = "reverse"

    @property
    def is_reverse(self) -> bool:
        return self is Direction.REVERSE


@dataclass(frozen=True)
class MotionOptions:
    """Per-call execution settings for a motion primitive.

    Passed to each call instead of being stored on the primitive, so one
    call's timeout or speed never leaks into the next.

    Attributes:
        timeout: Give up after this many seconds. None waits until settled.
        speed: Fraction of the maximum voltage the primitive may use, (0, 1].
        chain: Relax the settle condition (distance tolerance doubled,
            velocity ignored) so the next primitive can start without a full stop.
    """

    timeout: Optional[float] = None
    speed: float = 1.0
    chain: bool = False

    def __post_init__(self):
        if self.timeout is not None and not self.timeout > 0:
            raise ValueError(f"Timeout must be positive, got {self.timeout}")
        if not 0.0 < self.speed <= 1.0:
            raise ValueError(f"Speed must be in (0, 1], got {self.speed}")

    @property
    def max_voltage(self) -> float:
        return self.speed * MAX_VOLTAGE

    def tolerance(self, tolerance: float) -> float:
        """Distance tolerance after chaining is applied."""
        return tolerance * CHAIN_TOLERANCE_SCALE if self.chain else tolerance

    def timed_out(self, elapsed: float) -> bool:
        return self.timeout is not None and elapsed >= self.timeout


DEFAULT_OPTIONS = MotionOptions()


@dataclass(frozen=True)
class MotionResult:
    """Outcome of one primitive call.

    Not settling before the timeout is a normal outcome, not an error.

    Attributes:
        settled: True if the settle condition was met.
        elapsed: Run time of the call (seconds).
        error: Final error in the primitive's own unit (inches or radians).
    """

    settled: bool
    elapsed: float
    error: float = math.nan


def clamp(value: float, limit: float) -> float:
    return max(-limit, min(limit, value))
