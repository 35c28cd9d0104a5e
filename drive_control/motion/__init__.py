"""Closed-loop motion primitives.

Every primitive reads the drivetrain's pose, feeds an error through its
controllers, writes voltages (or velocities) back, and stops on its settle
condition or its timeout. The last write of every call is zero voltage.
"""

from .base import DEFAULT_OPTIONS, Direction, MotionOptions, MotionResult
from .linear import Linear
from .move_to import MoveTo, SeekError, seek_error
from .ramsete import Ramsete
from .swing import Swing
from .turn import Turn

__all__ = [
    "DEFAULT_OPTIONS",
    "Direction",
    "MotionOptions",
    "MotionResult",
    "Linear",
    "MoveTo",
    "SeekError",
    "seek_error",
    "Ramsete",
    "Swing",
    "Turn",
]
