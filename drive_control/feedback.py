"""Scalar feedback controllers used by every motion primitive.

This module provides:
- ``Pid``: proportional-integral-derivative loop over a caller-supplied
  timestep.
- ``MotorController``: static/velocity/acceleration feedforward with a
  ``Pid`` correction on top, for closed-loop motor velocity control.
"""

import math
import time
from typing import Callable, Dict, Optional

from .config import FEEDFORWARD_DEADBAND


class Pid:
    """PID feedback controller.

    Control law:
        output = kp * e + ki * integral(e dt) + kd * de/dt

    The integral is unbounded and is never cleared automatically. Repeated
    short calls on one instance accumulate integral across calls; call
    ``reset()`` between unrelated motions or clamp the returned command.

    Attributes:
        kp: Proportional gain.
        ki: Integral gain.
        kd: Derivative gain.
        integral: Accumulated ``error * dt``.
        prev_error: Error seen by the previous ``output`` call.
    """

    def __init__(self, kp: float, ki: float = 0.0, kd: float = 0.0):
        self.kp = kp
        self.ki = ki
        self.kd = kd

        self.integral: float = 0.0
        self.prev_error: Optional[float] = None

    @classmethod
    def from_gains(cls, gains) -> "Pid":
        """Build from a ``(kp, ki, kd)`` tuple as stored in ``config``."""
        kp, ki, kd = gains
        return cls(kp, ki, kd)

    def output(self, error: float, dt: float) -> float:
        """Compute the control output for ``error`` after ``dt`` seconds.

        Args:
            error: Current error (target - measured).
            dt: Time since the previous call (seconds). A non-positive
                timestep contributes nothing to the integral and yields a
                zero derivative instead of dividing by zero.

        Returns:
            Unclamped control output.
        """
        if dt > 0:
            self.integral += error * dt
            derivative = 0.0 if self.prev_error is None else (error - self.prev_error) / dt
        else:
            derivative = 0.0

        self.prev_error = error

        return self.kp * error + self.ki * self.integral + self.kd * derivative

    def reset(self) -> None:
        """Clear the integral and derivative history."""
        self.integral = 0.0
        self.prev_error = None

    def restart(self) -> None:
        """Forget the previous error so a new motion starts with zero derivative.

        The integral is kept.
        """
        self.prev_error = None

    def get_diagnostics(self) -> Dict[str, float]:
        return {
            "kp": self.kp,
            "ki": self.ki,
            "kd": self.kd,
            "integral": self.integral,
            "prev_error": 0.0 if self.prev_error is None else self.prev_error,
        }


class MotorController:
    """Feedforward plus PID velocity controller for a single motor.

    Control law:
        ff = ks * sign(target) + kv * target + ka * acceleration
        output = ff + pid(target - actual)

    Feedforward is suppressed for targets within ``FEEDFORWARD_DEADBAND`` of
    zero so that ``ks`` does not chatter when commanded to stop.

    The timestep is measured internally between calls with ``clock``.
    """

    def __init__(
        self,
        pid: Pid,
        ks: float = 0.0,
        kv: float = 0.0,
        ka: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.pid = pid
        self.ks = ks
        self.kv = kv
        self.ka = ka
        self._clock = clock
        self._last_time: Optional[float] = None

    def feedforward(self, target: float, acceleration: float = 0.0) -> float:
        """Open-loop voltage predicted to hold ``target``."""
        if abs(target) <= FEEDFORWARD_DEADBAND:
            return 0.0
        return self.ks * math.copysign(1.0, target) + self.kv * target + self.ka * acceleration

    def output(self, target: float, actual: float, acceleration: float = 0.0) -> float:
        """Compute the motor command for a velocity target.

        Args:
            target: Target velocity (RPM).
            actual: Measured velocity (RPM).
            acceleration: Target acceleration for the ``ka`` term (RPM/s).

        Returns:
            Motor voltage command (unclamped).
        """
        now = self._clock()
        dt = 0.0 if self._last_time is None else now - self._last_time
        self._last_time = now

        return self.feedforward(target, acceleration) + self.pid.output(target - actual, dt)

    def reset(self) -> None:
        self.pid.reset()
        self._last_time = None
