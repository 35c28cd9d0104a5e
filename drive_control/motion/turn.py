"""Point turns to a heading or toward a point."""

import logging
import math
from typing import Optional

from ..config import ANGULAR_GAINS, MOTOR_WRITE_INTERVAL, TURN_TOLERANCE
from ..drivetrain import Drivetrain
from ..feedback import Pid
from ..geometry import Vec2, wrap_angle
from ..timing import Clock
from .base import DEFAULT_OPTIONS, Direction, MotionOptions, MotionResult, clamp


class Turn:
    """Rotate in place until the wrapped heading error is within tolerance."""

    def __init__(
        self,
        pid: Optional[Pid] = None,
        tolerance: float = TURN_TOLERANCE,
        clock: Optional[Clock] = None,
        period: float = MOTOR_WRITE_INTERVAL,
    ):
        if tolerance <= 0:
            raise ValueError(f"Turn tolerance must be positive, got {tolerance}")
        if period <= 0:
            raise ValueError(f"Control period must be positive, got {period}")

        self.pid = pid if pid is not None else Pid.from_gains(ANGULAR_GAINS)
        self.tolerance = tolerance
        self.clock = clock if clock is not None else Clock()
        self.period = period

    async def turn_to_point(
        self,
        drivetrain: Drivetrain,
        point: Vec2,
        options: MotionOptions = DEFAULT_OPTIONS,
        direction: Direction = Direction.FORWARD,
    ) -> MotionResult:
        """Face ``point``, or face away from it when ``direction`` is REVERSE."""
        target = drivetrain.pose().angular_distance(point)
        if direction.is_reverse:
            target += math.pi
        return await self.turn_to(drivetrain, wrap_angle(target), options)

    async def turn_to(
        self,
        drivetrain: Drivetrain,
        target: float,
        options: MotionOptions = DEFAULT_OPTIONS,
    ) -> MotionResult:
        """Turn to the absolute heading ``target`` (radians) the short way round."""
        self.pid.restart()
        start = self.clock.now()
        prev_time = start
        tolerance = options.tolerance(self.tolerance)
        error = wrap_angle(target - drivetrain.pose().heading)
        settled = False

        logging.debug(f"Turn: to {math.degrees(target):.1f} deg")

        while True:
            await self.clock.sleep(self.period)
            now = self.clock.now()
            dt = now - prev_time
            prev_time = now
            elapsed = now - start

            error = wrap_angle(target - drivetrain.pose().heading)

            if abs(error) < tolerance:
                settled = True
                logging.info(f"Turn settled in {elapsed:.2f}s, error {math.degrees(error):.2f} deg")
                break

            if options.timed_out(elapsed):
                logging.warning(
                    f"Turn timed out after {elapsed:.2f}s, error {math.degrees(error):.2f} deg"
                )
                break

            output = clamp(self.pid.output(error, dt), options.max_voltage)
            drivetrain.set_voltages(-output, output)

        drivetrain.set_voltages(0.0, 0.0)
        return MotionResult(settled=settled, elapsed=self.clock.now() - start, error=error)
