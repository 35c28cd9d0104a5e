"""Swing turns: rotate about a pivot point beside the robot."""

import logging
import math
from typing import Optional

from ..config import CONTROL_PERIOD, SWING_GAINS, SWING_VELOCITY_TOLERANCE, TURN_TOLERANCE
from ..drivetrain import Drivetrain
from ..feedback import Pid
from ..geometry import wrap_angle
from ..model import normalize_velocities
from ..timing import Clock
from .base import DEFAULT_OPTIONS, MotionOptions, MotionResult


class Swing:
    """Turn to a heading while pivoting about a point on the robot's lateral axis.

    ``radius`` is the signed distance from the robot's center to the pivot,
    positive to the robot's left. Each side is driven in proportion to its
    lever arm about the pivot:

        left = output * (radius - track_width/2)
        right = output * (radius + track_width/2)

    so ``radius = track_width/2`` pivots on the left wheel and ``radius = 0``
    is a point turn.
    """

    def __init__(
        self,
        pid: Optional[Pid] = None,
        tolerance: float = TURN_TOLERANCE,
        velocity_tolerance: float = SWING_VELOCITY_TOLERANCE,
        clock: Optional[Clock] = None,
        period: float = CONTROL_PERIOD,
    ):
        if tolerance <= 0 or velocity_tolerance <= 0:
            raise ValueError("Swing tolerances must be positive")
        if period <= 0:
            raise ValueError(f"Control period must be positive, got {period}")

        self.pid = pid if pid is not None else Pid.from_gains(SWING_GAINS)
        self.tolerance = tolerance
        self.velocity_tolerance = velocity_tolerance
        self.clock = clock if clock is not None else Clock()
        self.period = period

    def is_settled(self, error: float, angular_velocity: float, options: MotionOptions) -> bool:
        if options.chain:
            return abs(error) < options.tolerance(self.tolerance)
        return abs(error) < self.tolerance and abs(angular_velocity) < self.velocity_tolerance

    async def swing_to(
        self,
        drivetrain: Drivetrain,
        target: float,
        radius: float,
        options: MotionOptions = DEFAULT_OPTIONS,
    ) -> MotionResult:
        """Swing to the absolute heading ``target`` (radians)."""
        self.pid.restart()
        half_track = drivetrain.track_width / 2.0
        start = self.clock.now()
        prev_time = start
        starting_error = wrap_angle(target - drivetrain.pose().heading)
        error = starting_error
        settled = False

        while True:
            await self.clock.sleep(self.period)
            now = self.clock.now()
            dt = now - prev_time
            prev_time = now
            elapsed = now - start

            pose = drivetrain.pose()
            error = wrap_angle(target - pose.heading)

            if self.is_settled(error, pose.angular_velocity, options):
                settled = True
                logging.info(
                    f"Swing of {math.degrees(starting_error):.1f} deg settled in {elapsed:.2f}s"
                )
                break

            if options.timed_out(elapsed):
                logging.warning(
                    f"Swing of {math.degrees(starting_error):.1f} deg timed out after "
                    f"{elapsed:.2f}s, error {math.degrees(error):.2f} deg"
                )
                break

            output = self.pid.output(error, dt)
            left, right = normalize_velocities(
                output * (radius - half_track),
                output * (radius + half_track),
                options.max_voltage,
            )
            drivetrain.set_voltages(left, right)

        drivetrain.set_voltages(0.0, 0.0)
        return MotionResult(settled=settled, elapsed=self.clock.now() - start, error=error)
