"""Point seeking with heading blending."""

import logging
import math
from dataclasses import dataclass
from typing import Optional

from ..config import (
    MOTOR_WRITE_INTERVAL,
    MOVE_TO_ANGULAR_GAINS,
    MOVE_TO_LINEAR_GAINS,
    MOVE_TO_TOLERANCE,
    MOVE_TO_TURN_THRESHOLD,
    MOVE_TO_VELOCITY_TOLERANCE,
)
from ..drivetrain import Drivetrain
from ..feedback import Pid
from ..geometry import Pose, Vec2, wrap_angle
from ..timing import Clock
from .base import DEFAULT_OPTIONS, Direction, MotionOptions, MotionResult, clamp


@dataclass(frozen=True)
class SeekError:
    """Geometry of the robot relative to a MoveTo target.

    Attributes:
        distance: Straight-line distance to the target (inches).
        bearing: Heading the robot should face (radians, wrapped). For a
            reverse move this is the bearing to the target plus pi.
        heading_error: ``wrap(bearing - heading)`` (radians).
    """

    distance: float
    bearing: float
    heading_error: float


def seek_error(pose: Pose, target: Vec2, direction: Direction = Direction.FORWARD) -> SeekError:
    bearing = pose.angular_distance(target)
    if direction.is_reverse:
        bearing += math.pi
    bearing = wrap_angle(bearing)
    return SeekError(
        distance=pose.distance(target),
        bearing=bearing,
        heading_error=wrap_angle(bearing - pose.heading),
    )


class MoveTo:
    """Drive to a point while steering toward it.

    Each tick:
    1. Linear command from the distance to the target, scaled by
       ``cos(heading_error)``. Translation fades out while the robot is
       facing away and reverses once the target is behind it.
    2. Angular command from the heading error to the bearing. Inside
       ``turn_threshold`` the bearing becomes unstable, so the heading
       latched on entering the threshold is held instead.
    3. ``left = linear - angular``, ``right = linear + angular``.

    In reverse the robot backs toward the target: the bearing is offset by
    pi and the linear command is negated.
    """

    def __init__(
        self,
        linear: Optional[Pid] = None,
        angular: Optional[Pid] = None,
        tolerance: float = MOVE_TO_TOLERANCE,
        velocity_tolerance: float = MOVE_TO_VELOCITY_TOLERANCE,
        turn_threshold: float = MOVE_TO_TURN_THRESHOLD,
        clock: Optional[Clock] = None,
        period: float = MOTOR_WRITE_INTERVAL,
    ):
        if tolerance <= 0 or velocity_tolerance <= 0:
            raise ValueError("MoveTo tolerances must be positive")
        if turn_threshold < 0:
            raise ValueError(f"Turn threshold must be non-negative, got {turn_threshold}")
        if period <= 0:
            raise ValueError(f"Control period must be positive, got {period}")

        self.linear = linear if linear is not None else Pid.from_gains(MOVE_TO_LINEAR_GAINS)
        self.angular = angular if angular is not None else Pid.from_gains(MOVE_TO_ANGULAR_GAINS)
        self.tolerance = tolerance
        self.velocity_tolerance = velocity_tolerance
        self.turn_threshold = turn_threshold
        self.clock = clock if clock is not None else Clock()
        self.period = period

    def is_settled(self, distance: float, velocity: float, options: MotionOptions) -> bool:
        if options.chain:
            return distance < options.tolerance(self.tolerance)
        return distance < self.tolerance and abs(velocity) < self.velocity_tolerance

    async def move_to_point(
        self,
        drivetrain: Drivetrain,
        target: Vec2,
        options: MotionOptions = DEFAULT_OPTIONS,
        direction: Direction = Direction.FORWARD,
    ) -> MotionResult:
        self.linear.restart()
        self.angular.restart()
        start = self.clock.now()
        prev_time = start
        held_heading: Optional[float] = None
        distance = drivetrain.pose().distance(target)
        settled = False

        logging.debug(f"MoveTo: ({target.x:.2f}, {target.y:.2f}) {direction.value}")

        while True:
            await self.clock.sleep(self.period)
            now = self.clock.now()
            dt = now - prev_time
            prev_time = now
            elapsed = now - start

            pose = drivetrain.pose()
            seek = seek_error(pose, target, direction)
            distance = seek.distance

            if self.is_settled(distance, pose.forward_velocity, options):
                settled = True
                logging.info(f"MoveTo settled in {elapsed:.2f}s, distance {distance:.2f} in")
                break

            if options.timed_out(elapsed):
                logging.warning(
                    f"MoveTo timed out after {elapsed:.2f}s, distance {distance:.2f} in"
                )
                break

            linear = clamp(self.linear.output(distance, dt), options.max_voltage)
            linear *= math.cos(seek.heading_error)
            if direction.is_reverse:
                linear = -linear

            if distance < self.turn_threshold:
                if held_heading is None:
                    held_heading = pose.heading
                heading_error = wrap_angle(held_heading - pose.heading)
            else:
                heading_error = seek.heading_error
            angular = clamp(self.angular.output(heading_error, dt), options.max_voltage)

            logging.debug(
                f"MoveTo: d={distance:.2f} herr={math.degrees(heading_error):.1f} "
                f"lin={linear:.2f} ang={angular:.2f}"
            )
            drivetrain.set_voltages(linear - angular, linear + angular)

        drivetrain.set_voltages(0.0, 0.0)
        return MotionResult(settled=settled, elapsed=self.clock.now() - start, error=distance)
