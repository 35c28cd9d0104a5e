"""Linear motion: drive a signed distance along the current heading."""

import logging
from typing import Optional

from ..config import CONTROL_PERIOD, LINEAR_GAINS, LINEAR_TOLERANCE, LINEAR_VELOCITY_TOLERANCE
from ..drivetrain import Drivetrain
from ..feedback import Pid
from ..geometry import Vec2
from ..timing import Clock
from .base import DEFAULT_OPTIONS, Direction, MotionOptions, MotionResult, clamp


class Linear:
    """Drive straight by a signed distance.

    Progress is the integral of the pose's forward velocity since the call
    started, so the primitive is unaffected by a ``set_pose`` mid-motion.

    Settled when ``|error| < tolerance`` and ``|forward_velocity| <
    velocity_tolerance``. Chained calls settle at twice the tolerance and
    ignore velocity.

    The PID integral is carried across calls on the same instance. Call
    ``pid.reset()`` between unrelated motions if ``ki`` is non-zero.
    """

    def __init__(
        self,
        pid: Optional[Pid] = None,
        tolerance: float = LINEAR_TOLERANCE,
        velocity_tolerance: float = LINEAR_VELOCITY_TOLERANCE,
        clock: Optional[Clock] = None,
        period: float = CONTROL_PERIOD,
    ):
        if tolerance <= 0 or velocity_tolerance <= 0:
            raise ValueError("Linear tolerances must be positive")
        if period <= 0:
            raise ValueError(f"Control period must be positive, got {period}")

        self.pid = pid if pid is not None else Pid.from_gains(LINEAR_GAINS)
        self.tolerance = tolerance
        self.velocity_tolerance = velocity_tolerance
        self.clock = clock if clock is not None else Clock()
        self.period = period

    def is_settled(self, error: float, velocity: float, options: MotionOptions) -> bool:
        if options.chain:
            return abs(error) < options.tolerance(self.tolerance)
        return abs(error) < self.tolerance and abs(velocity) < self.velocity_tolerance

    async def drive_to_point(
        self,
        drivetrain: Drivetrain,
        point: Vec2,
        options: MotionOptions = DEFAULT_OPTIONS,
        direction: Direction = Direction.FORWARD,
    ) -> MotionResult:
        """Drive the straight-line distance to ``point`` along the current heading.

        The robot is not steered; turn toward the point first.
        """
        distance = drivetrain.pose().distance(point)
        if direction.is_reverse:
            distance = -distance
        return await self.drive_distance(drivetrain, distance, options)

    async def drive_distance(
        self,
        drivetrain: Drivetrain,
        target: float,
        options: MotionOptions = DEFAULT_OPTIONS,
    ) -> MotionResult:
        """Drive ``target`` inches (negative drives backwards)."""
        self.pid.restart()
        start = self.clock.now()
        prev_time = start
        traveled = 0.0
        error = target
        settled = False

        logging.debug(f"Linear: driving {target:.2f} in")

        while True:
            await self.clock.sleep(self.period)
            now = self.clock.now()
            dt = now - prev_time
            prev_time = now
            elapsed = now - start

            pose = drivetrain.pose()
            traveled += pose.forward_velocity * dt
            error = target - traveled

            if self.is_settled(error, pose.forward_velocity, options):
                settled = True
                logging.info(f"Linear settled in {elapsed:.2f}s, error {error:.2f} in")
                break

            if options.timed_out(elapsed):
                logging.warning(f"Linear timed out after {elapsed:.2f}s, error {error:.2f} in")
                break

            output = clamp(self.pid.output(error, dt), options.max_voltage)
            drivetrain.set_voltages(output, output)

        drivetrain.set_voltages(0.0, 0.0)
        return MotionResult(settled=settled, elapsed=self.clock.now() - start, error=error)
