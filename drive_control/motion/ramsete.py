r"""Ramsete trajectory tracking.

Given the desired sample :math:`(x_d, y_d, \theta_d, v_d, \omega_d)` and the
current pose, the error is expressed in the robot frame:

.. math::
   e_x, e_y = R(-\theta) \, (p_d - p), \quad e_\theta = wrap(\theta_d - \theta)

and the commands are

.. math::
   k = 2 \zeta \sqrt{\omega_d^2 + b v_d^2}

   v = v_d \cos e_\theta + k e_x

   \omega = \omega_d + k e_\theta + b v_d \, \mathrm{sinc}(e_\theta) \, e_y

The trajectory is indexed by distance traveled, accumulated from the pose
each tick, rather than by time.
"""

import logging
import math
from typing import Optional, Tuple

from ..config import (
    DRIVE_WHEEL_DIAMETER,
    EXTERNAL_GEARING,
    MAX_MOTOR_RPM,
    MOTOR_WRITE_INTERVAL,
    RAMSETE_B,
    RAMSETE_ZETA,
    TRACK_WIDTH,
)
from ..drivetrain import Drivetrain
from ..geometry import Pose, wrap_angle
from ..model import inverse_kinematics, normalize_velocities, to_motor_rpm
from ..path import Trajectory, TrajectoryPoint
from ..timing import Clock
from .base import DEFAULT_OPTIONS, MotionOptions, MotionResult


def sinc(x: float) -> float:
    """``sin(x)/x`` with the removable singularity at zero filled in."""
    if abs(x) < 1e-9:
        return 1.0
    return math.sin(x) / x


class Ramsete:
    """Nonlinear trajectory tracker for a differential drive.

    Attributes:
        b: Convergence gain (1/inch^2). Larger is more aggressive.
        zeta: Damping ratio in (0, 1).
        track_width: Distance between the drive wheels (inches).
        wheel_diameter: Powered wheel diameter (inches).
        gearing: External gear ratio (wheel rev / motor rev).
        max_rpm: Motor speed limit used to normalize both sides together.
    """

    def __init__(
        self,
        b: float = RAMSETE_B,
        zeta: float = RAMSETE_ZETA,
        track_width: float = TRACK_WIDTH,
        wheel_diameter: float = DRIVE_WHEEL_DIAMETER,
        gearing: float = EXTERNAL_GEARING,
        max_rpm: float = MAX_MOTOR_RPM,
        clock: Optional[Clock] = None,
        period: float = MOTOR_WRITE_INTERVAL,
    ):
        if b <= 0:
            raise ValueError(f"Ramsete b must be positive, got {b}")
        if not 0.0 < zeta < 1.0:
            raise ValueError(f"Ramsete zeta must be in (0, 1), got {zeta}")

        self.b = b
        self.zeta = zeta
        self.track_width = track_width
        self.wheel_diameter = wheel_diameter
        self.gearing = gearing
        self.max_rpm = max_rpm
        self.clock = clock if clock is not None else Clock()
        self.period = period

    def gain(self, linear_velocity: float, angular_velocity: float) -> float:
        return 2.0 * self.zeta * math.sqrt(angular_velocity**2 + self.b * linear_velocity**2)

    def commands(self, pose: Pose, sample: TrajectoryPoint) -> Tuple[float, float]:
        """Corrected (linear, angular) velocity for one tick."""
        v_d = sample.linear_velocity
        omega_d = sample.angular_velocity
        k = self.gain(v_d, omega_d)

        position_error = (sample.position - pose.position).rotated(-pose.heading)
        heading_error = wrap_angle(sample.heading - pose.heading)

        linear = v_d * math.cos(heading_error) + k * position_error.x
        angular = (
            omega_d
            + k * heading_error
            + self.b * v_d * sinc(heading_error) * position_error.y
        )
        return linear, angular

    def wheel_rpm(
        self, linear: float, angular: float, limit: Optional[float] = None
    ) -> Tuple[float, float]:
        """Per-side motor RPM for a (linear, angular) command, normalized together."""
        left, right = inverse_kinematics(linear, angular, self.track_width)
        return normalize_velocities(
            to_motor_rpm(left, self.wheel_diameter, self.gearing),
            to_motor_rpm(right, self.wheel_diameter, self.gearing),
            self.max_rpm if limit is None else limit,
        )

    async def follow(
        self,
        drivetrain: Drivetrain,
        trajectory: Trajectory,
        options: MotionOptions = DEFAULT_OPTIONS,
    ) -> MotionResult:
        """Track ``trajectory`` until the final sample is reached or the timeout passes."""
        start = self.clock.now()
        prev_position = drivetrain.pose().position
        # The first sample has zero velocity, start on the second
        distance = trajectory.profile[1].distance if len(trajectory) > 1 else 0.0
        last = trajectory.last
        settled = False

        logging.debug(f"Ramsete: following {trajectory.length:.1f} in trajectory")

        while True:
            await self.clock.sleep(self.period)
            elapsed = self.clock.now() - start

            pose = drivetrain.pose()
            position = pose.position
            distance += position.distance(prev_position)
            prev_position = position

            sample = trajectory.at(distance)
            if sample == last:
                settled = True
                logging.info(f"Ramsete finished in {elapsed:.2f}s")
                break

            if options.timed_out(elapsed):
                logging.warning(
                    f"Ramsete timed out after {elapsed:.2f}s at {distance:.1f} of "
                    f"{trajectory.length:.1f} in"
                )
                break

            linear, angular = self.commands(pose, sample)
            left, right = self.wheel_rpm(linear, angular, self.max_rpm * options.speed)
            drivetrain.set_velocity(left, right)

        drivetrain.set_voltages(0.0, 0.0)
        error = drivetrain.pose().distance(last.position)
        return MotionResult(settled=settled, elapsed=self.clock.now() - start, error=error)
