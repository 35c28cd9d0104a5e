"""Drivetrain facade.

Owns the left and right motor groups and the active pose source. Motion
primitives talk to the robot only through this class.
"""

import logging
from typing import Tuple

from .config import (
    DRIVE_WHEEL_DIAMETER,
    EXTERNAL_GEARING,
    MAX_VOLTAGE,
    TRACK_WIDTH,
    TURN_CURVE_EXPONENT,
)
from .geometry import Pose
from .hardware import MotorGroup
from .localizer import PoseSource
from .model import to_wheel_speed


def apply_curve(power: float, exponent: int = TURN_CURVE_EXPONENT) -> float:
    """Odd-symmetric polynomial response curve for operator input.

    ``exponent == 1`` is linear. Higher exponents flatten the response near
    zero for fine control while keeping full deflection at +/-1 and the
    sign of the input.
    """
    if exponent < 1:
        raise ValueError(f"Curve exponent must be at least 1, got {exponent}")
    if exponent == 1:
        return power
    return power ** (exponent - 1) * (abs(power) if exponent % 2 == 0 else power)


class Drivetrain:
    """Differential drivetrain: two motor groups plus a pose source.

    Attributes:
        left: Left motor group.
        right: Right motor group.
        pose_source: Anything implementing ``PoseSource``.
        track_width: Distance between the drive wheels (inches).
        wheel_diameter: Powered wheel diameter (inches).
        gearing: External gear ratio (wheel rev / motor rev).
    """

    def __init__(
        self,
        left: MotorGroup,
        right: MotorGroup,
        pose_source: PoseSource,
        track_width: float = TRACK_WIDTH,
        wheel_diameter: float = DRIVE_WHEEL_DIAMETER,
        gearing: float = EXTERNAL_GEARING,
        max_voltage: float = MAX_VOLTAGE,
    ):
        if track_width <= 0:
            raise ValueError(f"Track width must be positive, got {track_width}")
        if wheel_diameter <= 0:
            raise ValueError(f"Wheel diameter must be positive, got {wheel_diameter}")

        self.left = left
        self.right = right
        self.pose_source = pose_source
        self.track_width = track_width
        self.wheel_diameter = wheel_diameter
        self.gearing = gearing
        self.max_voltage = max_voltage

    def _clamp(self, voltage: float) -> float:
        return max(-self.max_voltage, min(self.max_voltage, voltage))

    def set_voltages(self, left: float, right: float) -> None:
        """Write per-side voltages, clamped to the actuator limit."""
        self.left.set_voltage(self._clamp(left))
        self.right.set_voltage(self._clamp(right))

    def set_velocity(self, left: float, right: float) -> None:
        """Command per-side motor velocities (RPM).

        Closed loop through each group's ``MotorController`` if one is
        configured, otherwise the motors' built-in velocity mode.
        """
        self.left.set_velocity(left)
        self.right.set_velocity(right)

    def arcade(self, power: float, turn: float) -> None:
        """Single-stick style mixing.

        Args:
            power: Forward input in [-1, 1].
            turn: Turn input in [-1, 1], positive turns clockwise (stick right).
                Passed through ``apply_curve``.
        """
        turn = apply_curve(turn)
        self.set_voltages(
            (power + turn) * self.max_voltage,
            (power - turn) * self.max_voltage,
        )

    def tank(self, left: float, right: float) -> None:
        """Per-side inputs in [-1, 1]."""
        self.set_voltages(left * self.max_voltage, right * self.max_voltage)

    def pose(self) -> Pose:
        return self.pose_source.pose()

    def set_pose(self, pose: Pose) -> None:
        logging.info(f"Drivetrain pose set to {pose}")
        self.pose_source.set_pose(pose)

    def voltages(self) -> Tuple[float, float]:
        return self.left.voltage(), self.right.voltage()

    def linear_velocity(self) -> float:
        """Mean wheel surface speed from motor readback (inches/second)."""
        rpm = (self.left.velocity() + self.right.velocity()) / 2.0
        return to_wheel_speed(rpm, self.wheel_diameter, self.gearing)

    def angular_velocity(self) -> float:
        """Yaw rate from motor readback (radians/second, counter-clockwise)."""
        rpm_diff = self.right.velocity() - self.left.velocity()
        return to_wheel_speed(rpm_diff, self.wheel_diameter, self.gearing) / self.track_width
