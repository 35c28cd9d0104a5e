"""
Differential drive kinematic model.

This module converts between robot velocities, wheel surface speeds and
motor speeds for a differential drive robot.
"""

import math
from typing import Tuple

from .config import DRIVE_WHEEL_DIAMETER, EXTERNAL_GEARING, MAX_MOTOR_RPM, TRACK_WIDTH


def inverse_kinematics(
    v_cmd: float, omega_cmd: float, track_width: float = TRACK_WIDTH
) -> Tuple[float, float]:
    """
    Compute wheel speeds from desired linear and angular velocities.

    For a differential drive robot:
        v_left = v - (L/2) * omega
        v_right = v + (L/2) * omega

    where L is the track width.

    Args:
        v_cmd: Desired linear velocity of the robot center (inches/second)
        omega_cmd: Desired angular velocity (radians/second)
                   Positive omega results in counter-clockwise rotation
        track_width: Distance between the drive wheels (inches)

    Returns:
        Tuple[float, float]: (v_left, v_right) wheel speeds in inches/second.
        Not clamped; see ``normalize_velocities``.
    """
    half_track = track_width / 2.0
    return v_cmd - half_track * omega_cmd, v_cmd + half_track * omega_cmd


def forward_kinematics(
    v_left: float, v_right: float, track_width: float = TRACK_WIDTH
) -> Tuple[float, float]:
    """Robot (linear, angular) velocity from wheel speeds."""
    return (v_left + v_right) / 2.0, (v_right - v_left) / track_width


def to_motor_rpm(
    in_per_sec: float,
    wheel_diameter: float = DRIVE_WHEEL_DIAMETER,
    gearing: float = EXTERNAL_GEARING,
) -> float:
    """Motor speed (RPM) that gives a wheel surface speed of ``in_per_sec``."""
    return in_per_sec * 60.0 / (math.pi * wheel_diameter * gearing)


def to_wheel_speed(
    rpm: float,
    wheel_diameter: float = DRIVE_WHEEL_DIAMETER,
    gearing: float = EXTERNAL_GEARING,
) -> float:
    """Wheel surface speed (inches/second) of a motor turning at ``rpm``."""
    return rpm * math.pi * wheel_diameter * gearing / 60.0


def normalize_velocities(
    left: float, right: float, limit: float = MAX_MOTOR_RPM
) -> Tuple[float, float]:
    """Scale both sides down together if either exceeds ``limit``.

    Unlike clamping each side, this preserves the left/right ratio and with
    it the curvature of the commanded arc.
    """
    larger = max(abs(left), abs(right)) / limit
    if larger > 1.0:
        return left / larger, right / larger
    return left, right
