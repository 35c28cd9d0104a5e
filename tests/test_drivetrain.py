import math

import numpy as np
import pytest

from drive_control.drivetrain import Drivetrain, apply_curve
from drive_control.geometry import Pose
from drive_control.model import (
    forward_kinematics,
    inverse_kinematics,
    normalize_velocities,
    to_motor_rpm,
    to_wheel_speed,
)
from drive_control.sim import Simulation


def test_apply_curve_is_odd_symmetric() -> None:
    for exponent in (1, 2, 3, 4):
        for power in np.linspace(-1.0, 1.0, 21):
            assert np.isclose(apply_curve(-power, exponent), -apply_curve(power, exponent))
        assert np.isclose(apply_curve(1.0, exponent), 1.0)
        assert np.isclose(apply_curve(-1.0, exponent), -1.0)


def test_apply_curve_flattens_center() -> None:
    assert apply_curve(0.5, 1) == 0.5
    assert np.isclose(apply_curve(0.5, 2), 0.25)
    assert np.isclose(apply_curve(-0.5, 2), -0.25)
    assert np.isclose(apply_curve(-0.5, 3), -0.125)
    with pytest.raises(ValueError):
        apply_curve(0.5, 0)


def test_kinematics_round_trip() -> None:
    left, right = inverse_kinematics(10.0, 1.0, 12.0)
    assert (left, right) == (4.0, 16.0)
    v, omega = forward_kinematics(left, right, 12.0)
    assert np.isclose(v, 10.0)
    assert np.isclose(omega, 1.0)


def test_motor_rpm_conversion() -> None:
    # One wheel circumference per second
    speed = math.pi * 3.25
    assert np.isclose(to_motor_rpm(speed, 3.25, 1.0), 60.0)
    assert np.isclose(to_motor_rpm(speed, 3.25, 0.5), 120.0)
    assert np.isclose(to_wheel_speed(60.0, 3.25, 1.0), speed)


def test_normalize_preserves_ratio() -> None:
    left, right = normalize_velocities(900.0, -300.0, 450.0)
    assert np.isclose(left, 450.0)
    assert np.isclose(right, -150.0)
    assert normalize_velocities(100.0, 200.0, 450.0) == (100.0, 200.0)


def test_set_voltages_clamps(simulation: Simulation) -> None:
    simulation.drivetrain.set_voltages(20.0, -30.0)
    assert simulation.drivetrain.voltages() == (12.0, -12.0)


def test_arcade_and_tank(simulation: Simulation) -> None:
    drivetrain = simulation.drivetrain
    drivetrain.arcade(0.5, 0.0)
    assert drivetrain.voltages() == (6.0, 6.0)

    # Positive turn is clockwise: left side faster
    drivetrain.arcade(0.0, 0.5)
    left, right = drivetrain.voltages()
    assert np.isclose(left, 3.0)
    assert np.isclose(right, -3.0)

    drivetrain.arcade(1.0, 1.0)
    assert drivetrain.voltages() == (12.0, 0.0)

    drivetrain.tank(-0.25, 1.0)
    assert drivetrain.voltages() == (-3.0, 12.0)


def test_pose_passthrough(simulation: Simulation) -> None:
    drivetrain = simulation.drivetrain
    drivetrain.set_pose(Pose(12.0, 24.0, math.pi))
    assert drivetrain.pose() == Pose(12.0, 24.0, math.pi)
    assert simulation.odometry.pose() == Pose(12.0, 24.0, math.pi)


def test_velocity_readback(simulation: Simulation) -> None:
    drivetrain = simulation.drivetrain
    drivetrain.set_voltages(-6.0, 6.0)
    simulation.clock.advance(1.0)
    assert np.isclose(drivetrain.linear_velocity(), 0.0, atol=1e-9)
    assert drivetrain.angular_velocity() > 0.0
    assert np.isclose(drivetrain.angular_velocity(), simulation.robot.angular_velocity)


def test_velocity_mode_reaches_target(simulation: Simulation) -> None:
    drivetrain = simulation.drivetrain
    drivetrain.set_velocity(200.0, 200.0)
    simulation.clock.advance(1.0)
    assert np.isclose(simulation.robot.left_motor.velocity(), 200.0, rtol=1e-3)
    assert np.isclose(drivetrain.linear_velocity(), to_wheel_speed(200.0), rtol=1e-3)


def test_rejects_bad_geometry(simulation: Simulation) -> None:
    with pytest.raises(ValueError):
        Drivetrain(simulation.drivetrain.left, simulation.drivetrain.right, simulation.odometry, track_width=0.0)
