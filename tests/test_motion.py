import asyncio
import math

import numpy as np
import pytest

from drive_control.geometry import Pose, Vec2, wrap_angle
from drive_control.motion import (
    Direction,
    Linear,
    MotionOptions,
    MoveTo,
    Ramsete,
    Swing,
    Turn,
    seek_error,
)
from drive_control.path import CubicBezier, TrajectoryPoint, generate_trajectory
from drive_control.sim import Simulation, build_simulation

from .fakes import FakeClock, RecordingDrivetrain, ScriptedDrivetrain


def constant_pose(pose: Pose):
    return lambda t: pose


def test_motion_options_validation() -> None:
    with pytest.raises(ValueError):
        MotionOptions(timeout=0.0)
    with pytest.raises(ValueError):
        MotionOptions(speed=0.0)
    with pytest.raises(ValueError):
        MotionOptions(speed=1.5)

    options = MotionOptions(timeout=2.0, speed=0.5, chain=True)
    assert options.max_voltage == 6.0
    assert options.tolerance(0.5) == 1.0
    assert MotionOptions().tolerance(0.5) == 0.5
    assert options.timed_out(2.0)
    assert not options.timed_out(1.99)
    assert not MotionOptions().timed_out(1e9)


def test_linear_settles_on_first_tick_inside_tolerance(fake_clock: FakeClock) -> None:
    """Error shrinks 0.005 in per tick, so settling happens within one tick of the tolerance."""
    drivetrain = ScriptedDrivetrain(fake_clock, constant_pose(Pose(forward_velocity=0.5)))
    linear = Linear(tolerance=0.5, clock=fake_clock, period=0.01)

    result = asyncio.run(linear.drive_distance(drivetrain, 0.6))

    assert result.settled
    assert 0.5 - 0.005 - 1e-9 <= result.error < 0.5
    assert drivetrain.voltage_log[-1] == (0.0, 0.0)


def test_settle_is_checked_before_timeout(fake_clock: FakeClock) -> None:
    drivetrain = ScriptedDrivetrain(fake_clock, constant_pose(Pose()))
    linear = Linear(clock=fake_clock)

    result = asyncio.run(linear.drive_distance(drivetrain, 0.1, MotionOptions(timeout=0.001)))

    assert result.settled
    assert drivetrain.voltage_log == [(0.0, 0.0)]


def test_linear_timeout(fake_clock: FakeClock) -> None:
    drivetrain = ScriptedDrivetrain(fake_clock, constant_pose(Pose()))
    linear = Linear(clock=fake_clock)

    result = asyncio.run(linear.drive_distance(drivetrain, 24.0, MotionOptions(timeout=0.5, speed=0.5)))

    assert not result.settled
    assert result.elapsed >= 0.5
    assert np.isclose(result.error, 24.0)
    assert drivetrain.voltage_log[-1] == (0.0, 0.0)
    assert all(left == right == 6.0 for left, right in drivetrain.voltage_log[:-1])


def test_linear_chain_ignores_velocity(fake_clock: FakeClock) -> None:
    moving = constant_pose(Pose(forward_velocity=30.0))

    drivetrain = ScriptedDrivetrain(fake_clock, moving)
    chained = asyncio.run(
        Linear(clock=fake_clock).drive_distance(drivetrain, 24.0, MotionOptions(timeout=2.0, chain=True))
    )
    assert chained.settled
    assert abs(chained.error) < 1.0

    drivetrain = ScriptedDrivetrain(fake_clock, moving)
    full_stop = asyncio.run(
        Linear(clock=fake_clock).drive_distance(drivetrain, 24.0, MotionOptions(timeout=2.0))
    )
    assert not full_stop.settled


def test_linear_reverse_to_point(fake_clock: FakeClock) -> None:
    drivetrain = ScriptedDrivetrain(fake_clock, constant_pose(Pose()))
    linear = Linear(clock=fake_clock)

    asyncio.run(
        linear.drive_to_point(drivetrain, Vec2(10.0, 0.0), MotionOptions(timeout=0.05), Direction.REVERSE)
    )

    left, right = drivetrain.voltage_log[0]
    assert left < 0.0
    assert right < 0.0


def test_turn_timeout_and_direction(fake_clock: FakeClock) -> None:
    drivetrain = ScriptedDrivetrain(fake_clock, constant_pose(Pose()))
    turn = Turn(clock=fake_clock)

    result = asyncio.run(turn.turn_to(drivetrain, math.pi / 2.0, MotionOptions(timeout=0.3)))

    assert not result.settled
    assert result.elapsed >= 0.3
    assert drivetrain.voltage_log[-1] == (0.0, 0.0)
    # Counter-clockwise: right side forward
    left, right = drivetrain.voltage_log[0]
    assert left < 0.0 < right


def test_turn_takes_the_short_way(fake_clock: FakeClock) -> None:
    drivetrain = ScriptedDrivetrain(fake_clock, constant_pose(Pose.from_degrees(0.0, 0.0, 170.0)))
    turn = Turn(clock=fake_clock)

    asyncio.run(turn.turn_to(drivetrain, math.radians(-170.0), MotionOptions(timeout=0.05)))

    left, right = drivetrain.voltage_log[0]
    assert left < 0.0 < right
    assert abs(right) < 2.0


def test_turn_chain_doubles_tolerance(fake_clock: FakeClock) -> None:
    drivetrain = ScriptedDrivetrain(fake_clock, constant_pose(Pose.from_degrees(0.0, 0.0, 88.5)))
    turn = Turn(clock=fake_clock)
    target = math.radians(90.0)

    assert asyncio.run(turn.turn_to(drivetrain, target, MotionOptions(timeout=1.0, chain=True))).settled
    assert not asyncio.run(turn.turn_to(drivetrain, target, MotionOptions(timeout=0.1))).settled


def test_turn_to_point_reverse(fake_clock: FakeClock) -> None:
    drivetrain = ScriptedDrivetrain(fake_clock, constant_pose(Pose(heading=math.pi)))
    turn = Turn(clock=fake_clock)

    result = asyncio.run(
        turn.turn_to_point(drivetrain, Vec2(10.0, 0.0), MotionOptions(timeout=1.0), Direction.REVERSE)
    )

    assert result.settled
    assert np.isclose(result.error, 0.0, atol=1e-12)


def test_seek_error_reverse_bearing() -> None:
    pose = Pose(0.0, 0.0, -math.pi / 2.0)
    seek = seek_error(pose, Vec2(0.0, 24.0), Direction.REVERSE)
    assert np.isclose(seek.distance, 24.0)
    assert np.isclose(seek.bearing, -math.pi / 2.0)
    assert np.isclose(seek.heading_error, 0.0, atol=1e-12)

    forward = seek_error(pose, Vec2(0.0, 24.0))
    assert np.isclose(abs(forward.heading_error), math.pi)


def test_drive_straight_24_inches(simulation: Simulation) -> None:
    linear = Linear(clock=simulation.clock)

    result = asyncio.run(
        linear.drive_to_point(simulation.drivetrain, Vec2(24.0, 0.0), MotionOptions(timeout=4.0))
    )

    assert result.settled
    truth = simulation.robot.pose()
    assert abs(truth.x - 24.0) < 1.0
    assert abs(truth.y) < 1e-6
    assert simulation.drivetrain.voltages() == (0.0, 0.0)


def test_turn_90_degrees_monotonically(simulation: Simulation) -> None:
    target = math.pi / 2.0
    errors = []
    simulation.clock.every(
        0.01, lambda: errors.append(abs(wrap_angle(target - simulation.robot.heading)))
    )
    turn = Turn(clock=simulation.clock)

    result = asyncio.run(turn.turn_to(simulation.drivetrain, target, MotionOptions(timeout=3.0)))

    assert result.settled
    assert abs(wrap_angle(target - simulation.robot.heading)) < math.radians(1.0)
    assert all(b <= a + 1e-12 for a, b in zip(errors, errors[1:]))
    assert simulation.drivetrain.voltages() == (0.0, 0.0)


def test_move_to_in_reverse() -> None:
    simulation = build_simulation(Pose(0.0, 0.0, -math.pi / 2.0))
    drivetrain = RecordingDrivetrain(simulation.drivetrain)
    move_to = MoveTo(clock=simulation.clock)

    result = asyncio.run(
        move_to.move_to_point(drivetrain, Vec2(0.0, 24.0), MotionOptions(timeout=5.0), Direction.REVERSE)
    )

    left, right = drivetrain.voltage_log[0]
    assert left < 0.0
    assert right < 0.0
    assert result.settled
    truth = simulation.robot.pose()
    assert truth.distance(Vec2(0.0, 24.0)) < 1.5
    assert abs(wrap_angle(truth.heading + math.pi / 2.0)) < math.radians(2.0)
    assert drivetrain.voltage_log[-1] == (0.0, 0.0)


def test_move_to_steers_toward_target(simulation: Simulation) -> None:
    drivetrain = RecordingDrivetrain(simulation.drivetrain)
    move_to = MoveTo(clock=simulation.clock)

    result = asyncio.run(
        move_to.move_to_point(drivetrain, Vec2(24.0, 24.0), MotionOptions(timeout=5.0))
    )

    # Target is 45 degrees to the left
    left, right = drivetrain.voltage_log[0]
    assert right > left > 0.0
    assert result.error < 3.0
    assert simulation.robot.pose().distance(Vec2(24.0, 24.0)) < 3.0


def test_swing_about_left_wheel(simulation: Simulation) -> None:
    swing = Swing(clock=simulation.clock)
    half_track = simulation.drivetrain.track_width / 2.0

    result = asyncio.run(
        swing.swing_to(simulation.drivetrain, math.pi / 2.0, half_track, MotionOptions(timeout=4.0))
    )

    assert result.settled
    truth = simulation.robot.pose()
    assert abs(wrap_angle(truth.heading - math.pi / 2.0)) < math.radians(1.0)
    # Center circles the left wheel at (0, 6)
    assert truth.distance(Vec2(half_track, half_track)) < 0.5
    assert simulation.drivetrain.voltages() == (0.0, 0.0)


def test_swing_timeout(fake_clock: FakeClock) -> None:
    drivetrain = ScriptedDrivetrain(fake_clock, constant_pose(Pose()))
    swing = Swing(clock=fake_clock)

    result = asyncio.run(swing.swing_to(drivetrain, -math.pi / 2.0, -6.0, MotionOptions(timeout=0.2, speed=0.5)))

    assert not result.settled
    left, right = drivetrain.voltage_log[0]
    # Clockwise about the right wheel: only the left side drives, forward
    assert left > 0.0
    assert right == 0.0
    assert max(abs(v) for pair in drivetrain.voltage_log for v in pair) <= 6.0 + 1e-9


def test_ramsete_commands_on_trajectory() -> None:
    ramsete = Ramsete()
    sample = TrajectoryPoint(
        distance=10.0, position=Vec2(10.0, 0.0), heading=0.0, curvature=0.1,
        linear_velocity=20.0, angular_velocity=2.0,
    )
    assert ramsete.commands(Pose(10.0, 0.0, 0.0), sample) == (20.0, 2.0)

    linear, angular = ramsete.commands(Pose(9.0, 0.0, 0.0), sample)
    assert linear > 20.0
    assert np.isclose(angular, 2.0)

    linear, angular = ramsete.commands(Pose(10.0, -1.0, 0.0), sample)
    assert angular > 2.0


def test_ramsete_wheel_rpm_normalized() -> None:
    ramsete = Ramsete(max_rpm=450.0)
    left, right = ramsete.wheel_rpm(500.0, 10.0)
    assert np.isclose(max(abs(left), abs(right)), 450.0)
    expected_left, expected_right = 500.0 - 60.0, 500.0 + 60.0
    assert np.isclose(left / right, expected_left / expected_right)


def test_ramsete_straight_line(simulation: Simulation) -> None:
    curve = CubicBezier(Vec2(0.0, 0.0), Vec2(12.0, 0.0), Vec2(24.0, 0.0), Vec2(36.0, 0.0))
    trajectory = generate_trajectory(curve)
    ramsete = Ramsete(clock=simulation.clock)

    result = asyncio.run(ramsete.follow(simulation.drivetrain, trajectory, MotionOptions(timeout=4.0)))

    assert result.settled
    truth = simulation.robot.pose()
    assert abs(truth.x - 36.0) < 1.5
    assert abs(truth.y) < 0.5
    assert simulation.drivetrain.voltages() == (0.0, 0.0)


def test_ramsete_curve(simulation: Simulation) -> None:
    curve = CubicBezier(Vec2(0.0, 0.0), Vec2(20.0, 0.0), Vec2(28.0, 12.0), Vec2(48.0, 12.0))
    trajectory = generate_trajectory(curve)
    ramsete = Ramsete(clock=simulation.clock)

    result = asyncio.run(ramsete.follow(simulation.drivetrain, trajectory, MotionOptions(timeout=5.0)))

    assert result.settled
    assert simulation.robot.pose().distance(Vec2(48.0, 12.0)) < 3.0
    assert result.error < 3.0


def test_ramsete_timeout(fake_clock: FakeClock) -> None:
    curve = CubicBezier(Vec2(0.0, 0.0), Vec2(12.0, 0.0), Vec2(24.0, 0.0), Vec2(36.0, 0.0))
    drivetrain = ScriptedDrivetrain(fake_clock, constant_pose(Pose()))
    ramsete = Ramsete(clock=fake_clock)

    result = asyncio.run(ramsete.follow(drivetrain, generate_trajectory(curve), MotionOptions(timeout=0.1)))

    assert not result.settled
    assert drivetrain.velocity_log
    assert drivetrain.voltage_log == [(0.0, 0.0)]
    assert np.isclose(result.error, 36.0)
