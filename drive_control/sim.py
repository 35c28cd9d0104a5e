"""Offline simulator: virtual clock, robot physics and simulated drivers.

The simulated drivers implement the same duck-typed interfaces as the real
ones (see ``hardware``), so the localization engine, drivetrain and motion
primitives run unchanged against them. Time is virtual: ``SimulatedClock.sleep``
steps the physics forward instead of waiting, so a 5 s routine runs in
milliseconds and every run is deterministic.
"""

import asyncio
import math
from dataclasses import dataclass
from typing import Callable, List, Optional

from .config import (
    DRIVE_WHEEL_DIAMETER,
    ENCODER_TICKS_PER_REVOLUTION,
    EXTERNAL_GEARING,
    FORWARD_WHEEL_OFFSET,
    LATERAL_WHEEL_OFFSET,
    LOCALIZATION_PERIOD,
    MAX_MOTOR_RPM,
    MAX_VOLTAGE,
    MOTOR_KA,
    MOTOR_KP,
    MOTOR_KS,
    MOTOR_KV,
    SIM_STEP,
    SIM_TIME_CONSTANT,
    TRACK_WIDTH,
    TRACKING_WHEEL_DIAMETER,
)
from .drivetrain import Drivetrain
from .feedback import MotorController, Pid
from .geometry import Pose
from .hardware import DeviceError, Imu, MotorGroup, TrackingWheel
from .localizer import Odometry, PoseSource
from .model import forward_kinematics, to_motor_rpm, to_wheel_speed
from .ukf import UkfLocalizer


class SimulatedClock:
    """Virtual clock advanced in fixed physics steps.

    ``sleep(seconds)`` advances time by whole steps, calling every step
    callback with the step length and every periodic callback whose period
    has elapsed, then yields to the event loop once.
    """

    def __init__(self, step: float = SIM_STEP):
        if step <= 0:
            raise ValueError(f"Simulation step must be positive, got {step}")
        self.step = step
        self.ticks = 0
        self._step_callbacks: List[Callable[[float], None]] = []
        self._periodic: List[list] = []

    def now(self) -> float:
        return self.ticks * self.step

    def on_step(self, callback: Callable[[float], None]) -> None:
        self._step_callbacks.append(callback)

    def every(self, period: float, callback: Callable[[], object]) -> None:
        """Call ``callback`` every ``period`` seconds of virtual time."""
        interval = max(1, round(period / self.step))
        self._periodic.append([interval, self.ticks + interval, callback])

    def advance(self, seconds: float) -> None:
        for _ in range(max(1, round(seconds / self.step))):
            for callback in self._step_callbacks:
                callback(self.step)
            self.ticks += 1
            for task in self._periodic:
                if self.ticks >= task[1]:
                    task[2]()
                    task[1] += task[0]

    async def sleep(self, seconds: float) -> None:
        self.advance(seconds)
        await asyncio.sleep(0)


class SimEncoder:
    """Quadrature encoder; ``ticks`` is written by the robot model."""

    def __init__(self):
        self.ticks = 0.0
        self.fail = False

    def position(self) -> float:
        if self.fail:
            raise DeviceError("simulated encoder disconnected")
        return self.ticks


class SimHeadingSensor:
    """Heading sensor reporting clockwise degrees in [0, 360) like the real one."""

    def __init__(self, robot: "SimulatedRobot"):
        self.robot = robot
        self.offset = 0.0
        self.fail = False

    def rotation(self) -> float:
        if self.fail:
            raise DeviceError("simulated heading sensor disconnected")
        return (-math.degrees(self.robot.heading) + self.offset) % 360.0

    def set_rotation(self, degrees: float) -> None:
        self.offset = degrees + math.degrees(self.robot.heading)

    async def calibrate(self) -> None:
        await asyncio.sleep(0)


class SimMotor:
    """Drive motor with a first-order speed response.

    Voltage mode targets ``voltage / MAX_VOLTAGE`` of free speed; velocity
    mode targets the commanded RPM directly.
    """

    def __init__(
        self,
        free_speed: float,
        time_constant: float = SIM_TIME_CONSTANT,
        wheel_diameter: float = DRIVE_WHEEL_DIAMETER,
        gearing: float = EXTERNAL_GEARING,
    ):
        self.free_speed = free_speed
        self.time_constant = time_constant
        self.wheel_diameter = wheel_diameter
        self.gearing = gearing

        self.speed = 0.0
        self._voltage = 0.0
        self._target_rpm: Optional[float] = None
        self.fail = False

    def _check(self) -> None:
        if self.fail:
            raise DeviceError("simulated motor disconnected")

    def set_voltage(self, voltage: float) -> None:
        self._check()
        self._voltage = max(-MAX_VOLTAGE, min(MAX_VOLTAGE, voltage))
        self._target_rpm = None

    def set_velocity(self, rpm: float) -> None:
        self._check()
        self._target_rpm = max(-MAX_MOTOR_RPM, min(MAX_MOTOR_RPM, rpm))

    def voltage(self) -> float:
        self._check()
        if self._target_rpm is not None:
            return self._target_speed() / self.free_speed * MAX_VOLTAGE
        return self._voltage

    def velocity(self) -> float:
        self._check()
        return to_motor_rpm(self.speed, self.wheel_diameter, self.gearing)

    def _target_speed(self) -> float:
        if self._target_rpm is not None:
            return to_wheel_speed(self._target_rpm, self.wheel_diameter, self.gearing)
        return self._voltage / MAX_VOLTAGE * self.free_speed

    def step(self, dt: float) -> None:
        blend = min(1.0, dt / self.time_constant)
        self.speed += (self._target_speed() - self.speed) * blend


class SimulatedRobot:
    """Differential drive kinematics with tracking wheels and a heading sensor.

    Wheels do not slip, so the lateral tracking wheel only sees the rotation
    of its offset about the tracking center.
    """

    def __init__(
        self,
        pose: Pose = Pose(),
        track_width: float = TRACK_WIDTH,
        time_constant: float = SIM_TIME_CONSTANT,
        forward_offset: float = FORWARD_WHEEL_OFFSET,
        lateral_offset: float = LATERAL_WHEEL_OFFSET,
        tracking_wheel_diameter: float = TRACKING_WHEEL_DIAMETER,
        ticks_per_revolution: int = ENCODER_TICKS_PER_REVOLUTION,
    ):
        self.x = pose.x
        self.y = pose.y
        self.heading = pose.heading
        self.track_width = track_width
        self.forward_offset = forward_offset
        self.lateral_offset = lateral_offset
        self.ticks_per_inch = ticks_per_revolution / (math.pi * tracking_wheel_diameter)

        free_speed = to_wheel_speed(MAX_MOTOR_RPM)
        self.left_motor = SimMotor(free_speed, time_constant)
        self.right_motor = SimMotor(free_speed, time_constant)
        self.forward_encoder = SimEncoder()
        self.lateral_encoder = SimEncoder()
        self.heading_sensor = SimHeadingSensor(self)

        self.linear_velocity = 0.0
        self.angular_velocity = 0.0

    def pose(self) -> Pose:
        """Ground-truth pose."""
        return Pose(
            x=self.x,
            y=self.y,
            heading=self.heading,
            forward_velocity=self.linear_velocity,
            angular_velocity=self.angular_velocity,
        )

    def step(self, dt: float) -> None:
        self.left_motor.step(dt)
        self.right_motor.step(dt)
        v, omega = forward_kinematics(self.left_motor.speed, self.right_motor.speed, self.track_width)
        self.linear_velocity = v
        self.angular_velocity = omega

        dh = omega * dt
        heading_mid = self.heading + dh / 2.0
        self.x += v * dt * math.cos(heading_mid)
        self.y += v * dt * math.sin(heading_mid)
        self.heading += dh

        self.forward_encoder.ticks += (v * dt - self.forward_offset * dh) * self.ticks_per_inch
        self.lateral_encoder.ticks += (-self.lateral_offset * dh) * self.ticks_per_inch


@dataclass
class Simulation:
    """A fully wired simulated robot."""

    clock: SimulatedClock
    robot: SimulatedRobot
    odometry: Odometry
    pose_source: PoseSource
    drivetrain: Drivetrain


def build_simulation(
    pose: Pose = Pose(),
    use_ukf: bool = False,
    use_feedforward: bool = False,
    localization_period: float = LOCALIZATION_PERIOD,
) -> Simulation:
    """Wire a simulated robot to the real localization and drivetrain classes.

    The active pose source is ticked by the clock every ``localization_period``
    in place of its ``run()`` task.

    Args:
        pose: Starting pose of both the robot and the estimate.
        use_ukf: Use ``UkfLocalizer`` as the pose source instead of odometry.
        use_feedforward: Close velocity loops with ``MotorController``
            instead of the motors' built-in velocity mode.
        localization_period: Localization tick (seconds).
    """
    clock = SimulatedClock()
    robot = SimulatedRobot(pose)
    clock.on_step(robot.step)

    forward = TrackingWheel(robot.forward_encoder, TRACKING_WHEEL_DIAMETER, FORWARD_WHEEL_OFFSET)
    lateral = TrackingWheel(robot.lateral_encoder, TRACKING_WHEEL_DIAMETER, LATERAL_WHEEL_OFFSET)
    imu = Imu([robot.heading_sensor])
    odometry = Odometry(forward, lateral, imu, starting_pose=pose, clock=clock, period=localization_period)

    def controller() -> Optional[MotorController]:
        if not use_feedforward:
            return None
        return MotorController(Pid(MOTOR_KP), MOTOR_KS, MOTOR_KV, MOTOR_KA, clock=clock.now)

    left = MotorGroup([robot.left_motor], controller())
    right = MotorGroup([robot.right_motor], controller())

    pose_source: PoseSource
    if use_ukf:
        pose_source = UkfLocalizer(odometry, left, right, clock=clock, period=localization_period)
    else:
        pose_source = odometry
    clock.every(localization_period, pose_source.update)

    drivetrain = Drivetrain(left, right, pose_source)
    return Simulation(clock, robot, odometry, pose_source, drivetrain)
