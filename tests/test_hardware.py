import asyncio
import math

import numpy as np
import pytest

from drive_control.feedback import MotorController, Pid
from drive_control.hardware import DeviceError, Imu, MotorGroup, TrackingWheel

from .fakes import ListEncoder, StaticHeadingSensor

# One tick per inch of travel
INCH_WHEEL = dict(diameter=1.0 / math.pi, ticks_per_revolution=1)


class FakeMotor:
    def __init__(self, velocity: float = 0.0) -> None:
        self.written_voltage = None
        self.written_velocity = None
        self._velocity = velocity
        self.fail = False

    def _check(self) -> None:
        if self.fail:
            raise DeviceError("motor unplugged")

    def set_voltage(self, voltage: float) -> None:
        self._check()
        self.written_voltage = voltage

    def set_velocity(self, rpm: float) -> None:
        self._check()
        self.written_velocity = rpm

    def voltage(self) -> float:
        self._check()
        return self.written_voltage or 0.0

    def velocity(self) -> float:
        self._check()
        return self._velocity


def test_tracking_wheel_converts_ticks_to_inches() -> None:
    wheel = TrackingWheel(ListEncoder([0, 4096]), diameter=2.0)
    assert np.isclose(wheel.traveled(), 2.0 * math.pi)
    assert wheel.traveled() == 0.0


def test_tracking_wheel_reverse() -> None:
    wheel = TrackingWheel(ListEncoder([0, 3]), reverse=True, **INCH_WHEEL)
    assert np.isclose(wheel.traveled(), -3.0)


def test_tracking_wheel_failed_read_is_picked_up_later() -> None:
    wheel = TrackingWheel(ListEncoder([0, None, 5]), **INCH_WHEEL)
    assert wheel.traveled() == 0.0
    assert np.isclose(wheel.traveled(), 5.0)


def test_tracking_wheel_ignores_non_finite_positions() -> None:
    wheel = TrackingWheel(ListEncoder([0, float("nan"), 1]), **INCH_WHEEL)
    assert wheel.traveled() == 0.0
    assert np.isclose(wheel.traveled(), 1.0)


def test_tracking_wheel_rejects_bad_geometry() -> None:
    with pytest.raises(ValueError):
        TrackingWheel(ListEncoder([0]), diameter=0.0)
    with pytest.raises(ValueError):
        TrackingWheel(ListEncoder([0]), diameter=2.0, ticks_per_revolution=0)


def test_tracking_wheel_unreadable_at_startup_takes_first_read_as_baseline() -> None:
    wheel = TrackingWheel(ListEncoder([None, None, 5000, 5003]), **INCH_WHEEL)
    assert wheel.prev_position is None
    assert wheel.traveled() == 0.0
    assert wheel.traveled() == 0.0
    assert wheel.prev_position == 5000.0
    assert np.isclose(wheel.traveled(), 3.0)


def test_imu_circular_mean() -> None:
    imu = Imu([StaticHeadingSensor(359.0), StaticHeadingSensor(1.0)])
    assert np.isclose(imu.heading(), 0.0, atol=1e-12)


def test_imu_reports_counter_clockwise_heading() -> None:
    imu = Imu([StaticHeadingSensor(270.0)])
    assert np.isclose(imu.heading(), math.pi / 2.0)


def test_imu_skips_failed_sensors() -> None:
    broken = StaticHeadingSensor()
    broken.value = None
    imu = Imu([broken, StaticHeadingSensor(90.0)])
    assert np.isclose(imu.heading(), -math.pi / 2.0)

    imu = Imu([broken])
    assert imu.heading() is None


def test_imu_set_heading() -> None:
    sensor = StaticHeadingSensor()
    imu = Imu([sensor])
    imu.set_heading(math.pi / 2.0)
    assert np.isclose(sensor.value, -90.0)
    assert np.isclose(imu.heading(), math.pi / 2.0)


def test_imu_needs_a_sensor() -> None:
    with pytest.raises(ValueError):
        Imu([])


def test_motor_group_clamps_and_survives_failures() -> None:
    good = FakeMotor(velocity=100.0)
    bad = FakeMotor(velocity=300.0)
    bad.fail = True
    group = MotorGroup([good, bad])

    group.set_voltage(20.0)
    assert good.written_voltage == 12.0
    assert group.velocity() == 100.0


def test_motor_group_no_answers_reads_zero() -> None:
    motor = FakeMotor(velocity=50.0)
    motor.fail = True
    group = MotorGroup([motor])
    assert group.velocity() == 0.0
    assert group.voltage() == 0.0


def test_motor_group_velocity_modes() -> None:
    builtin = FakeMotor()
    MotorGroup([builtin]).set_velocity(200.0)
    assert builtin.written_velocity == 200.0
    assert builtin.written_voltage is None

    closed_loop = FakeMotor(velocity=0.0)
    controller = MotorController(Pid(0.0), kv=0.02, clock=lambda: 0.0)
    MotorGroup([closed_loop], controller).set_velocity(100.0)
    assert closed_loop.written_velocity is None
    assert np.isclose(closed_loop.written_voltage, 2.0)


def test_imu_calibration_failure_is_not_fatal() -> None:
    class BrokenCalibration(StaticHeadingSensor):
        async def calibrate(self) -> None:
            raise DeviceError("calibration failed")

    imu = Imu([BrokenCalibration(10.0), StaticHeadingSensor(10.0)])
    asyncio.run(imu.calibrate())
    assert np.isclose(imu.heading(), math.radians(-10.0))
