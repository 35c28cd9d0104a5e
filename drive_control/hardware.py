"""Sensor and actuator wrappers at the driver boundary.

Drivers are duck-typed collaborators:
- encoder: ``position() -> ticks``
- heading sensor: ``rotation() -> degrees`` (clockwise positive),
  ``set_rotation(degrees)``, optional ``async calibrate()``
- motor: ``set_voltage(volts)``, ``set_velocity(rpm)``, ``voltage()``,
  ``velocity()``

Any driver call may raise ``DeviceError``. The wrappers here catch it and
degrade to "no update this tick" so a flaky cable never stops the control
loop.
"""

import logging
import math
from typing import List, Optional, Sequence

from .config import ENCODER_TICKS_PER_REVOLUTION, MAX_VOLTAGE
from .feedback import MotorController


class DeviceError(Exception):
    """Raised by a driver when a device read or write fails."""


class TrackingWheel:
    """Unpowered odometry wheel with a quadrature encoder.

    Attributes:
        circumference: Wheel circumference (inches).
        offset: Signed distance from the tracking center (inches). For the
            forward wheel positive is to the robot's left; for the lateral
            wheel positive is behind the center.
        prev_position: Last successfully read encoder position (ticks), or
            None until the encoder has answered once.
    """

    def __init__(
        self,
        encoder,
        diameter: float,
        offset: float = 0.0,
        reverse: bool = False,
        ticks_per_revolution: int = ENCODER_TICKS_PER_REVOLUTION,
    ):
        if diameter <= 0:
            raise ValueError(f"Tracking wheel diameter must be positive, got {diameter}")
        if ticks_per_revolution <= 0:
            raise ValueError(f"Ticks per revolution must be positive, got {ticks_per_revolution}")

        self.encoder = encoder
        self.circumference = math.pi * diameter
        self.offset = offset
        self.direction = -1.0 if reverse else 1.0
        self.ticks_per_revolution = ticks_per_revolution
        self.prev_position: Optional[float] = self._read()

    def _read(self) -> Optional[float]:
        try:
            position = float(self.encoder.position())
        except DeviceError as e:
            logging.warning(f"Tracking wheel read failed: {e}")
            return None

        if not math.isfinite(position):
            logging.warning(f"Tracking wheel returned non-finite position {position}")
            return None

        return position * self.direction

    def traveled(self) -> float:
        """Distance rolled since the previous call (inches).

        Returns 0.0 when the encoder cannot be read. The previous position is
        kept, so the missed travel is picked up by the next good read.
        The first good read only sets the baseline.
        """
        position = self._read()
        if position is None:
            return 0.0
        if self.prev_position is None:
            self.prev_position = position
            return 0.0

        change = position - self.prev_position
        self.prev_position = position
        return change / self.ticks_per_revolution * self.circumference


class Imu:
    """One or more heading sensors averaged into a single heading.

    Sensors report clockwise rotation in degrees; ``heading()`` returns the
    counter-clockwise heading in radians used by the rest of the system.
    """

    def __init__(self, sensors: Sequence):
        if not sensors:
            raise ValueError("Imu needs at least one heading sensor")
        self.sensors = list(sensors)

    async def calibrate(self) -> None:
        for sensor in self.sensors:
            try:
                await sensor.calibrate()
                logging.info("Heading sensor calibration successful")
            except DeviceError as e:
                logging.error(f"Heading sensor calibration failed: {e}")

    def set_heading(self, heading: float) -> None:
        """Set every sensor so that ``heading()`` reads ``heading`` radians."""
        for sensor in self.sensors:
            try:
                sensor.set_rotation(-math.degrees(heading))
            except DeviceError as e:
                logging.warning(f"Failed to set heading sensor rotation: {e}")

    def heading(self) -> Optional[float]:
        """Circular mean of all answering sensors (radians), or None if none answered."""
        sin_sum = 0.0
        cos_sum = 0.0
        count = 0
        for sensor in self.sensors:
            try:
                rotation = float(sensor.rotation())
            except DeviceError as e:
                logging.debug(f"Heading sensor read failed: {e}")
                continue
            if not math.isfinite(rotation):
                continue
            heading = -math.radians(rotation)
            sin_sum += math.sin(heading)
            cos_sum += math.cos(heading)
            count += 1

        if count == 0:
            return None
        return math.atan2(sin_sum, cos_sum)


class MotorGroup:
    """Motors on one side of the drivetrain, commanded together.

    If a ``MotorController`` is given, ``set_velocity`` closes the loop on the
    group's measured velocity and writes voltages. Otherwise each motor's
    built-in velocity mode is used.
    """

    def __init__(
        self,
        motors: Sequence,
        controller: Optional[MotorController] = None,
        max_voltage: float = MAX_VOLTAGE,
    ):
        if not motors:
            raise ValueError("MotorGroup needs at least one motor")
        self.motors = list(motors)
        self.controller = controller
        self.max_voltage = max_voltage

    def set_voltage(self, voltage: float) -> None:
        voltage = max(-self.max_voltage, min(self.max_voltage, voltage))
        for motor in self.motors:
            try:
                motor.set_voltage(voltage)
            except DeviceError as e:
                logging.warning(f"Motor voltage write failed: {e}")

    def set_velocity(self, rpm: float) -> None:
        if self.controller is not None:
            self.set_voltage(self.controller.output(rpm, self.velocity()))
            return

        for motor in self.motors:
            try:
                motor.set_velocity(rpm)
            except DeviceError as e:
                logging.warning(f"Motor velocity write failed: {e}")

    def _average(self, attribute: str) -> float:
        readings: List[float] = []
        for motor in self.motors:
            try:
                readings.append(float(getattr(motor, attribute)()))
            except DeviceError:
                continue
        if not readings:
            return 0.0
        return sum(readings) / len(readings)

    def voltage(self) -> float:
        """Average voltage of the motors that answered (volts)."""
        return self._average("voltage")

    def velocity(self) -> float:
        """Average velocity of the motors that answered (RPM)."""
        return self._average("velocity")
