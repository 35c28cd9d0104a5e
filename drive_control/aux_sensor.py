"""Consumption side of the auxiliary optical tracking sensor.

The sensor speaks a request/response packet protocol over a serial link:

    [id: u8][checksum: u8][payload: bytes]

Requests carry a command id, responses a response id. The checksum is the
two's complement of the byte sum of id and payload, so every byte of a
valid packet sums to zero modulo 256.

The serial driver itself lives outside this package. It is injected as an
async ``transport(request: bytes, response_size: int) -> bytes`` callable
that may raise ``DeviceError``.
"""

import logging
import math
import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Awaitable, Callable, Optional

from .config import (
    AUX_ANGULAR_SCALE,
    AUX_CALIBRATION_TIMEOUT,
    AUX_LINEAR_SCALE,
    AUX_POLL_INTERVAL,
)
from .geometry import Pose
from .hardware import DeviceError
from .timing import Clock

Transport = Callable[[bytes, int], Awaitable[bytes]]

# id + checksum
REQUEST_SIZE = 2
# id + checksum + three little-endian f32
READING_SIZE = 14
READING_FORMAT = "<fff"


class Command(IntEnum):
    INITIALIZE = 0
    CALIBRATE = 1
    IS_CALIBRATING = 2
    RESET = 3
    SET_OFFSET = 4
    SET_POSITION = 5
    GET_POSITION = 6
    GET_VELOCITY = 7
    CHECK = 8
    SELF_TEST = 9
    INVALID = 10


class Response(IntEnum):
    SUCCESS = 0
    ERROR = 1
    WAITING = 2
    UNKNOWN = 3


def compute_checksum(packet_id: int, data: bytes = b"") -> int:
    return (-(packet_id + sum(data))) & 0xFF


@dataclass(frozen=True)
class Packet:
    """One protocol packet."""

    id: int
    data: bytes = b""
    checksum: int = 0

    @classmethod
    def new(cls, packet_id: int, data: bytes = b"") -> "Packet":
        """Build an outgoing packet with a correct checksum."""
        return cls(id=int(packet_id), data=bytes(data), checksum=compute_checksum(packet_id, data))

    @classmethod
    def from_bytes(cls, raw: bytes) -> "Packet":
        if len(raw) < 2:
            raise ValueError(f"Packet too short: {len(raw)} bytes")
        return cls(id=raw[0], checksum=raw[1], data=bytes(raw[2:]))

    def to_bytes(self) -> bytes:
        return bytes([self.id & 0xFF, self.checksum & 0xFF]) + self.data

    def is_correct(self) -> bool:
        return (self.id + self.checksum + sum(self.data)) & 0xFF == 0


@dataclass(frozen=True)
class AuxReading:
    """Robot-frame velocities reported by the sensor.

    Attributes:
        forward_velocity: Along the heading (inches/second).
        lateral_velocity: To the robot's left (inches/second).
        angular_velocity: Counter-clockwise (radians/second).
    """

    forward_velocity: float
    lateral_velocity: float
    angular_velocity: float


def decode_reading(data: bytes) -> AuxReading:
    """Convert a GET_VELOCITY payload into robot-frame velocities.

    The sensor is mounted facing backwards, so both linear axes are negated.
    Yaw is unaffected by the mounting. Scale factors correct the sensor's
    measured drift against a tape measure.
    """
    x, y, h = struct.unpack(READING_FORMAT, data[:12])
    return AuxReading(
        forward_velocity=-AUX_LINEAR_SCALE * x,
        lateral_velocity=-AUX_LINEAR_SCALE * y,
        angular_velocity=AUX_ANGULAR_SCALE * math.radians(h),
    )


class AuxiliarySensor:
    """Optical tracking sensor used as an extra velocity measurement.

    ``read()`` yields an ``AuxReading`` or None when the device is not
    calibrated, the transport fails, or the response is malformed. A failed
    calibration is not fatal: the sensor simply never produces readings and
    the localizer runs on odometry alone.

    Attributes:
        calibrated: True once calibration finished within the timeout.
        failed_reads: Count of reads rejected for any reason.
    """

    def __init__(
        self,
        transport: Transport,
        clock: Optional[Clock] = None,
        calibration_timeout: float = AUX_CALIBRATION_TIMEOUT,
        poll_interval: float = AUX_POLL_INTERVAL,
    ):
        if calibration_timeout <= 0:
            raise ValueError(f"Calibration timeout must be positive, got {calibration_timeout}")
        if poll_interval <= 0:
            raise ValueError(f"Poll interval must be positive, got {poll_interval}")

        self.transport = transport
        self.clock = clock if clock is not None else Clock()
        self.calibration_timeout = calibration_timeout
        self.poll_interval = poll_interval

        self.calibrated = False
        self.failed_reads = 0
        self._latest: Optional[AuxReading] = None

    async def message(self, packet: Packet, response_size: int = REQUEST_SIZE) -> Optional[Packet]:
        """Send ``packet`` and return the response, or None if the link failed."""
        try:
            raw = await self.transport(packet.to_bytes(), response_size)
            return Packet.from_bytes(raw)
        except (DeviceError, ValueError) as e:
            logging.debug(f"Aux sensor {Command(packet.id).name} failed: {e}")
            return None

    async def initialize(self, offset: Pose = Pose()) -> bool:
        """Bring the sensor up and calibrate it.

        Args:
            offset: Mounting offset of the sensor from the tracking center.

        Returns:
            True if calibration completed within the timeout.
        """
        await self.message(Packet.new(Command.INITIALIZE))
        await self.clock.sleep(0.5)
        await self.message(Packet.new(Command.RESET))

        data = struct.pack(READING_FORMAT, offset.x, offset.y, math.degrees(offset.heading))
        await self.message(Packet.new(Command.SET_OFFSET, data))

        await self.message(Packet.new(Command.CALIBRATE))
        calibrated = await self.wait_for_calibration()

        await self.message(Packet.new(Command.SELF_TEST))
        return calibrated

    async def wait_for_calibration(self) -> bool:
        """Poll IS_CALIBRATING until the sensor reports done or the timeout passes."""
        logging.info("Aux sensor calibrating")
        start = self.clock.now()

        while True:
            response = await self.message(Packet.new(Command.IS_CALIBRATING))
            if response is not None and response.id != Response.WAITING:
                logging.info("Aux sensor calibration successful")
                self.calibrated = True
                return True

            if self.clock.now() - start >= self.calibration_timeout:
                logging.warning(
                    f"Aux sensor calibration timed out after {self.calibration_timeout:.1f}s, "
                    "continuing without it"
                )
                self.calibrated = False
                return False

            await self.clock.sleep(self.poll_interval)

    async def read(self) -> Optional[AuxReading]:
        """Request one velocity reading."""
        if not self.calibrated:
            self._latest = None
            return None

        response = await self.message(Packet.new(Command.GET_VELOCITY), READING_SIZE)
        if (
            response is None
            or response.id != Response.SUCCESS
            or not response.is_correct()
            or len(response.data) < 12
        ):
            self.failed_reads += 1
            self._latest = None
            return None

        reading = decode_reading(response.data)
        if not all(
            math.isfinite(value)
            for value in (reading.forward_velocity, reading.lateral_velocity, reading.angular_velocity)
        ):
            self.failed_reads += 1
            self._latest = None
            return None

        self._latest = reading
        logging.debug(f"Aux reading: {reading}")
        return reading

    def latest(self) -> Optional[AuxReading]:
        """Most recent good reading, or None if the last read failed."""
        return self._latest

    async def run(self) -> None:
        while True:
            await self.read()
            await self.clock.sleep(self.poll_interval)
