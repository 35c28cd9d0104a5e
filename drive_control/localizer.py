"""Localization engine for drivetrain state estimation.

This module provides dead-reckoning pose estimation by fusing:
- A forward tracking wheel (travel along the heading)
- A lateral tracking wheel (travel to the robot's left)
- A heading sensor (absolute heading)

Each tick the straight-line wheel deltas are converted to the true chord of
the arc the robot followed, rotated into the field frame at the average
heading over the tick, and accumulated into the pose.
"""

import logging
import math
from typing import Dict, Optional, Protocol, runtime_checkable

from .config import ARC_EPSILON, LOCALIZATION_PERIOD
from .geometry import Pose, wrap_angle
from .hardware import Imu, TrackingWheel
from .timing import Clock


@runtime_checkable
class PoseSource(Protocol):
    """Anything that produces Pose snapshots on demand.

    The drivetrain and every motion primitive depend only on ``pose`` and
    ``set_pose``, never on which estimator is behind it. The rest is the
    lifecycle the runner drives: ``calibrate`` once, then either ``run`` as a
    background task or ``update`` from a periodic callback.
    """

    def pose(self) -> Pose:
        ...

    def set_pose(self, pose: Pose) -> None:
        ...

    async def calibrate(self) -> None:
        ...

    def update(self) -> Pose:
        ...

    async def run(self) -> None:
        ...


def arc_correct(delta: float, dh: float, offset: float) -> float:
    """Convert a tracking wheel's rolled distance into the tracking center's chord.

    Args:
        delta: Distance rolled by the wheel during the tick (inches).
        dh: Heading change during the tick (radians).
        offset: Signed wheel offset from the tracking center (inches).

    Returns:
        ``2*sin(dh/2)*(delta/dh + offset)``, or ``delta`` for straight motion.
        The two agree in the limit ``dh -> 0``.
    """
    if abs(dh) <= ARC_EPSILON:
        return delta
    return 2.0 * math.sin(dh / 2.0) * (delta / dh + offset)


class Odometry:
    """Tracking-wheel odometry with a heading sensor.

    The pose is published as an immutable snapshot replaced in a single
    assignment per tick. Only this object writes it; readers call ``pose()``
    and see a complete pose at most one tick old.

    Attributes:
        forward: Tracking wheel measuring forward travel.
        lateral: Tracking wheel measuring lateral travel.
        imu: Heading sensor(s).
        period: Tick period of ``run()`` (seconds).
        invalid_reads: Count of ticks where a delta was non-finite and zeroed.
    """

    def __init__(
        self,
        forward: TrackingWheel,
        lateral: TrackingWheel,
        imu: Imu,
        starting_pose: Pose = Pose(),
        clock: Optional[Clock] = None,
        period: float = LOCALIZATION_PERIOD,
    ):
        if period <= 0:
            raise ValueError(f"Localization period must be positive, got {period}")

        self.forward = forward
        self.lateral = lateral
        self.imu = imu
        self.clock = clock if clock is not None else Clock()
        self.period = period

        self._pose = starting_pose
        self.prev_heading: Optional[float] = imu.heading()
        self.prev_time: Optional[float] = None

        self.ticks = 0
        self.invalid_reads = 0

    def pose(self) -> Pose:
        """Latest published pose snapshot."""
        return self._pose

    def set_pose(self, pose: Pose) -> None:
        """Re-anchor the estimate, e.g. between autonomous routines."""
        self._pose = pose

    async def calibrate(self) -> None:
        """Calibrate the heading sensors and restart heading tracking from their reading."""
        await self.imu.calibrate()
        self.prev_heading = self.imu.heading()

    def update(self) -> Pose:
        """Run one localization tick and publish the new pose."""
        now = self.clock.now()

        d_forward = self.forward.traveled()
        d_lateral = self.lateral.traveled()

        heading = self.imu.heading()
        if heading is None:
            logging.warning("No heading sensor answered, holding heading this tick")
            dh = 0.0
        elif self.prev_heading is None:
            dh = 0.0
            self.prev_heading = heading
        else:
            dh = wrap_angle(heading - self.prev_heading)
            self.prev_heading = heading

        if not math.isfinite(dh):
            logging.warning(f"Invalid heading delta {dh}, treating as zero")
            self.invalid_reads += 1
            dh = 0.0

        # Chord of the tracking center's arc, robot frame
        d_forward = arc_correct(d_forward, dh, self.forward.offset)
        d_lateral = arc_correct(d_lateral, dh, self.lateral.offset)

        if not math.isfinite(d_forward):
            logging.warning(f"Invalid forward delta {d_forward}, treating as zero")
            self.invalid_reads += 1
            d_forward = 0.0
        if not math.isfinite(d_lateral):
            logging.warning(f"Invalid lateral delta {d_lateral}, treating as zero")
            self.invalid_reads += 1
            d_lateral = 0.0

        prev = self._pose
        heading_avg = prev.heading + dh / 2.0
        cos_h = math.cos(heading_avg)
        sin_h = math.sin(heading_avg)

        if self.prev_time is not None and now > self.prev_time:
            dt = now - self.prev_time
            forward_velocity = d_forward / dt
            lateral_velocity = d_lateral / dt
            angular_velocity = dh / dt
        else:
            forward_velocity = lateral_velocity = angular_velocity = 0.0
        self.prev_time = now

        self._pose = Pose(
            x=prev.x + cos_h * d_forward - sin_h * d_lateral,
            y=prev.y + sin_h * d_forward + cos_h * d_lateral,
            heading=prev.heading + dh,
            forward_velocity=forward_velocity,
            lateral_velocity=lateral_velocity,
            angular_velocity=angular_velocity,
        )
        self.ticks += 1

        logging.debug(f"Odometry: {self._pose}")
        return self._pose

    async def run(self) -> None:
        """Tick forever at ``period``. Run as a background task."""
        while True:
            self.update()
            await self.clock.sleep(self.period)

    def get_diagnostics(self) -> Dict[str, float]:
        return {
            "ticks": self.ticks,
            "invalid_reads": self.invalid_reads,
            "heading_sensor": float("nan") if self.prev_heading is None else self.prev_heading,
        }
