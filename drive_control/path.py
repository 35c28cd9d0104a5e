"""Cubic Bezier paths and arc-length indexed trajectories.

A trajectory is a precomputed list of samples spaced evenly along the path,
each carrying the pose to be at and the velocities to have there. The
tracker looks samples up by distance traveled, never by time.
"""

import bisect
import math
from dataclasses import dataclass
from typing import List, Sequence, Tuple, Union

import numpy as np
import numpy.typing as npt

from .config import (
    MIN_PATH_LENGTH,
    TRACK_WIDTH,
    TRAJECTORY_MAX_ACCELERATION,
    TRAJECTORY_MAX_VELOCITY,
    TRAJECTORY_SPACING,
)
from .geometry import Vec2

# Dense samples per curve before resampling by arc length
CURVE_RESOLUTION = 200


@dataclass(frozen=True)
class CubicBezier:
    """Cubic Bezier curve with control points ``p0..p3``.

    Bernstein form:
        B(t) = (1-t)^3 p0 + 3(1-t)^2 t p1 + 3(1-t) t^2 p2 + t^3 p3
    """

    p0: Vec2
    p1: Vec2
    p2: Vec2
    p3: Vec2

    def point(self, t: float) -> Vec2:
        u = 1.0 - t
        return (
            self.p0 * (u**3)
            + self.p1 * (3.0 * u**2 * t)
            + self.p2 * (3.0 * u * t**2)
            + self.p3 * (t**3)
        )

    def derivative(self, t: float) -> Vec2:
        u = 1.0 - t
        return (
            (self.p1 - self.p0) * (3.0 * u**2)
            + (self.p2 - self.p1) * (6.0 * u * t)
            + (self.p3 - self.p2) * (3.0 * t**2)
        )

    def second_derivative(self, t: float) -> Vec2:
        u = 1.0 - t
        return (self.p2 - self.p1 * 2.0 + self.p0) * (6.0 * u) + (
            self.p3 - self.p2 * 2.0 + self.p1
        ) * (6.0 * t)

    def curvature(self, t: float) -> float:
        """Signed curvature (1/inch), positive when bending counter-clockwise."""
        d = self.derivative(t)
        speed = d.magnitude()
        if speed < 1e-9:
            return 0.0
        return d.cross(self.second_derivative(t)) / speed**3

    def sample(self, count: int = CURVE_RESOLUTION) -> Tuple[npt.NDArray[np.float64], ...]:
        """Evaluate position, first and second derivative at ``count`` even values of t.

        Returns:
            (points, derivatives, second_derivatives), each of shape (count, 2).
        """
        t = np.linspace(0.0, 1.0, count)[:, None]
        u = 1.0 - t
        p0, p1, p2, p3 = (np.array([p.x, p.y]) for p in (self.p0, self.p1, self.p2, self.p3))

        points = u**3 * p0 + 3.0 * u**2 * t * p1 + 3.0 * u * t**2 * p2 + t**3 * p3
        firsts = 3.0 * u**2 * (p1 - p0) + 6.0 * u * t * (p2 - p1) + 3.0 * t**2 * (p3 - p2)
        seconds = 6.0 * u * (p2 - 2.0 * p1 + p0) + 6.0 * t * (p3 - 2.0 * p2 + p1)
        return points, firsts, seconds


@dataclass(frozen=True)
class TrajectoryPoint:
    """One trajectory sample.

    Attributes:
        distance: Arc length from the start of the path (inches).
        position: Where to be (inches, field frame).
        heading: Direction of travel (radians, unwrapped along the path).
        curvature: Signed path curvature (1/inch).
        linear_velocity: Target speed (inches/second).
        angular_velocity: Target yaw rate, ``v * curvature`` (radians/second).
    """

    distance: float
    position: Vec2
    heading: float
    curvature: float
    linear_velocity: float
    angular_velocity: float


class Trajectory:
    """Immutable arc-length indexed sequence of samples."""

    def __init__(self, profile: Sequence[TrajectoryPoint]):
        if not profile:
            raise ValueError("Trajectory needs at least one sample")
        self.profile: Tuple[TrajectoryPoint, ...] = tuple(profile)
        self._distances: List[float] = [sample.distance for sample in self.profile]
        if any(b < a for a, b in zip(self._distances, self._distances[1:])):
            raise ValueError("Trajectory sample distances must be non-decreasing")

    def __len__(self) -> int:
        return len(self.profile)

    @property
    def last(self) -> TrajectoryPoint:
        return self.profile[-1]

    @property
    def length(self) -> float:
        """Total arc length (inches)."""
        return self._distances[-1]

    def at(self, distance: float) -> TrajectoryPoint:
        """First sample at or beyond ``distance``, or the last sample past the end."""
        index = bisect.bisect_left(self._distances, distance)
        return self.profile[min(index, len(self.profile) - 1)]


def generate_trajectory(
    curves: Union[CubicBezier, Sequence[CubicBezier]],
    max_velocity: float = TRAJECTORY_MAX_VELOCITY,
    max_acceleration: float = TRAJECTORY_MAX_ACCELERATION,
    spacing: float = TRAJECTORY_SPACING,
    track_width: float = TRACK_WIDTH,
) -> Trajectory:
    """Build a trajectory along one or more joined Bezier curves.

    The path is sampled densely, resampled every ``spacing`` inches of arc
    length, and given a trapezoidal velocity profile that starts and ends at
    rest. Speed is also capped on curves so the outer wheel never exceeds
    ``max_velocity``.

    Args:
        curves: A curve or a sequence of curves joined end to start.
        max_velocity: Linear speed limit (inches/second).
        max_acceleration: Linear acceleration limit (inches/second^2).
        spacing: Arc length between samples (inches).
        track_width: Used for the curvature speed cap (inches).

    Returns:
        Trajectory with samples at 0, spacing, 2*spacing, ... and the path end.

    Raises:
        ValueError: If a limit is non-positive or the path has zero length.
    """
    if isinstance(curves, CubicBezier):
        curves = [curves]
    if not curves:
        raise ValueError("Trajectory needs at least one curve")
    if max_velocity <= 0 or max_acceleration <= 0 or spacing <= 0:
        raise ValueError("Trajectory limits and spacing must be positive")

    points_list, firsts_list, seconds_list = [], [], []
    for index, curve in enumerate(curves):
        points, firsts, seconds = curve.sample()
        # Drop the duplicated joint between consecutive curves
        start = 0 if index == 0 else 1
        points_list.append(points[start:])
        firsts_list.append(firsts[start:])
        seconds_list.append(seconds[start:])
    points = np.vstack(points_list)
    firsts = np.vstack(firsts_list)
    seconds = np.vstack(seconds_list)

    steps = np.hypot(*np.diff(points, axis=0).T)
    arc = np.concatenate([[0.0], np.cumsum(steps)])
    total = float(arc[-1])
    if total < MIN_PATH_LENGTH:
        raise ValueError(f"Trajectory path is too short ({total} in)")

    distances = np.arange(0.0, total, spacing)
    if total - distances[-1] > 1e-9:
        distances = np.append(distances, total)

    def resample(values: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        return np.interp(distances, arc, values)

    xs, ys = resample(points[:, 0]), resample(points[:, 1])
    dxs, dys = resample(firsts[:, 0]), resample(firsts[:, 1])
    ddxs, ddys = resample(seconds[:, 0]), resample(seconds[:, 1])

    headings = np.unwrap(np.arctan2(dys, dxs))
    speed = np.hypot(dxs, dys)
    with np.errstate(divide="ignore", invalid="ignore"):
        curvatures = np.where(speed > 1e-9, (dxs * ddys - dys * ddxs) / speed**3, 0.0)

    # Outer wheel runs at v * (1 + |k| * track/2)
    velocity_limit = max_velocity / (1.0 + np.abs(curvatures) * track_width / 2.0)

    count = len(distances)
    velocities = np.minimum(velocity_limit, max_velocity)
    velocities[0] = 0.0
    velocities[-1] = 0.0
    for i in range(1, count):
        ds = distances[i] - distances[i - 1]
        velocities[i] = min(velocities[i], math.sqrt(velocities[i - 1] ** 2 + 2.0 * max_acceleration * ds))
    for i in range(count - 2, -1, -1):
        ds = distances[i + 1] - distances[i]
        velocities[i] = min(velocities[i], math.sqrt(velocities[i + 1] ** 2 + 2.0 * max_acceleration * ds))

    profile = [
        TrajectoryPoint(
            distance=float(distances[i]),
            position=Vec2(float(xs[i]), float(ys[i])),
            heading=float(headings[i]),
            curvature=float(curvatures[i]),
            linear_velocity=float(velocities[i]),
            angular_velocity=float(velocities[i] * curvatures[i]),
        )
        for i in range(count)
    ]
    return Trajectory(profile)
