"""Planar geometry types shared by localization and motion control.

Field frame: ``x`` right, ``y`` up, heading counter-clockwise from ``+x``.
Robot frame: ``forward`` along the heading, ``lateral`` to the robot's left.
"""

import math
from dataclasses import dataclass, replace


def wrap_angle(angle: float) -> float:
    """Wrap angle to ``(-pi, pi]``.

    Every heading error must pass through here before it reaches a
    controller or a settle check, otherwise a 359 degree error reads as
    almost zero.
    """
    wrapped = math.remainder(angle, 2.0 * math.pi)
    if wrapped <= -math.pi:
        wrapped += 2.0 * math.pi
    return wrapped


@dataclass(frozen=True)
class Vec2:
    """2D vector in inches (or any single length unit)."""

    x: float
    y: float

    def __add__(self, other: "Vec2") -> "Vec2":
        return Vec2(self.x + other.x, self.y + other.y)

    def __sub__(self, other: "Vec2") -> "Vec2":
        return Vec2(self.x - other.x, self.y - other.y)

    def __mul__(self, scalar: float) -> "Vec2":
        return Vec2(self.x * scalar, self.y * scalar)

    __rmul__ = __mul__

    def __neg__(self) -> "Vec2":
        return Vec2(-self.x, -self.y)

    def magnitude(self) -> float:
        return math.hypot(self.x, self.y)

    def angle(self) -> float:
        """Angle of the vector from ``+x`` (radians)."""
        return math.atan2(self.y, self.x)

    def dot(self, other: "Vec2") -> float:
        return self.x * other.x + self.y * other.y

    def cross(self, other: "Vec2") -> float:
        """Z component of the 3D cross product."""
        return self.x * other.y - self.y * other.x

    def rotated(self, angle: float) -> "Vec2":
        """Return the vector rotated counter-clockwise by ``angle`` radians."""
        cos_a = math.cos(angle)
        sin_a = math.sin(angle)
        return Vec2(self.x * cos_a - self.y * sin_a, self.x * sin_a + self.y * cos_a)

    def distance(self, other: "Vec2") -> float:
        return (other - self).magnitude()

    def angular_distance(self, other: "Vec2") -> float:
        """Bearing from this point to ``other`` (radians)."""
        return (other - self).angle()


@dataclass(frozen=True)
class Pose:
    """Robot pose in the field frame plus robot-frame velocities.

    Attributes:
        x, y: Position (inches).
        heading: Heading (radians). Not wrapped; reduce with ``wrap_angle``.
        forward_velocity: Velocity along the heading (inches/second).
        lateral_velocity: Velocity to the robot's left (inches/second).
        angular_velocity: Counter-clockwise yaw rate (radians/second).

    Instances are immutable snapshots. The active pose source publishes a new
    instance every tick, so a reader never sees a partially updated pose.
    """

    x: float = 0.0
    y: float = 0.0
    heading: float = 0.0
    forward_velocity: float = 0.0
    lateral_velocity: float = 0.0
    angular_velocity: float = 0.0

    @classmethod
    def from_degrees(cls, x: float, y: float, heading_deg: float) -> "Pose":
        return cls(x=x, y=y, heading=math.radians(heading_deg))

    @property
    def position(self) -> Vec2:
        return Vec2(self.x, self.y)

    def distance(self, point: Vec2) -> float:
        return self.position.distance(point)

    def angular_distance(self, point: Vec2) -> float:
        """Bearing from this pose's position to ``point`` (radians)."""
        return self.position.angular_distance(point)

    def with_position(self, x: float, y: float, heading: float) -> "Pose":
        """Copy with a new position and heading, velocities zeroed."""
        return replace(
            self,
            x=x,
            y=y,
            heading=heading,
            forward_velocity=0.0,
            lateral_velocity=0.0,
            angular_velocity=0.0,
        )

    def __str__(self) -> str:
        return (
            f"({self.x:.2f}, {self.y:.2f}, {math.degrees(self.heading):.1f} deg) "
            f"v=({self.forward_velocity:.2f}, {self.lateral_velocity:.2f}, "
            f"{math.degrees(self.angular_velocity):.1f} deg/s)"
        )
