"""Field geometry and alliance-colored landmarks.

Landmarks are defined once for the red side. Blue-side coordinates are
always derived through ``mirror_coordinate``, so the two sides cannot drift
out of symmetry.
"""

from enum import Enum
from typing import Dict, Tuple

from .geometry import Vec2

FIELD_SIZE = 144.0
"""Side length of the square field (inches)."""

RED_LANDMARKS: Dict[str, Vec2] = {
    "left_loader": Vec2(24.0, 2.5),
    "right_loader": Vec2(FIELD_SIZE - 24.0, 2.5),
    "left_goal": Vec2(24.0, 48.0),
    "right_goal": Vec2(FIELD_SIZE - 25.0, 48.0),
}


class Color(Enum):
    RED = "red"
    BLUE = "blue"

    def invert(self) -> "Color":
        return Color.BLUE if self is Color.RED else Color.RED

    def hue_range(self) -> Tuple[float, float]:
        """Half-open ``[low, high)`` optical sensor hue range of this color's game pieces."""
        return (20.0, 55.0) if self is Color.RED else (70.0, 210.0)

    def matches_hue(self, hue: float) -> bool:
        low, high = self.hue_range()
        return low <= hue < high


def mirror_coordinate(point: Vec2) -> Vec2:
    """Reflect a point through the field center."""
    return Vec2(FIELD_SIZE - point.x, FIELD_SIZE - point.y)


def landmark(name: str, color: Color) -> Vec2:
    """Position of a named landmark for ``color``.

    Raises:
        ValueError: If ``name`` is not a known landmark.
    """
    try:
        point = RED_LANDMARKS[name]
    except KeyError:
        raise ValueError(
            f"Unknown landmark '{name}', expected one of {sorted(RED_LANDMARKS)}"
        ) from None
    return point if color is Color.RED else mirror_coordinate(point)
