"""Drive Control - Localization and Motion Control for Differential-Drive Robots

Estimates a robot's planar pose from tracking wheels and heading sensors, and
drives closed-loop motion primitives from that estimate.

## Architecture Overview

### Localization (localizer.py, ukf.py)
- `Odometry`: tracking-wheel dead reckoning with exact arc correction
- `UkfLocalizer`: unscented Kalman filter over a motor model, fusing odometry
  and an optional auxiliary optical sensor
- Both implement `PoseSource`; nothing downstream depends on which is active

### Drivetrain (drivetrain.py, hardware.py)
Facade over two motor groups and the active pose source: voltage and velocity
commands, arcade/tank mixing, pose read and re-anchoring.

### Motion Primitives (motion/)
- `Linear`: drive a signed distance
- `Turn`: turn to a heading or toward a point
- `Swing`: turn about a pivot beside the robot
- `MoveTo`: seek a point with heading blending, forward or reverse
- `Ramsete`: track a precomputed trajectory

### Paths (path.py)
Cubic Bezier curves resampled into arc-length indexed trajectories with a
trapezoidal, curvature-limited velocity profile.

## Quick Start

```bash
# Run a routine offline in virtual time
python -m drive_control --sim --routine square

# Run against a robot bridge with the UKF
python -m drive_control --ukf --routine s_curve --uri ws://robot:8765
```

## Conventions

Inches, radians, seconds, volts. Field frame x right, y up, heading
counter-clockwise from +x. Robot frame forward along the heading, lateral to
the left.
"""

__version__ = "0.1.0"

from .drivetrain import Drivetrain
from .geometry import Pose, Vec2, wrap_angle
from .localizer import Odometry, PoseSource
from .motion import Linear, MotionOptions, MotionResult, MoveTo, Ramsete, Swing, Turn
from .ukf import UkfLocalizer, UnscentedKalmanFilter

__all__ = [
    "Drivetrain",
    "Pose",
    "Vec2",
    "wrap_angle",
    "Odometry",
    "PoseSource",
    "UkfLocalizer",
    "UnscentedKalmanFilter",
    "Linear",
    "Turn",
    "Swing",
    "MoveTo",
    "Ramsete",
    "MotionOptions",
    "MotionResult",
]
