"""Configuration parameters for the drive control system.

This module centralizes all configuration parameters including:
- Physical robot parameters
- Actuator limits and loop timing
- Localization and state estimation parameters
- Motion primitive gains and tolerances
- Trajectory generation limits
- WebSocket connection parameters

All lengths are in inches, angles in radians (unless a name says DEG),
times in seconds and voltages in volts.
"""

import math

import numpy as np

# ============================================================================
# Physical Robot Parameters
# ============================================================================

TRACK_WIDTH = 12.0
"""Distance between left and right drive wheels (inches).
Fixed by robot hardware design."""

DRIVE_WHEEL_DIAMETER = 3.25
"""Diameter of the powered drive wheels (inches)."""

EXTERNAL_GEARING = 0.75
"""External gear ratio between motor output and drive wheel (wheel rev / motor rev)."""

TRACKING_WHEEL_DIAMETER = 2.0
"""Diameter of the unpowered tracking (odometry) wheels (inches)."""

ENCODER_TICKS_PER_REVOLUTION = 4096
"""Quadrature encoder resolution of the tracking wheels (ticks per revolution)."""

FORWARD_WHEEL_OFFSET = 0.0
"""Signed offset of the forward tracking wheel from the tracking center (inches).

Positive when the wheel sits to the robot's left. With this sign the arc
correction reads ``2*sin(dh/2)*(delta/dh + offset)``.
"""

LATERAL_WHEEL_OFFSET = -2.5
"""Signed offset of the lateral tracking wheel from the tracking center (inches).

Positive when the wheel sits behind the tracking center. The default wheel is
mounted 2.5 in ahead of center.
"""


# ============================================================================
# Actuator Limits
# ============================================================================

MAX_VOLTAGE = 12.0
"""Maximum motor voltage magnitude (volts). Hardware limit."""

MAX_MOTOR_RPM = 450.0
"""Maximum motor output speed (RPM). Blue cartridge hardware limit."""


# ============================================================================
# Loop Timing
# ============================================================================

LOCALIZATION_PERIOD = 0.010
"""Period of the localization engine tick (seconds)."""

MOTOR_WRITE_INTERVAL = 0.005
"""Minimum interval between motor writes (seconds). Used by seeking and tracking loops."""

CONTROL_PERIOD = 0.010
"""Period of the Linear and Swing control loops (seconds)."""

ARC_EPSILON = 1e-9
"""Heading delta below which odometry treats motion as straight (radians).

Guards the ``delta/dh`` division in the arc correction. The corrected delta
converges to the raw delta as ``dh -> 0`` so the switch is continuous.
"""


# ============================================================================
# Feedforward Parameters
# ============================================================================

FEEDFORWARD_DEADBAND = 1e-6
"""Target magnitude below which feedforward is suppressed.

Prevents ``ks * sign(target)`` from chattering around a zero target.
"""

MOTOR_KS = 0.3
"""Static friction feedforward (volts)."""

MOTOR_KV = 12.0 / 450.0
"""Velocity feedforward (volts per RPM). Nominal: full voltage at free speed."""

MOTOR_KA = 0.0
"""Acceleration feedforward (volts per RPM/s). Disabled until characterized."""

MOTOR_KP = 0.01
"""Proportional gain of the per-motor velocity loop (volts per RPM of error)."""


# ============================================================================
# Motion Primitive Parameters
# ============================================================================

LINEAR_GAINS = (0.8, 0.0, 0.05)
"""(kp, ki, kd) for the Linear primitive (volts per inch)."""

LINEAR_TOLERANCE = 0.5
"""Distance settle tolerance for Linear (inches)."""

LINEAR_VELOCITY_TOLERANCE = 1.0
"""Forward velocity settle tolerance for Linear (inches/second)."""

ANGULAR_GAINS = (4.0, 0.0, 0.0)
"""(kp, ki, kd) for Turn (volts per radian)."""

TURN_TOLERANCE = math.radians(1.0)
"""Heading settle tolerance for Turn and Swing (radians)."""

SWING_VELOCITY_TOLERANCE = math.radians(5.0)
"""Angular velocity settle tolerance for Swing (radians/second)."""

SWING_GAINS = (0.6, 0.0, 0.0)
"""(kp, ki, kd) for Swing (volts per radian per inch of pivot lever arm).

The output is multiplied by each side's distance from the pivot, so the gain is
smaller than ANGULAR_GAINS by roughly half the track width.
"""

MOVE_TO_LINEAR_GAINS = (0.8, 0.0, 0.05)
"""(kp, ki, kd) for the MoveTo translation loop (volts per inch)."""

MOVE_TO_ANGULAR_GAINS = (6.0, 0.0, 0.0)
"""(kp, ki, kd) for the MoveTo heading loop (volts per radian)."""

MOVE_TO_TOLERANCE = 1.0
"""Distance settle tolerance for MoveTo (inches)."""

MOVE_TO_VELOCITY_TOLERANCE = 2.0
"""Forward velocity settle tolerance for MoveTo (inches/second)."""

MOVE_TO_TURN_THRESHOLD = 6.0
"""Distance inside which MoveTo stops chasing the bearing to the target (inches).

Close to the target the bearing swings wildly with small position errors,
so the heading loop holds the heading latched on entry instead.
"""

CHAIN_TOLERANCE_SCALE = 2.0
"""Multiplier applied to the distance tolerance when a primitive is chained."""


# ============================================================================
# Trajectory Tracking (Ramsete)
# ============================================================================

RAMSETE_B = 0.0005
"""Ramsete convergence gain b (1/inch^2). Larger is more aggressive."""

RAMSETE_ZETA = 0.7
"""Ramsete damping ratio zeta (dimensionless, range (0, 1))."""

TRAJECTORY_MAX_VELOCITY = 48.0
"""Maximum linear velocity of generated trajectories (inches/second)."""

TRAJECTORY_MAX_ACCELERATION = 60.0
"""Maximum linear acceleration of generated trajectories (inches/second^2)."""

TRAJECTORY_SPACING = 0.25
"""Arc-length spacing between generated trajectory samples (inches)."""

MIN_PATH_LENGTH = 1e-6
"""Shortest path a trajectory is generated for (inches). Coincident control
points leave round-off arc length below this."""


# ============================================================================
# Unscented Kalman Filter Parameters
# ============================================================================

# UKF state vector: [x, y, heading, v_forward, v_lateral, omega]
#   x, y: position (in), field frame
#   heading: (rad)
#   v_forward, v_lateral: (in/s), robot frame
#   omega: (rad/s)

UKF_ALPHA = 1e-3
"""Sigma point spread around the mean."""

UKF_BETA = 2.0
"""Prior distribution knowledge. 2 is optimal for Gaussian states."""

UKF_KAPPA = 0.0
"""Secondary scaling parameter."""

UKF_PREDICT_DT = 0.01
"""Discrete step of the forward model (seconds). Matches the localization period."""

MOTOR_TORQUE_CONSTANT = 0.142275
"""Motor torque constant (newton meters per amp)."""

MOTOR_RESISTANCE = 2.61
"""Motor winding resistance (ohms)."""

MOTOR_VELOCITY_CONSTANT = 5.23
"""Motor back-EMF constant (radians per second per volt)."""

MOTOR_COUNT = 8
"""Number of drive motors."""

ROBOT_RADIUS = 0.15113
"""Half the effective drive base width (meters)."""

WHEEL_RADIUS = 0.041275
"""Drive wheel radius (meters)."""

ROBOT_MOMENT_OF_INERTIA = 1.001
"""Yaw moment of inertia (kg m^2)."""

ROBOT_MASS = 8.0
"""Robot mass (kg)."""

METERS_TO_INCHES = 39.3700787402
"""Conversion applied to the SI forward model's linear accelerations."""

UKF_P0_DIAG = [
    0.330**2,  # x (in^2)
    0.330**2,  # y (in^2)
    0.01745**2,  # heading (rad^2)
    0.1**2,  # v_forward
    0.1**2,  # v_lateral
    0.1**2,  # omega
]
"""Initial state covariance diagonal for the UKF."""

UKF_P0 = np.diag(UKF_P0_DIAG)

UKF_Q_DIAG = [
    4.3e-7,  # x
    4.3e-7,  # y
    5.1e-8,  # heading
    2.0**2,  # v_forward
    2.0**2,  # v_lateral
    0.1**2,  # omega
]
"""Process noise covariance diagonal for the UKF.

Tuning rationale:
- Position and heading noise are tiny since they integrate the velocities
- Velocity noise absorbs the mismatch of the simplified motor model, which
  overestimates free speed; smaller values let the model bias drag the
  position estimate behind the odometry measurement
"""

UKF_Q = np.diag(UKF_Q_DIAG)

UKF_R_ODOMETRY_DIAG = [0.1**2, 0.1**2, math.radians(0.5) ** 2]
"""Measurement noise for the odometry pose measurement [x, y, heading]."""

UKF_R_AUX_DIAG = [1.0**2, 1.0**2, math.radians(2.0) ** 2]
"""Measurement noise for aux sensor velocities [v_forward, v_lateral, omega]."""


# ============================================================================
# Auxiliary Absolute-Position Sensor
# ============================================================================

AUX_CALIBRATION_TIMEOUT = 1.0
"""Maximum time spent waiting for the aux sensor to finish calibrating (seconds).
On timeout the core proceeds without the sensor rather than blocking."""

AUX_POLL_INTERVAL = 0.010
"""Polling interval while waiting for calibration (seconds)."""

AUX_LINEAR_SCALE = 0.97
"""Scale correction applied to aux sensor linear velocities."""

AUX_ANGULAR_SCALE = 0.9825
"""Scale correction applied to aux sensor angular velocity."""


# ============================================================================
# Operator Input
# ============================================================================

TURN_CURVE_EXPONENT = 2
"""Polynomial exponent applied to the arcade turn axis.

Odd-symmetric: ``turn**(n-1) * |turn|`` for even n, ``turn**n`` for odd n.
Gives fine control near zero stick deflection.
"""


# ============================================================================
# Offline Simulation
# ============================================================================

SIM_STEP = 0.005
"""Physics integration step of the offline simulator (seconds)."""

SIM_TIME_CONSTANT = 0.05
"""First-order lag of simulated wheel speed toward its command (seconds)."""


# ============================================================================
# Terminal Colors
# ============================================================================

TERM_ORANGE = "\033[38;2;247;72;35m"
"""Terminal color code for warnings and highlights."""

TERM_BLUE = "\033[38;2;35;116;247m"
"""Terminal color code for status messages."""

TERM_RESET = "\033[0m"
"""Terminal color reset code."""


# ============================================================================
# WebSocket Configuration
# ============================================================================

WS_URI = "ws://localhost:8765"
"""WebSocket URI of the robot bridge or simulator."""

WS_RETRY_DELAY_SECONDS = 1
"""Initial retry delay for failed WebSocket connections (seconds)."""

WS_MAX_RETRY_DELAY_SECONDS = 60
"""Maximum retry delay with exponential backoff (seconds)."""

WS_TIMEOUT_SECONDS = 5.0
"""Timeout for WebSocket message reception (seconds)."""
