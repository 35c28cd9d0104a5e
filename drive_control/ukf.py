r"""Unscented Kalman Filter over a physical drivetrain model.

State layout
------------
.. math::
   x = [x, y, \theta, v_f, v_s, \omega]^T

with position in the field frame and velocities in the robot frame.

Prediction model
----------------
Per-side motor voltages ``u = [u_l, u_r]`` drive a DC motor model reduced to
linear and angular accelerations:

.. math::
   \dot v_f = d_1 v_f + d_2 (u_l + u_r), \quad
   \dot v_s = d_1 v_s, \quad
   \dot\omega = d_3 \omega + d_4 (u_r - u_l)

Position integrates the velocities rotated at the mid-step heading.

Update model
------------
Sensor A (odometry) measures ``[x, y, theta]``. Sensor B (the auxiliary
optical sensor), when it has a fresh reading, adds ``[v_f, v_s, omega]``.
Heading residuals are wrapped.

A step whose covariance cannot be factored is skipped and logged; the
previous mean and covariance are kept.
"""

import logging
import math
from typing import Callable, Optional, Sequence

import numpy as np

from . import config as cfg
from .geometry import Pose, wrap_angle
from .hardware import MotorGroup
from .localizer import Odometry
from .timing import Clock

STATE_SIZE = 6
HEADING_INDEX = 2


def measure_pose(state: np.ndarray) -> np.ndarray:
    """Sensor A: ``[x, y, heading]``."""
    return state[:3].copy()


def measure_pose_and_velocity(state: np.ndarray) -> np.ndarray:
    """Sensor A plus sensor B: ``[x, y, heading, v_f, v_s, omega]``."""
    return state[:6].copy()


class DrivetrainModel:
    """Discrete-time forward model of a differential drive.

    Motor constants are SI; linear accelerations are converted to inches so
    the state stays in the system's length unit.
    """

    def __init__(
        self,
        torque_constant: float = cfg.MOTOR_TORQUE_CONSTANT,
        resistance: float = cfg.MOTOR_RESISTANCE,
        velocity_constant: float = cfg.MOTOR_VELOCITY_CONSTANT,
        motor_count: int = cfg.MOTOR_COUNT,
        robot_radius: float = cfg.ROBOT_RADIUS,
        wheel_radius: float = cfg.WHEEL_RADIUS,
        moment_of_inertia: float = cfg.ROBOT_MOMENT_OF_INERTIA,
        gear_ratio: float = cfg.EXTERNAL_GEARING,
        mass: float = cfg.ROBOT_MASS,
    ):
        c1 = -(gear_ratio**2 * torque_constant * motor_count) / (
            velocity_constant * resistance * wheel_radius**2
        )
        c2 = (gear_ratio * torque_constant * motor_count) / (resistance * wheel_radius)

        self.d1 = 2.0 * c1 / mass
        self.d2 = c2 / mass * cfg.METERS_TO_INCHES
        self.d3 = 2.0 * robot_radius**2 * c1 / moment_of_inertia
        self.d4 = robot_radius * c2 / moment_of_inertia

    def step(self, state: np.ndarray, u: np.ndarray, dt: float) -> np.ndarray:
        """Propagate one state vector through ``dt`` seconds."""
        x, y, heading, vf, vs, omega = state
        u_left, u_right = u

        heading_mid = heading + 0.5 * omega * dt
        cos_h = math.cos(heading_mid)
        sin_h = math.sin(heading_mid)

        return np.array(
            [
                x + dt * (vf * cos_h - vs * sin_h),
                y + dt * (vf * sin_h + vs * cos_h),
                heading + dt * omega,
                vf + dt * (self.d1 * vf + self.d2 * (u_left + u_right)),
                vs + dt * self.d1 * vs,
                omega + dt * (self.d3 * omega + self.d4 * (u_right - u_left)),
            ],
            dtype=float,
        )


class UnscentedKalmanFilter:
    """UKF with ``2n+1`` symmetric sigma points and fixed weights.

    Attributes:
        x: State mean (6,).
        P: State covariance (6x6), kept symmetric positive-definite.
        Q: Process noise covariance (6x6).
        wm, wc: Mean and covariance weights of the sigma points.
        skipped_steps: Count of predict/update calls skipped for numerical reasons.
    """

    def __init__(
        self,
        x0: Optional[np.ndarray] = None,
        model: Optional[DrivetrainModel] = None,
        P0: Optional[np.ndarray] = None,
        Q: Optional[np.ndarray] = None,
        alpha: float = cfg.UKF_ALPHA,
        beta: float = cfg.UKF_BETA,
        kappa: float = cfg.UKF_KAPPA,
        dt: float = cfg.UKF_PREDICT_DT,
    ):
        self.n = STATE_SIZE
        self.x = np.zeros(self.n) if x0 is None else np.asarray(x0, dtype=float).copy()
        self.P = (cfg.UKF_P0 if P0 is None else np.asarray(P0, dtype=float)).copy()
        self.Q = (cfg.UKF_Q if Q is None else np.asarray(Q, dtype=float)).copy()
        self.model = model if model is not None else DrivetrainModel()
        self.dt = dt

        self.alpha = alpha
        self.beta = beta
        self.kappa = kappa
        self.lambda_ = alpha**2 * (self.n + kappa) - self.n
        self.wm, self.wc = self._weights()

        self.skipped_steps = 0

    def _weights(self):
        n_plus_lambda = self.n + self.lambda_
        count = 2 * self.n + 1

        wm = np.full(count, 1.0 / (2.0 * n_plus_lambda))
        wc = wm.copy()
        wm[0] = self.lambda_ / n_plus_lambda
        wc[0] = wm[0] + (1.0 - self.alpha**2 + self.beta)
        return wm, wc

    def sigma_points(self, x: np.ndarray, P: np.ndarray) -> np.ndarray:
        """Return the ``(2n+1, n)`` sigma points around ``x``.

        Raises:
            np.linalg.LinAlgError: If the scaled covariance is not
                positive-definite.
        """
        L = np.linalg.cholesky((self.n + self.lambda_) * P)
        sigmas = np.empty((2 * self.n + 1, self.n))
        sigmas[0] = x
        for i in range(self.n):
            sigmas[2 * i + 1] = x + L[:, i]
            sigmas[2 * i + 2] = x - L[:, i]
        return sigmas

    def predict(self, u: Sequence[float], dt: Optional[float] = None) -> bool:
        """Propagate the estimate through the forward model.

        Args:
            u: Per-side motor commands ``[left, right]`` (volts).
            dt: Step length (seconds). Defaults to the configured model step.

        Returns:
            True if the prediction was applied, False if it was skipped.
        """
        dt = self.dt if dt is None or dt <= 0 else dt
        u = np.asarray(u, dtype=float)

        try:
            sigmas = self.sigma_points(self.x, self.P)
        except np.linalg.LinAlgError:
            return self._skip("predict", "state covariance is not positive-definite")

        propagated = np.array([self.model.step(sigma, u, dt) for sigma in sigmas])
        x_pred = self.wm @ propagated

        diff = propagated - x_pred
        P_pred = (self.wc * diff.T) @ diff + self.Q
        P_pred = 0.5 * (P_pred + P_pred.T)

        if not self._is_positive_definite(P_pred):
            return self._skip("predict", "predicted covariance is not positive-definite")

        self.x = x_pred
        self.P = P_pred
        return True

    def update(
        self,
        z: Sequence[float],
        R: np.ndarray,
        measurement_fn: Callable[[np.ndarray], np.ndarray] = measure_pose,
        angle_indices: Sequence[int] = (HEADING_INDEX,),
    ) -> bool:
        """Correct the estimate with a measurement.

        Args:
            z: Measurement vector.
            R: Measurement noise covariance matching ``z``.
            measurement_fn: Maps a state to the expected measurement.
            angle_indices: Measurement components whose residuals are wrapped.

        Returns:
            True if the correction was applied, False if it was skipped
            because a covariance could not be factored or inverted.
        """
        z = np.asarray(z, dtype=float)
        R = np.asarray(R, dtype=float)

        try:
            sigmas = self.sigma_points(self.x, self.P)
        except np.linalg.LinAlgError:
            return self._skip("update", "state covariance is not positive-definite")

        z_sigmas = np.array([measurement_fn(sigma) for sigma in sigmas])
        z_pred = self.wm @ z_sigmas

        dz = z_sigmas - z_pred
        innovation = z - z_pred
        for index in angle_indices:
            dz[:, index] = [wrap_angle(value) for value in dz[:, index]]
            innovation[index] = wrap_angle(innovation[index])
        dx = sigmas - self.x

        S = (self.wc * dz.T) @ dz + R
        S = 0.5 * (S + S.T)
        Pxz = (self.wc * dx.T) @ dz

        try:
            np.linalg.cholesky(S)
            K = np.linalg.solve(S, Pxz.T).T
        except np.linalg.LinAlgError:
            return self._skip("update", "innovation covariance is not invertible")

        x_new = self.x + K @ innovation
        P_new = self.P - K @ S @ K.T
        P_new = 0.5 * (P_new + P_new.T)

        if not (np.all(np.isfinite(x_new)) and self._is_positive_definite(P_new)):
            return self._skip("update", "corrected covariance is not positive-definite")

        self.x = x_new
        self.P = P_new
        return True

    def reset(self, x: np.ndarray, P: Optional[np.ndarray] = None) -> None:
        self.x = np.asarray(x, dtype=float).copy()
        self.P = (cfg.UKF_P0 if P is None else np.asarray(P, dtype=float)).copy()

    @staticmethod
    def _is_positive_definite(matrix: np.ndarray) -> bool:
        if not np.all(np.isfinite(matrix)):
            return False
        try:
            np.linalg.cholesky(matrix)
        except np.linalg.LinAlgError:
            return False
        return True

    def _skip(self, step: str, reason: str) -> bool:
        self.skipped_steps += 1
        logging.warning(f"UKF {step} skipped: {reason}")
        return False


class UkfLocalizer:
    """Pose source that fuses odometry and the aux sensor through the UKF.

    Each tick:
    1. Predict from the drivetrain's current motor voltages.
    2. Tick the odometry engine and read its pose as sensor A.
    3. If the aux sensor has a reading, add its velocities as sensor B.
    4. Correct and publish a new Pose snapshot.
    """

    def __init__(
        self,
        odometry: Odometry,
        left: MotorGroup,
        right: MotorGroup,
        aux_sensor=None,
        ukf: Optional[UnscentedKalmanFilter] = None,
        clock: Optional[Clock] = None,
        period: float = cfg.LOCALIZATION_PERIOD,
    ):
        if period <= 0:
            raise ValueError(f"Localization period must be positive, got {period}")

        self.odometry = odometry
        self.left = left
        self.right = right
        self.aux_sensor = aux_sensor
        self.clock = clock if clock is not None else Clock()
        self.period = period

        self.ukf = ukf if ukf is not None else UnscentedKalmanFilter()
        self.ukf.reset(self._state_from_pose(odometry.pose()))
        self.R_odometry = np.diag(cfg.UKF_R_ODOMETRY_DIAG)
        self.R_full = np.diag(cfg.UKF_R_ODOMETRY_DIAG + cfg.UKF_R_AUX_DIAG)

        self._pose = odometry.pose()
        self.prev_time: Optional[float] = None

    @staticmethod
    def _state_from_pose(pose: Pose) -> np.ndarray:
        return np.array(
            [
                pose.x,
                pose.y,
                pose.heading,
                pose.forward_velocity,
                pose.lateral_velocity,
                pose.angular_velocity,
            ],
            dtype=float,
        )

    def pose(self) -> Pose:
        return self._pose

    def set_pose(self, pose: Pose) -> None:
        self.odometry.set_pose(pose)
        self.ukf.reset(self._state_from_pose(pose))
        self._pose = pose

    async def calibrate(self) -> None:
        await self.odometry.calibrate()

    def update(self) -> Pose:
        """Run one predict/correct cycle and publish the new pose."""
        now = self.clock.now()
        dt = None if self.prev_time is None else now - self.prev_time
        self.prev_time = now

        self.ukf.predict([self.left.voltage(), self.right.voltage()], dt)

        odom = self.odometry.update()
        reading = self.aux_sensor.latest() if self.aux_sensor is not None else None

        if reading is None:
            self.ukf.update([odom.x, odom.y, odom.heading], self.R_odometry, measure_pose)
        else:
            self.ukf.update(
                [
                    odom.x,
                    odom.y,
                    odom.heading,
                    reading.forward_velocity,
                    reading.lateral_velocity,
                    reading.angular_velocity,
                ],
                self.R_full,
                measure_pose_and_velocity,
            )

        x, y, heading, vf, vs, omega = (float(value) for value in self.ukf.x)
        self._pose = Pose(x, y, heading, vf, vs, omega)
        return self._pose

    async def run(self) -> None:
        while True:
            self.update()
            await self.clock.sleep(self.period)
