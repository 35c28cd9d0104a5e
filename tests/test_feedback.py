import numpy as np

from drive_control.feedback import MotorController, Pid


def test_pid_proportional_only() -> None:
    pid = Pid(2.0)
    assert pid.output(3.0, 0.01) == 6.0


def test_pid_integral_accumulates_across_calls() -> None:
    pid = Pid(0.0, ki=1.0)
    for _ in range(10):
        pid.output(2.0, 0.1)
    assert np.isclose(pid.integral, 2.0)
    assert np.isclose(pid.output(0.0, 0.1), 2.0)


def test_pid_derivative() -> None:
    pid = Pid(0.0, kd=1.0)
    assert pid.output(1.0, 0.1) == 0.0
    assert np.isclose(pid.output(2.0, 0.1), 10.0)


def test_pid_zero_dt_is_guarded() -> None:
    pid = Pid(1.0, ki=1.0, kd=1.0)
    pid.output(1.0, 0.1)
    output = pid.output(5.0, 0.0)
    assert np.isfinite(output)
    assert np.isclose(pid.integral, 0.1)
    assert np.isclose(output, 5.0 + 0.1)


def test_pid_restart_keeps_integral() -> None:
    pid = Pid(0.0, ki=1.0, kd=1.0)
    pid.output(1.0, 1.0)
    pid.restart()
    assert pid.prev_error is None
    assert pid.integral == 1.0
    pid.reset()
    assert pid.integral == 0.0


def test_feedforward_deadband_and_sign() -> None:
    controller = MotorController(Pid(0.0), ks=0.5, kv=0.1, ka=0.01)
    assert controller.feedforward(0.0) == 0.0
    assert controller.feedforward(1e-9) == 0.0
    assert np.isclose(controller.feedforward(100.0), 0.5 + 10.0)
    assert np.isclose(controller.feedforward(-100.0), -0.5 - 10.0)
    assert np.isclose(controller.feedforward(100.0, acceleration=50.0), 0.5 + 10.0 + 0.5)


def test_motor_controller_adds_pid_correction() -> None:
    times = iter([0.0, 0.01])
    controller = MotorController(Pid(0.1), ks=0.0, kv=0.02, clock=lambda: next(times))
    first = controller.output(100.0, 90.0)
    assert np.isclose(first, 2.0 + 1.0)
    second = controller.output(100.0, 100.0)
    assert np.isclose(second, 2.0)


def test_pid_diagnostics() -> None:
    pid = Pid.from_gains((1.0, 0.5, 0.1))
    pid.output(2.0, 0.5)
    diagnostics = pid.get_diagnostics()
    assert diagnostics["kp"] == 1.0
    assert diagnostics["integral"] == 1.0
    assert diagnostics["prev_error"] == 2.0
