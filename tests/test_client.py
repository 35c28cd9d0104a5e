import asyncio
import json
import logging
import math

import pytest

from drive_control.aux_sensor import AuxiliarySensor, Command, Packet, Response
from drive_control.client import (
    CustomFormatter,
    RemoteEncoder,
    RemoteHeadingSensor,
    RobotLink,
    build_remote_robot,
    main,
    run_offline,
)
from drive_control.component_modes import ComponentMode, parse_component_flags
from drive_control.field import Color
from drive_control.geometry import Vec2, wrap_angle
from drive_control.hardware import DeviceError
from drive_control.localizer import Odometry
from drive_control.routines import ROUTINES, get_routine, routine
from drive_control.ukf import UkfLocalizer


def sensor_message(forward=0.0, lateral=0.0, imu=0.0, left=(0.0, 0.0), right=(0.0, 0.0)) -> str:
    return json.dumps(
        {
            "message_type": "sensors",
            "sensors": [
                {"name": "forward_encoder", "data": [forward]},
                {"name": "lateral_encoder", "data": [lateral]},
                {"name": "imu_0", "data": [imu]},
                {"name": "left_motors", "data": list(left)},
                {"name": "right_motors", "data": list(right)},
            ],
        }
    )


class LoopbackSocket:
    """Answers aux requests through the link's own message routing."""

    def __init__(self, link: RobotLink, respond) -> None:
        self.link = link
        self.respond = respond
        self.sent = []

    async def send(self, message: str) -> None:
        data = json.loads(message)
        self.sent.append(data)
        response = self.respond(bytes.fromhex(data["data"]))
        if response is not None:
            answer = json.dumps({"message_type": "aux_response", "data": response.hex()})
            asyncio.get_running_loop().call_soon(self.link.parse_and_route_message, answer)


def test_invalid_uri_raises() -> None:
    with pytest.raises(ValueError):
        RobotLink("http://localhost:8765")
    with pytest.raises(ValueError):
        RobotLink("")


def test_sensor_message_updates_drivers() -> None:
    link = RobotLink("ws://localhost:8765")
    assert not link.ready.is_set()

    message_type = link.parse_and_route_message(
        sensor_message(forward=100.0, lateral=-5.0, imu=90.0, left=(6.0, 200.0))
    )

    assert message_type == "sensors"
    assert link.ready.is_set()
    assert link.forward_encoder.position() == 100.0
    assert link.lateral_encoder.position() == -5.0
    assert link.heading_sensors["imu_0"].rotation() == 90.0
    assert link.left_motor.voltage() == 6.0
    assert link.left_motor.velocity() == 200.0


def test_malformed_messages_are_ignored() -> None:
    link = RobotLink("ws://localhost:8765")
    assert link.parse_and_route_message("{not json") is None
    assert link.parse_and_route_message(json.dumps({"message_type": "sensors", "sensors": "bad"})) == "sensors"
    assert link.parse_and_route_message(b'{"message_type": "hello"}') == "hello"
    assert not link.ready.is_set()


def test_remote_drivers_raise_without_readings() -> None:
    with pytest.raises(DeviceError):
        RemoteEncoder("forward_encoder").position()
    with pytest.raises(DeviceError):
        RemoteHeadingSensor("imu_0").rotation()


def test_remote_heading_sensor_offset() -> None:
    sensor = RemoteHeadingSensor("imu_0")
    sensor.value = 30.0
    sensor.set_rotation(350.0)
    assert sensor.rotation() == 350.0
    sensor.value = 40.0
    assert math.isclose(sensor.rotation(), 0.0, abs_tol=1e-9)


def test_command_message_reflects_last_writes() -> None:
    link = RobotLink("ws://localhost:8765")
    link.left_motor.set_voltage(-4.0)
    link.right_motor.set_velocity(250.0)
    command = json.loads(link.command_message())
    assert command == {
        "message_type": "command",
        "left": {"mode": "voltage", "value": -4.0},
        "right": {"mode": "velocity", "value": 250.0},
    }


def test_aux_transport_round_trip() -> None:
    link = RobotLink("ws://localhost:8765")

    def respond(request: bytes) -> bytes:
        assert Packet.from_bytes(request).id == Command.IS_CALIBRATING
        return Packet.new(Response.SUCCESS).to_bytes()

    async def scenario() -> bool:
        link.websocket = LoopbackSocket(link, respond)
        sensor = AuxiliarySensor(link.aux_transport)
        return await sensor.wait_for_calibration()

    assert asyncio.run(scenario())
    assert link.websocket.sent[0]["message_type"] == "aux_request"
    assert link.websocket.sent[0]["response_size"] == 2


def test_aux_transport_requires_connection() -> None:
    link = RobotLink("ws://localhost:8765")
    with pytest.raises(DeviceError):
        asyncio.run(link.aux_transport(Packet.new(Command.CHECK).to_bytes(), 2))


def test_build_remote_robot_selects_pose_source() -> None:
    link = RobotLink("ws://localhost:8765")
    link.parse_and_route_message(sensor_message())

    robot, aux_sensor = build_remote_robot(link, ComponentMode())
    assert isinstance(robot.drivetrain.pose_source, Odometry)
    assert aux_sensor is None
    assert robot.drivetrain.left.controller is not None

    robot, aux_sensor = build_remote_robot(
        link, ComponentMode(use_ukf=True, use_aux_sensor=True, use_feedforward=False), Color.BLUE
    )
    assert isinstance(robot.drivetrain.pose_source, UkfLocalizer)
    assert robot.drivetrain.pose_source.aux_sensor is aux_sensor
    assert robot.drivetrain.left.controller is None
    assert robot.color is Color.BLUE


def test_component_flags() -> None:
    mode, remaining = parse_component_flags(["--aux-sensor", "--sim", "--routine", "swing"])
    assert mode.use_ukf
    assert mode.use_aux_sensor
    assert mode.use_feedforward
    assert remaining == ["--sim", "--routine", "swing"]
    assert "aux" in str(mode)

    mode, _ = parse_component_flags(["--no-feedforward"])
    assert mode.to_dict() == {"use_ukf": False, "use_aux_sensor": False, "use_feedforward": False}


def test_routine_registry() -> None:
    assert {"square", "loader", "swing", "s_curve"} <= set(ROUTINES)
    with pytest.raises(ValueError):
        get_routine("dance")
    with pytest.raises(ValueError):
        routine("square")(ROUTINES["square"])


def test_offline_square_returns_to_start() -> None:
    robot = asyncio.run(run_offline(get_routine("square"), ComponentMode(), Color.RED))
    pose = robot.drivetrain.pose()
    assert pose.distance(Vec2(0.0, 0.0)) < 3.0
    assert abs(wrap_angle(pose.heading)) < math.radians(3.0)


def test_offline_s_curve_with_ukf() -> None:
    robot = asyncio.run(run_offline(get_routine("s_curve"), ComponentMode(use_ukf=True), Color.RED))
    assert robot.drivetrain.pose().distance(Vec2(48.0, 24.0)) < 4.0


def test_offline_loader_run() -> None:
    asyncio.run(run_offline(get_routine("loader"), ComponentMode(), Color.BLUE))


def test_info_messages_have_no_timestamp() -> None:
    formatter = CustomFormatter()
    info = logging.LogRecord("test", logging.INFO, __file__, 1, "hello", None, None)
    warning = logging.LogRecord("test", logging.WARNING, __file__, 1, "careful", None, None)
    assert formatter.format(info) == "hello"
    assert formatter.format(warning).endswith("WARNING - careful")


def test_main_logs_component_configuration(caplog) -> None:
    caplog.set_level(logging.INFO)
    asyncio.run(main("swing", ComponentMode(use_ukf=True), offline=True))
    assert "Config: {'use_ukf': True, 'use_aux_sensor': False, 'use_feedforward': True}" in caplog.text
