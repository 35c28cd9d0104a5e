#!/usr/bin/env python3
"""
WebSocket Client for Remote Robot Control

This module connects the control core to a robot bridge or simulator over a
WebSocket. Sensor messages come in, motor commands go out, and remote driver
adapters expose the latest readings through the same duck-typed driver
interfaces the core uses on real hardware. A selected routine then runs
against the resulting drivetrain. With ``--sim`` the same routine runs
fully offline against ``sim.SimulatedRobot`` in virtual time.

Messages in:
    {"message_type": "sensors", "sensors": [{"name": ..., "data": [...]}, ...]}
        forward_encoder / lateral_encoder: [ticks]
        imu* (one or more): [rotation in degrees, clockwise]
        left_motors / right_motors: [voltage, rpm]
    {"message_type": "aux_response", "data": "<hex bytes>"}

Messages out:
    {"message_type": "command", "left": {"mode": "voltage"|"velocity", "value": v}, "right": {...}}
    {"message_type": "aux_request", "data": "<hex bytes>", "response_size": n}
"""

import asyncio
import json
import logging
import signal
from typing import Any, Coroutine, Dict, List, Optional, Tuple, Union

import websockets

from drive_control.aux_sensor import AuxiliarySensor
from drive_control.component_modes import ComponentMode
from drive_control.config import (
    FORWARD_WHEEL_OFFSET,
    LATERAL_WHEEL_OFFSET,
    MOTOR_KA,
    MOTOR_KP,
    MOTOR_KS,
    MOTOR_KV,
    TERM_BLUE,
    TERM_ORANGE,
    TERM_RESET,
    TRACKING_WHEEL_DIAMETER,
    WS_MAX_RETRY_DELAY_SECONDS,
    WS_RETRY_DELAY_SECONDS,
    WS_TIMEOUT_SECONDS,
    WS_URI,
)
from drive_control.drivetrain import Drivetrain
from drive_control.feedback import MotorController, Pid
from drive_control.field import Color
from drive_control.hardware import DeviceError, Imu, MotorGroup, TrackingWheel
from drive_control.localizer import Odometry, PoseSource
from drive_control.routines import Robot, Routine, get_routine
from drive_control.sim import build_simulation
from drive_control.timing import Clock
from drive_control.ukf import UkfLocalizer


class CustomFormatter(logging.Formatter):
    """Custom logging formatter that removes timestamps from INFO messages.

    This formatter provides clean console output by showing INFO messages without
    timestamps while preserving full context for WARNING, ERROR, and DEBUG messages.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record based on its level.

        Args:
            record: The log record to format.

        Returns:
            Formatted log message string.
        """
        if record.levelno == logging.INFO:
            return record.getMessage()
        else:
            return f"{self.formatTime(record, self.datefmt)} - {record.levelname} - {record.getMessage()}"


def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity level.

    Args:
        verbose: If True, show all levels with timestamps. If False, show INFO
                 without timestamps and WARNING/ERROR with timestamps.
    """
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    else:
        handler = logging.StreamHandler()
        formatter = CustomFormatter(datefmt="%Y-%m-%d %H:%M:%S")
        handler.setFormatter(formatter)
        logger = logging.getLogger()
        logger.setLevel(logging.INFO)
        logger.addHandler(handler)


class RemoteEncoder:
    """Encoder driver backed by the latest sensor message."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.value: Optional[float] = None

    def position(self) -> float:
        if self.value is None:
            raise DeviceError(f"No {self.name} reading")
        return self.value


class RemoteHeadingSensor:
    """Heading sensor driver backed by the latest sensor message.

    ``set_rotation`` is applied locally as an offset on the remote reading.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self.value: Optional[float] = None
        self.offset: float = 0.0

    def rotation(self) -> float:
        if self.value is None:
            raise DeviceError(f"No {self.name} reading")
        return (self.value + self.offset) % 360.0

    def set_rotation(self, degrees: float) -> None:
        if self.value is None:
            raise DeviceError(f"No {self.name} reading")
        self.offset = degrees - self.value

    async def calibrate(self) -> None:
        # The bridge calibrates its sensors before streaming
        return None


class RemoteMotor:
    """Motor driver that records the latest command for the next outgoing message."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.mode: str = "voltage"
        self.command: float = 0.0
        self.measured_voltage: Optional[float] = None
        self.measured_rpm: Optional[float] = None

    def set_voltage(self, voltage: float) -> None:
        self.mode = "voltage"
        self.command = voltage

    def set_velocity(self, rpm: float) -> None:
        self.mode = "velocity"
        self.command = rpm

    def voltage(self) -> float:
        if self.measured_voltage is None:
            raise DeviceError(f"No {self.name} reading")
        return self.measured_voltage

    def velocity(self) -> float:
        if self.measured_rpm is None:
            raise DeviceError(f"No {self.name} reading")
        return self.measured_rpm

    def to_dict(self) -> Dict[str, Any]:
        return {"mode": self.mode, "value": self.command}


class RobotLink:
    """WebSocket link to a robot bridge or simulator.

    Attributes:
        uri: WebSocket URI to connect to.
        forward_encoder, lateral_encoder: Remote tracking wheel encoders.
        heading_sensors: Remote heading sensors by name, discovered from the
            first sensor message.
        left_motor, right_motor: Remote motor groups.
        ready: Set once the first sensor message has been processed.
        should_stop: Flag indicating whether to stop the receive loop.
    """

    def __init__(self, uri: str) -> None:
        """Initialize the link.

        Args:
            uri: WebSocket URI to connect to (must start with ws:// or wss://).

        Raises:
            ValueError: If URI format is invalid.
        """
        if not uri or not uri.startswith(("ws://", "wss://")):
            raise ValueError(f"Invalid WebSocket URI: {uri}. Must start with 'ws://' or 'wss://'")

        self.uri: str = uri
        self.should_stop: bool = False

        self.forward_encoder = RemoteEncoder("forward_encoder")
        self.lateral_encoder = RemoteEncoder("lateral_encoder")
        self.heading_sensors: Dict[str, RemoteHeadingSensor] = {}
        self.left_motor = RemoteMotor("left_motors")
        self.right_motor = RemoteMotor("right_motors")

        self.ready = asyncio.Event()
        self.websocket: Any = None
        self._aux_pending: Optional[asyncio.Future] = None
        self.sensor_messages: int = 0

    def process_sensor_message(self, data: Dict[str, Any]) -> None:
        """Update the remote drivers from a sensor message.

        Args:
            data: Parsed JSON message containing sensor data.
        """
        sensors = data.get("sensors", [])

        if not isinstance(sensors, list):
            logging.warning(f"Invalid sensors data type: expected list, got {type(sensors)}")
            return

        for sensor in sensors:
            sensor_name = sensor.get("name")
            sensor_data: List[float] = sensor.get("data", [])

            if sensor_name == "forward_encoder" and len(sensor_data) >= 1:
                self.forward_encoder.value = float(sensor_data[0])

            elif sensor_name == "lateral_encoder" and len(sensor_data) >= 1:
                self.lateral_encoder.value = float(sensor_data[0])

            elif isinstance(sensor_name, str) and sensor_name.startswith("imu") and len(sensor_data) >= 1:
                if sensor_name not in self.heading_sensors:
                    self.heading_sensors[sensor_name] = RemoteHeadingSensor(sensor_name)
                self.heading_sensors[sensor_name].value = float(sensor_data[0])

            elif sensor_name in ("left_motors", "right_motors") and len(sensor_data) >= 2:
                motor = self.left_motor if sensor_name == "left_motors" else self.right_motor
                motor.measured_voltage = float(sensor_data[0])
                motor.measured_rpm = float(sensor_data[1])

        self.sensor_messages += 1
        if self.heading_sensors and not self.ready.is_set():
            self.ready.set()

    def process_aux_response(self, data: Dict[str, Any]) -> None:
        """Resolve the pending aux sensor request with the response bytes."""
        if self._aux_pending is None or self._aux_pending.done():
            logging.debug("Unsolicited aux sensor response ignored")
            return
        self._aux_pending.set_result(bytes.fromhex(data.get("data", "")))

    def parse_and_route_message(self, message: Union[str, bytes]) -> Optional[str]:
        """Parse incoming message and route to appropriate handler.

        Args:
            message: Raw JSON message string or bytes from WebSocket.

        Returns:
            The message type, or None if the message could not be processed.
        """
        try:
            if isinstance(message, bytes):
                message = message.decode("utf-8")
            data = json.loads(message)

            message_type = data.get("message_type")

            if message_type == "sensors":
                self.process_sensor_message(data)
            elif message_type == "aux_response":
                self.process_aux_response(data)
            else:
                logging.debug(f"\nReceived unknown message: {json.dumps(data, indent=2)}\n")
            return message_type

        except json.JSONDecodeError as e:
            logging.error(f"Error parsing JSON: {e}")
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logging.error(f"Error processing message data: {e}")
        return None

    def command_message(self) -> str:
        return json.dumps(
            {
                "message_type": "command",
                "left": self.left_motor.to_dict(),
                "right": self.right_motor.to_dict(),
            }
        )

    async def aux_transport(self, request: bytes, response_size: int) -> bytes:
        """Relay one aux sensor request over the link and wait for its response.

        Raises:
            DeviceError: If not connected or the response does not arrive in time.
        """
        if self.websocket is None:
            raise DeviceError("Not connected")

        self._aux_pending = asyncio.get_running_loop().create_future()
        try:
            await self.websocket.send(
                json.dumps(
                    {
                        "message_type": "aux_request",
                        "data": request.hex(),
                        "response_size": response_size,
                    }
                )
            )
            return await asyncio.wait_for(self._aux_pending, timeout=WS_TIMEOUT_SECONDS)
        except asyncio.TimeoutError:
            raise DeviceError("Aux sensor response timed out") from None
        except websockets.exceptions.ConnectionClosed as e:
            raise DeviceError(f"Connection closed during aux request: {e}") from None
        finally:
            self._aux_pending = None

    def _clear_readings(self) -> None:
        self.forward_encoder.value = None
        self.lateral_encoder.value = None
        for sensor in self.heading_sensors.values():
            sensor.value = None
        for motor in (self.left_motor, self.right_motor):
            motor.measured_voltage = None
            motor.measured_rpm = None

    async def run(self) -> None:
        """Connect and pump messages until stopped.

        Maintains a connection to the WebSocket server with automatic retry logic
        and exponential backoff. Every sensor message is answered with the
        current motor commands. While disconnected the remote drivers raise
        ``DeviceError``, which the core treats as "no update this tick".
        """
        retry_delay = WS_RETRY_DELAY_SECONDS
        max_retry_delay = WS_MAX_RETRY_DELAY_SECONDS

        while not self.should_stop:
            try:
                async with websockets.connect(self.uri) as websocket:
                    logging.info(f"{TERM_BLUE}✓ Connected to server{TERM_RESET}")
                    self.websocket = websocket
                    retry_delay = WS_RETRY_DELAY_SECONDS

                    while not self.should_stop:
                        try:
                            message = await asyncio.wait_for(
                                websocket.recv(), timeout=WS_TIMEOUT_SECONDS
                            )
                            if self.parse_and_route_message(message) == "sensors":
                                await websocket.send(self.command_message())

                        except asyncio.TimeoutError:
                            logging.warning("No message received from server")
                            continue
                        except websockets.exceptions.ConnectionClosed:
                            logging.warning("Connection closed by server")
                            break

            except Exception as e:
                if self.should_stop:
                    break
                logging.error(f"Connection error: {e}")
                logging.info(f"Retrying in {retry_delay} seconds...")
                await asyncio.sleep(retry_delay)
                retry_delay = min(retry_delay * 2, max_retry_delay)
            finally:
                self.websocket = None
                self._clear_readings()

    def stop(self) -> None:
        """Signal the link to stop."""
        self.should_stop = True


def build_remote_robot(
    link: RobotLink,
    component_mode: ComponentMode,
    color: Color = Color.RED,
    clock: Optional[Clock] = None,
) -> Tuple[Robot, Optional[AuxiliarySensor]]:
    """Wire the control core to a connected link's remote drivers.

    Call after ``link.ready`` is set so the heading sensors are known.

    Returns:
        (robot, aux_sensor). The aux sensor is None unless enabled.
    """
    clock = clock if clock is not None else Clock()

    forward = TrackingWheel(link.forward_encoder, TRACKING_WHEEL_DIAMETER, FORWARD_WHEEL_OFFSET)
    lateral = TrackingWheel(link.lateral_encoder, TRACKING_WHEEL_DIAMETER, LATERAL_WHEEL_OFFSET)
    imu = Imu(list(link.heading_sensors.values()))
    odometry = Odometry(forward, lateral, imu, clock=clock)

    def controller() -> Optional[MotorController]:
        if not component_mode.use_feedforward:
            return None
        return MotorController(Pid(MOTOR_KP), MOTOR_KS, MOTOR_KV, MOTOR_KA, clock=clock.now)

    left = MotorGroup([link.left_motor], controller())
    right = MotorGroup([link.right_motor], controller())

    aux_sensor = AuxiliarySensor(link.aux_transport, clock) if component_mode.use_aux_sensor else None
    pose_source: PoseSource
    if component_mode.use_ukf:
        pose_source = UkfLocalizer(odometry, left, right, aux_sensor, clock=clock)
    else:
        pose_source = odometry

    drivetrain = Drivetrain(left, right, pose_source)
    return Robot(drivetrain, clock, color), aux_sensor


async def run_routine(robot: Robot, routine: Routine, background: List[Coroutine]) -> None:
    """Run ``routine`` with background tasks alive, then cancel them."""
    tasks = [asyncio.create_task(coroutine) for coroutine in background]
    try:
        await routine(robot)
    finally:
        robot.drivetrain.set_voltages(0.0, 0.0)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


async def run_remote(routine: Routine, component_mode: ComponentMode, color: Color, uri: str) -> None:
    link = RobotLink(uri)
    link_task = asyncio.create_task(link.run())

    loop = asyncio.get_running_loop()
    current = asyncio.current_task()

    def signal_handler() -> None:
        """Handle shutdown signals (SIGINT, SIGTERM)."""
        logging.info("\nShutdown signal received...")
        link.stop()
        if current is not None:
            current.cancel()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await link.ready.wait()
        robot, aux_sensor = build_remote_robot(link, component_mode, color)
        await robot.drivetrain.pose_source.calibrate()

        background = [robot.drivetrain.pose_source.run()]
        if aux_sensor is not None and await aux_sensor.initialize():
            background.append(aux_sensor.run())

        logging.info(f"{TERM_BLUE}✓ Running routine{TERM_RESET}")
        await run_routine(robot, routine, background)
        logging.info(f"{TERM_BLUE}\033[1m→ Final pose: {robot.drivetrain.pose()}{TERM_RESET}")
    except asyncio.CancelledError:
        logging.info("Routine stopped")
    finally:
        link.stop()
        link_task.cancel()
        await asyncio.gather(link_task, return_exceptions=True)


async def run_offline(routine: Routine, component_mode: ComponentMode, color: Color) -> Robot:
    """Run ``routine`` against the simulator in virtual time."""
    if component_mode.use_aux_sensor:
        logging.warning(f"{TERM_ORANGE}Aux sensor is not simulated, running without it{TERM_RESET}")

    simulation = build_simulation(
        use_ukf=component_mode.use_ukf,
        use_feedforward=component_mode.use_feedforward,
    )
    robot = Robot(simulation.drivetrain, simulation.clock, color)
    await simulation.pose_source.calibrate()
    await run_routine(robot, routine, [])

    estimate = robot.drivetrain.pose()
    truth = simulation.robot.pose()
    logging.info(f"{TERM_BLUE}\033[1m→ Estimated pose: {estimate}{TERM_RESET}")
    logging.info(
        f"{TERM_BLUE}\033[1m→ True pose: {truth}  "
        f"(after {simulation.clock.now():.2f}s simulated){TERM_RESET}"
    )
    return robot


async def main(
    routine_name: str = "square",
    component_mode: Optional[ComponentMode] = None,
    color: Color = Color.RED,
    offline: bool = False,
    uri: str = WS_URI,
) -> None:
    """Main entry point for the client.

    Args:
        routine_name: Registered routine to run.
        component_mode: ComponentMode configuration for component selection.
        color: Alliance color, selects the mirrored field landmarks.
        offline: Run against the simulator instead of connecting.
        uri: WebSocket URI of the robot bridge.

    Raises:
        ValueError: If the routine name is unknown.
    """
    if component_mode is None:
        component_mode = ComponentMode()
    routine = get_routine(routine_name)

    logging.info(f"{TERM_BLUE}Component Configuration: {component_mode}{TERM_RESET}")
    logging.info(f"Config: {component_mode.to_dict()}")
    logging.info(f"{TERM_BLUE}Routine: {routine_name} ({color.value}){TERM_RESET}")

    if offline:
        await run_offline(routine, component_mode, color)
    else:
        await run_remote(routine, component_mode, color, uri)
