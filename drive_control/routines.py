"""Pre-scripted autonomous routines.

A routine is a coroutine taking a ``Robot`` and issuing motion primitive
calls in sequence. Routines are registered by name so the operator surface
(``--routine`` on the command line) can select one.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict

from .drivetrain import Drivetrain
from .field import Color, landmark
from .geometry import Pose, Vec2
from .motion import Direction, Linear, MotionOptions, MoveTo, Ramsete, Swing, Turn
from .path import CubicBezier, generate_trajectory
from .timing import Clock


@dataclass
class Robot:
    """Everything a routine needs: the drivetrain plus one of each primitive."""

    drivetrain: Drivetrain
    clock: Clock
    color: Color = Color.RED
    linear: Linear = field(init=False)
    turn: Turn = field(init=False)
    swing: Swing = field(init=False)
    move_to: MoveTo = field(init=False)
    ramsete: Ramsete = field(init=False)

    def __post_init__(self):
        self.linear = Linear(clock=self.clock)
        self.turn = Turn(clock=self.clock)
        self.swing = Swing(clock=self.clock)
        self.move_to = MoveTo(clock=self.clock)
        self.ramsete = Ramsete(
            track_width=self.drivetrain.track_width,
            wheel_diameter=self.drivetrain.wheel_diameter,
            gearing=self.drivetrain.gearing,
            clock=self.clock,
        )


Routine = Callable[[Robot], Awaitable[None]]

ROUTINES: Dict[str, Routine] = {}


def routine(name: str) -> Callable[[Routine], Routine]:
    """Register a routine under ``name``."""

    def register(func: Routine) -> Routine:
        if name in ROUTINES:
            raise ValueError(f"Routine '{name}' is already registered")
        ROUTINES[name] = func
        return func

    return register


def get_routine(name: str) -> Routine:
    """Look up a registered routine.

    Raises:
        ValueError: If no routine has that name.
    """
    try:
        return ROUTINES[name]
    except KeyError:
        raise ValueError(f"Unknown routine '{name}', expected one of {sorted(ROUTINES)}") from None


@routine("square")
async def drive_square(robot: Robot) -> None:
    """Drive a 24 in square counter-clockwise and return to the start."""
    heading = robot.drivetrain.pose().heading
    for side in range(4):
        await robot.linear.drive_distance(robot.drivetrain, 24.0, MotionOptions(timeout=3.0))
        heading += math.pi / 2.0
        await robot.turn.turn_to(robot.drivetrain, heading, MotionOptions(timeout=2.0))
        logging.info(f"Side {side + 1}: {robot.drivetrain.pose()}")


@routine("loader")
async def loader_run(robot: Robot) -> None:
    """Start beside the left loader, collect from it and back into the left goal."""
    start = landmark("left_loader", robot.color)
    goal = landmark("left_goal", robot.color)
    # 24 in out from the loader, facing away from it
    away = 1.0 if robot.color is Color.RED else -1.0
    robot.drivetrain.set_pose(Pose(x=start.x, y=start.y + away * 24.0, heading=away * math.pi / 2.0))

    await robot.turn.turn_to_point(robot.drivetrain, start, MotionOptions(timeout=1.5))
    await robot.move_to.move_to_point(robot.drivetrain, start, MotionOptions(timeout=3.0))
    await robot.linear.drive_distance(robot.drivetrain, -6.0, MotionOptions(timeout=1.0, chain=True))
    await robot.turn.turn_to_point(
        robot.drivetrain, goal, MotionOptions(timeout=1.5), direction=Direction.REVERSE
    )
    await robot.move_to.move_to_point(
        robot.drivetrain, goal, MotionOptions(timeout=3.0, speed=0.8), direction=Direction.REVERSE
    )


@routine("swing")
async def swing_turns(robot: Robot) -> None:
    """Swing 90 degrees left about the left wheel, then back about the right wheel."""
    half_track = robot.drivetrain.track_width / 2.0
    heading = robot.drivetrain.pose().heading
    await robot.swing.swing_to(robot.drivetrain, heading + math.pi / 2.0, half_track, MotionOptions(timeout=3.0))
    await robot.swing.swing_to(robot.drivetrain, heading, -half_track, MotionOptions(timeout=3.0))


@routine("s_curve")
async def s_curve(robot: Robot) -> None:
    """Follow an S-shaped trajectory 48 in forward and 24 in to the left."""
    pose = robot.drivetrain.pose()
    origin = pose.position
    curve = CubicBezier(
        origin,
        origin + Vec2(24.0, 0.0).rotated(pose.heading),
        origin + Vec2(24.0, 24.0).rotated(pose.heading),
        origin + Vec2(48.0, 24.0).rotated(pose.heading),
    )
    trajectory = generate_trajectory(curve, track_width=robot.drivetrain.track_width)
    await robot.ramsete.follow(robot.drivetrain, trajectory, MotionOptions(timeout=6.0))
