"""
Component selection modes.

This module defines which estimation and actuation components are active,
so each one's contribution can be evaluated on its own.
"""

import argparse
import sys
from dataclasses import dataclass


@dataclass
class ComponentMode:
    """Configuration for which components are active."""

    # Pose source
    use_ukf: bool = False  # If False, tracking-wheel odometry alone
    use_aux_sensor: bool = False  # Feed the aux sensor's velocities into the UKF

    # Actuation
    use_feedforward: bool = True  # If False, motors' built-in velocity mode

    def __str__(self):
        """Human-readable description of active components."""
        components = []

        if self.use_ukf:
            components.append("UKF(odometry + aux)" if self.use_aux_sensor else "UKF(odometry)")
        else:
            components.append("Odometry")

        if self.use_feedforward:
            components.append("Velocity(FF+PID)")
        else:
            components.append("Velocity(Builtin)")

        return " → ".join(components)

    def to_dict(self):
        """Convert to dictionary for logging."""
        return {
            "use_ukf": self.use_ukf,
            "use_aux_sensor": self.use_aux_sensor,
            "use_feedforward": self.use_feedforward,
        }


def parse_component_flags(args=None):
    """
    Parse command-line flags to determine which components are active.

    Args:
        args: List of command-line arguments (default: sys.argv[1:])

    Returns:
        tuple: (ComponentMode, remaining_args)
            - ComponentMode with appropriate settings
            - List of remaining arguments not consumed

    The aux sensor is only fused by the UKF, so ``--aux-sensor`` implies ``--ukf``.
    """
    parser = argparse.ArgumentParser(add_help=False)

    parser.add_argument("--ukf", action="store_true",
                        help="Estimate pose with the UKF instead of odometry alone")
    parser.add_argument("--aux-sensor", action="store_true",
                        help="Fuse the auxiliary optical sensor (implies --ukf)")
    parser.add_argument("--no-feedforward", action="store_true",
                        help="Use the motors' built-in velocity mode instead of feedforward + PID")

    # Parse known args, keep the rest
    if args is None:
        args = sys.argv[1:]

    known_args, remaining_args = parser.parse_known_args(args)

    mode = ComponentMode(
        use_ukf=known_args.ukf or known_args.aux_sensor,
        use_aux_sensor=known_args.aux_sensor,
        use_feedforward=not known_args.no_feedforward,
    )

    return mode, remaining_args
