"""Forward prediction of the vehicle pose over the actuation latency.

A command computed now only reaches the actuators after ``latency``
seconds, during which the previous command is still in effect. Planning
therefore starts from the pose predicted at that instant.
"""

import math

from mpctrack.control.state import Pose, Actuation
from mpctrack.errors import DegenerateInput


def compensate_latency(pose: Pose, actuation: Actuation, latency: float, lf: float) -> Pose:
    """One forward-Euler step of the kinematic bicycle model.

    Equations:
        x'   = x + v * cos(psi) * dt
        y'   = y + v * sin(psi) * dt
        psi' = psi + v * delta / Lf * dt
        v'   = v + a * dt

    Args:
        pose: Current world-frame pose.
        actuation: Command currently in effect (internal sign convention).
        latency: Prediction interval dt (s).
        lf: Distance from centre of mass to front axle (m).

    Returns:
        The predicted pose.
    """
    if latency < 0:
        raise DegenerateInput(f"Latency must be non-negative, got {latency}")
    if latency == 0:
        return pose

    v = pose.v
    return Pose(
        x=pose.x + v * math.cos(pose.psi) * latency,
        y=pose.y + v * math.sin(pose.psi) * latency,
        psi=pose.psi + v * actuation.steering / lf * latency,
        v=v + actuation.throttle * latency,
    )
