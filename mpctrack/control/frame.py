"""Transforms between the world frame and the vehicle body frame.

The body frame is centred on the vehicle with its x axis along the
heading, so a point straight ahead has ``y = 0`` and a point to the left
has ``y > 0``.
"""

import numpy as np

from mpctrack.control.state import Pose


def _rotation(psi: float) -> np.ndarray:
    c, s = np.cos(psi), np.sin(psi)
    return np.array([[c, -s], [s, c]])


def world_to_body(pose: Pose, points: np.ndarray) -> np.ndarray:
    """Express world-frame points in the body frame of ``pose``.

    Translates by ``(-x, -y)`` and then rotates by ``-psi``.

    Args:
        pose: Vehicle pose defining the body frame.
        points: (M, 2) array (or a single (2,) point) in world coordinates.

    Returns:
        Array of the same shape in body coordinates.
    """
    pts = np.asarray(points, dtype=float)
    delta = pts - pose.position
    # Row vectors: p_body = R(-psi) p = p R(psi)
    return delta @ _rotation(pose.psi)


def body_to_world(pose: Pose, points: np.ndarray) -> np.ndarray:
    """Inverse of :func:`world_to_body`."""
    pts = np.asarray(points, dtype=float)
    return pts @ _rotation(pose.psi).T + pose.position
