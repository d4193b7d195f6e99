"""Matplotlib figures for inspecting closed-loop runs and single plans."""

import logging
from typing import Dict, List, Optional

import numpy as np
import matplotlib.pyplot as plt

from mpctrack.control.controller import ControlOutput

logger = logging.getLogger(__name__)


def plot_closed_loop(track: np.ndarray, log: Dict[str, List[float]],
                     fig: Optional[plt.Figure] = None) -> plt.Figure:
    """Driven path over the track, with cross-track error and commands over time.

    Args:
        track: (M, 2) closed track polyline.
        log: Output of :func:`~mpctrack.simulator.plant.run_closed_loop`.
        fig: Figure to draw into; a new one is created if None.
    """
    if fig is None:
        fig = plt.figure(figsize=(12, 8))
    ax_path = fig.add_subplot(1, 2, 1)
    ax_cte = fig.add_subplot(3, 2, 2)
    ax_steer = fig.add_subplot(3, 2, 4, sharex=ax_cte)
    ax_speed = fig.add_subplot(3, 2, 6, sharex=ax_cte)

    closed = np.vstack([track, track[:1]])
    ax_path.plot(closed[:, 0], closed[:, 1], "k--", linewidth=1, label="track")
    ax_path.plot(log["x"], log["y"], "b-", linewidth=2, label="vehicle")
    ax_path.set_aspect("equal")
    ax_path.set_xlabel("x [m]")
    ax_path.set_ylabel("y [m]")
    ax_path.legend(loc="upper right")

    t = log["time"]
    ax_cte.plot(t, log["cte"], "r-")
    ax_cte.set_ylabel("|cte| [m]")
    ax_steer.plot(t, log["steering"], "g-", label="steering")
    ax_steer.plot(t, log["throttle"], "m-", label="throttle")
    ax_steer.set_ylabel("command")
    ax_steer.legend(loc="upper right")
    ax_speed.plot(t, log["v"], "b-")
    ax_speed.set_ylabel("v [m/s]")
    ax_speed.set_xlabel("t [s]")

    fig.tight_layout()
    return fig


def plot_plan(output: ControlOutput, ax: Optional[plt.Axes] = None) -> plt.Axes:
    """Body-frame view of one tick: reference polynomial against predicted trajectory."""
    if ax is None:
        _, ax = plt.subplots(1, 1, figsize=(8, 4))
    ax.plot(output.next_x, output.next_y, "y-", linewidth=2, label="reference")
    ax.plot(output.mpc_x, output.mpc_y, "g.-", label="prediction")
    ax.plot([0.0], [0.0], "ko")
    ax.set_title(f"cte={output.cte:.2f} m, epsi={output.epsi:.3f} rad, "
                 f"status={output.result.status.value}")
    ax.set_xlabel("x (body) [m]")
    ax.set_ylabel("y (body) [m]")
    ax.legend(loc="upper right")
    return ax
