"""Offline stand-in for the driving simulator.

A kinematic vehicle driving around a closed track. It produces telemetry
frames in the simulator's units and sign conventions and consumes the
replies, so the whole pipeline can be run in closed loop without the
simulator.
"""

import logging
from typing import Dict, List, Optional

import numpy as np

from mpctrack.config import MPH_TO_MPS
from mpctrack.control.state import Pose
from mpctrack.errors import DegenerateInput
from mpctrack.simulator.protocol import Telemetry, STEER_EVENT, encode_telemetry, decode_reply

logger = logging.getLogger(__name__)


def oval_track(a: float = 120.0, b: float = 60.0, n: int = 60) -> np.ndarray:
    """Counter-clockwise ellipse sampled at ``n`` points, shape (n, 2)."""
    theta = np.linspace(0.0, 2 * np.pi, n, endpoint=False)
    return np.column_stack([a * np.cos(theta), b * np.sin(theta)])


class SimulatedVehicle:
    """Kinematic bicycle following commands with a fixed delay.

    Args:
        track: (M, 2) closed polyline, traversed in index order.
        latency: Delay between a reply and its command taking effect (s).
        lf: Centre of mass to front axle (m).
        max_steering: Steering bound (rad) used to decode normalised replies.
        n_waypoints: Number of upcoming track points reported per frame.
        substeps: Integration steps per second of simulated time.
        start_index: Track point the vehicle starts at, heading along the track.
        speed: Initial speed (m/s).
        lateral_offset: Initial offset to the left of the track (m).
    """

    def __init__(self, track: np.ndarray, latency: float = 0.1, lf: float = 2.67,
                 max_steering: float = np.deg2rad(25.0), n_waypoints: int = 6,
                 substeps: int = 100, start_index: int = 0, speed: float = 10.0,
                 lateral_offset: float = 0.0):
        track = np.asarray(track, dtype=float)
        if track.ndim != 2 or track.shape[1] != 2 or len(track) < 3:
            raise DegenerateInput(f"Track must be an (M, 2) polyline with M >= 3, got {track.shape}")
        self._track = track
        self._latency = latency
        self._lf = lf
        self._max_steering = max_steering
        self._n_waypoints = n_waypoints
        self._substeps = substeps

        start = track[start_index % len(track)]
        ahead = track[(start_index + 1) % len(track)]
        psi = float(np.arctan2(ahead[1] - start[1], ahead[0] - start[0]))
        normal = np.array([-np.sin(psi), np.cos(psi)])
        x, y = start + lateral_offset * normal
        self._pose = Pose(x=float(x), y=float(y), psi=psi, v=speed)
        self._steering = 0.0
        self._throttle = 0.0
        self._time = 0.0

    # ------------------------------------------------------------------
    # Frames
    # ------------------------------------------------------------------

    def telemetry(self) -> str:
        """Current state as an inbound telemetry frame."""
        idx = self._nearest_index()
        points = self._track[[(idx + k) % len(self._track) for k in range(self._n_waypoints)]]
        record = Telemetry(
            ptsx=tuple(float(p) for p in points[:, 0]),
            ptsy=tuple(float(p) for p in points[:, 1]),
            x=self._pose.x,
            y=self._pose.y,
            psi=self._pose.psi,
            speed=self._pose.v / MPH_TO_MPS,
            steering_angle=-self._steering,
            throttle=self._throttle,
        )
        return encode_telemetry(record)

    def apply_reply(self, text: str, hold: Optional[float] = None):
        """Apply a reply frame.

        The previous command stays in effect for the latency interval, the
        new one for ``hold`` seconds afterwards (default: the latency).
        """
        event, record = decode_reply(text)
        self.advance(self._latency)
        if event == STEER_EVENT:
            self._steering = -float(record["steering_angle"]) * self._max_steering
            self._throttle = float(record["throttle"])
        self.advance(self._latency if hold is None else hold)

    # ------------------------------------------------------------------
    # Dynamics
    # ------------------------------------------------------------------

    def advance(self, duration: float):
        """Integrate the current command for ``duration`` seconds."""
        if duration <= 0:
            return
        steps = max(1, int(np.ceil(duration * self._substeps)))
        h = duration / steps
        x, y, psi, v = self._pose.x, self._pose.y, self._pose.psi, self._pose.v
        for _ in range(steps):
            x += v * np.cos(psi) * h
            y += v * np.sin(psi) * h
            psi += v * self._steering / self._lf * h
            v = max(0.0, v + self._throttle * h)
        self._pose = Pose(x=float(x), y=float(y), psi=float(psi), v=float(v))
        self._time += duration

    def cross_track_error(self) -> float:
        """Distance from the vehicle to the closest point of the track."""
        p = self._pose.position
        starts = self._track
        ends = np.roll(self._track, -1, axis=0)
        seg = ends - starts
        t = np.clip(np.einsum("ij,ij->i", p - starts, seg) / np.einsum("ij,ij->i", seg, seg), 0.0, 1.0)
        closest = starts + t[:, None] * seg
        return float(np.min(np.linalg.norm(closest - p, axis=1)))

    def _nearest_index(self) -> int:
        return int(np.argmin(np.linalg.norm(self._track - self._pose.position, axis=1)))

    @property
    def pose(self) -> Pose:
        return self._pose

    @property
    def time(self) -> float:
        return self._time

    @property
    def track(self) -> np.ndarray:
        return self._track


def run_closed_loop(session, vehicle: SimulatedVehicle, ticks: int) -> Dict[str, List[float]]:
    """Drive ``vehicle`` with ``session`` for a number of ticks.

    Args:
        session: A :class:`~mpctrack.simulator.server.TelemetrySession`.
        vehicle: The simulated vehicle.
        ticks: Number of telemetry/reply exchanges.

    Returns:
        Per-tick logs of position, speed, commands and cross-track error.
    """
    log = {"time": [], "x": [], "y": [], "v": [], "steering": [], "throttle": [], "cte": []}
    for tick in range(ticks):
        reply = session.handle(vehicle.telemetry())
        if reply is None:
            raise DegenerateInput(f"No reply at tick {tick}")
        vehicle.apply_reply(reply)

        pose = vehicle.pose
        _, record = decode_reply(reply)
        log["time"].append(vehicle.time)
        log["x"].append(pose.x)
        log["y"].append(pose.y)
        log["v"].append(pose.v)
        log["steering"].append(float(record.get("steering_angle", 0.0)))
        log["throttle"].append(float(record.get("throttle", 0.0)))
        log["cte"].append(vehicle.cross_track_error())
        logger.debug("Tick %d: pos=(%.2f, %.2f) v=%.2f cte=%.3f",
                     tick, pose.x, pose.y, pose.v, log["cte"][-1])
    return log
