"""Wire format of the simulator's event frames.

Every event frame is a text message starting with the two-character
marker ``42`` followed by a JSON array ``[event_name, record]``. Frames
without a parseable payload stand for manual driving.

The simulator reports speed in mph and steering with the opposite sign to
the controller's convention; replies carry the steering normalised to
``[-1, 1]`` by the steering bound.
"""

import json
import logging
import math
from dataclasses import dataclass
from numbers import Real
from typing import Dict, Optional, Tuple

import numpy as np

from mpctrack.config import MPH_TO_MPS
from mpctrack.control.state import Pose, Actuation
from mpctrack.errors import DegenerateInput

logger = logging.getLogger(__name__)

EVENT_MARKER = "42"
TELEMETRY_EVENT = "telemetry"
STEER_EVENT = "steer"
MANUAL_EVENT = "manual"
MANUAL_REPLY = '42["manual",{}]'

_SCALAR_FIELDS = ("x", "y", "psi", "speed", "steering_angle", "throttle")


def _as_float(key: str, value) -> float:
    if isinstance(value, bool) or not isinstance(value, Real):
        raise DegenerateInput(f"Telemetry field {key} must be a number, got {value!r:.40}")
    try:
        value = float(value)
    except (OverflowError, ValueError) as e:
        raise DegenerateInput(f"Telemetry field {key} is not representable as a float") from e
    if not math.isfinite(value):
        raise DegenerateInput(f"Telemetry field {key} must be finite, got {value}")
    return value


def is_event_frame(text: str) -> bool:
    return len(text) > len(EVENT_MARKER) and text.startswith(EVENT_MARKER)


def extract_payload(text: str) -> Optional[str]:
    """Return the ``[...]`` JSON payload of a frame, or None if it carries no data."""
    if "null" in text:
        return None
    start = text.find("[")
    end = text.rfind("}]")
    if start == -1 or end == -1:
        return None
    return text[start:end + 2]


@dataclass(frozen=True)
class Telemetry:
    """One telemetry record in simulator units and conventions."""
    ptsx: Tuple[float, ...]
    ptsy: Tuple[float, ...]
    x: float
    y: float
    psi: float
    speed: float
    steering_angle: float
    throttle: float

    @classmethod
    def from_record(cls, record: Dict) -> "Telemetry":
        """Validate and convert a decoded telemetry record."""
        if not isinstance(record, dict):
            raise DegenerateInput(f"Telemetry record must be an object, got {type(record).__name__}")
        missing = [k for k in ("ptsx", "ptsy") + _SCALAR_FIELDS if k not in record]
        if missing:
            raise DegenerateInput(f"Telemetry is missing fields: {', '.join(missing)}")

        values = {key: _as_float(key, record[key]) for key in _SCALAR_FIELDS}
        for key in ("ptsx", "ptsy"):
            seq = record[key]
            if not isinstance(seq, list):
                raise DegenerateInput(f"Telemetry field {key} must be a list of numbers")
            values[key] = tuple(_as_float(key, v) for v in seq)
        if len(values["ptsx"]) != len(values["ptsy"]):
            raise DegenerateInput(f"ptsx has {len(values['ptsx'])} entries but ptsy has {len(values['ptsy'])}")

        return cls(**values)

    def to_record(self) -> Dict:
        return {
            "ptsx": list(self.ptsx),
            "ptsy": list(self.ptsy),
            "x": self.x,
            "y": self.y,
            "psi": self.psi,
            "speed": self.speed,
            "steering_angle": self.steering_angle,
            "throttle": self.throttle,
        }

    def to_pose(self) -> Pose:
        """World pose with the speed converted from mph to m/s."""
        return Pose(x=self.x, y=self.y, psi=self.psi, v=self.speed * MPH_TO_MPS)

    def to_actuation(self) -> Actuation:
        """Current command with the steering sign flipped to the internal convention."""
        return Actuation(steering=-self.steering_angle, throttle=self.throttle)

    @property
    def waypoints(self) -> np.ndarray:
        return np.column_stack([self.ptsx, self.ptsy]) if self.ptsx else np.empty((0, 2))


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

def decode_event(text: str) -> Optional[Tuple[str, object]]:
    """Split an event frame into ``(event_name, record)``.

    Returns:
        None when the frame carries no parseable payload.
    """
    payload = extract_payload(text)
    if payload is None:
        return None
    try:
        data = json.loads(payload)
    except ValueError:
        # Includes integers beyond the interpreter's digit limit
        logger.debug("Unparseable payload treated as manual driving: %.80s", payload)
        return None
    if not isinstance(data, list) or len(data) != 2 or not isinstance(data[0], str):
        logger.debug("Unexpected payload shape treated as manual driving: %.80s", payload)
        return None
    return data[0], data[1]


def decode_frame(text: str) -> Optional[Telemetry]:
    """Decode an inbound frame.

    Returns:
        The telemetry record for ``telemetry`` events and None for anything
        else (manual driving).

    Raises:
        DegenerateInput: the frame is a telemetry event with a malformed record.
    """
    event = decode_event(text)
    if event is None or event[0] != TELEMETRY_EVENT:
        return None
    return Telemetry.from_record(event[1])


def decode_reply(text: str) -> Tuple[str, Dict]:
    """Parse an outbound frame back into ``(event_name, record)``."""
    if not is_event_frame(text):
        raise DegenerateInput(f"Not an event frame: {text[:40]!r}")
    data = json.loads(text[len(EVENT_MARKER):])
    if not isinstance(data, list) or len(data) != 2:
        raise DegenerateInput(f"Malformed event payload: {text[:40]!r}")
    return data[0], data[1]


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------

def _encode_event(event: str, record: Dict) -> str:
    try:
        return EVENT_MARKER + json.dumps([event, record], separators=(",", ":"), allow_nan=False)
    except ValueError as e:
        raise DegenerateInput(f"Cannot encode non-finite values in a {event} frame") from e


def encode_telemetry(telemetry: Telemetry) -> str:
    return _encode_event(TELEMETRY_EVENT, telemetry.to_record())


def encode_steer(actuation: Actuation, max_steering: float,
                 mpc_xy: Tuple[np.ndarray, np.ndarray],
                 next_xy: Tuple[np.ndarray, np.ndarray]) -> str:
    """Build the ``steer`` reply.

    Args:
        actuation: Command in the internal convention (steering in rad).
        max_steering: Steering bound (rad) used to normalise the wire value.
        mpc_xy: Predicted body-frame trajectory.
        next_xy: Sampled reference polynomial.

    Raises:
        DegenerateInput: the command or the display points are not finite.
    """
    if not np.all(np.isfinite(actuation.as_array())):
        raise DegenerateInput(f"Refusing to send a non-finite command {actuation}")
    record = {
        "steering_angle": -actuation.steering / max_steering,
        "throttle": actuation.throttle,
        "mpc_x": [float(v) for v in mpc_xy[0]],
        "mpc_y": [float(v) for v in mpc_xy[1]],
        "next_x": [float(v) for v in next_xy[0]],
        "next_y": [float(v) for v in next_xy[1]],
    }
    return _encode_event(STEER_EVENT, record)
