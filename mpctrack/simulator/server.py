"""WebSocket endpoint the driving simulator connects to.

Each connection gets its own :class:`TelemetrySession` and therefore its
own controller; frames on a connection are handled strictly in order.
"""

import logging
import time
from typing import Optional

from websockets.exceptions import ConnectionClosed
from websockets.sync.server import serve as ws_serve

from mpctrack.config import ControllerConfig
from mpctrack.control.controller import MPCController
from mpctrack.errors import MPCTrackError
from mpctrack.simulator.protocol import MANUAL_REPLY, is_event_frame, decode_frame, encode_steer

logger = logging.getLogger(__name__)

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 4567


class TelemetrySession:
    """Turns inbound simulator frames into replies.

    Args:
        config: Controller configuration, used when ``controller`` is not given.
        emulate_latency: Sleep for the configured latency before sending a
            steering reply, mimicking a real actuation delay.
        controller: Controller to drive; a new one is created if None.
    """

    def __init__(self, config: Optional[ControllerConfig] = None, emulate_latency: bool = True,
                 controller: Optional[MPCController] = None):
        self._controller = controller if controller is not None else MPCController(config)
        self._emulate_latency = emulate_latency
        self._frames = 0

    def handle(self, text: str) -> Optional[str]:
        """Process one inbound frame.

        Returns:
            The reply text, or None when nothing should be sent.
        """
        self._frames += 1
        if not is_event_frame(text):
            logger.debug("Ignoring non-event frame: %.40s", text)
            return None

        try:
            telemetry = decode_frame(text)
            if telemetry is None:
                return MANUAL_REPLY
            output = self._controller.step(telemetry.to_pose(), telemetry.to_actuation(),
                                           telemetry.waypoints)
            return encode_steer(output.actuation, self._controller.config.max_steering,
                                (output.mpc_x, output.mpc_y), (output.next_x, output.next_y))
        except MPCTrackError as e:
            logger.error("Dropping frame %d: %s", self._frames, e)
            return None

    def run(self, connection):
        """Serve a single connection until the peer closes it."""
        logger.info("Simulator connected from %s", getattr(connection, "remote_address", "unknown"))
        latency = self._controller.config.latency
        try:
            while True:
                message = connection.recv()
                if isinstance(message, bytes):
                    # Undecodable bytes become U+FFFD
                    message = message.decode("utf-8", errors="replace")
                reply = self.handle(message)
                if reply is None:
                    continue
                if self._emulate_latency and reply != MANUAL_REPLY and latency > 0:
                    time.sleep(latency)
                connection.send(reply)
        except ConnectionClosed:
            logger.info("Simulator disconnected after %d frames", self._frames)

    @property
    def controller(self) -> MPCController:
        return self._controller

    @property
    def frames(self) -> int:
        return self._frames


def serve(config: Optional[ControllerConfig] = None, host: str = DEFAULT_HOST,
          port: int = DEFAULT_PORT, emulate_latency: bool = True):
    """Listen for simulator connections until interrupted."""
    config = config if config is not None else ControllerConfig()

    def handler(connection):
        TelemetrySession(config, emulate_latency=emulate_latency).run(connection)

    with ws_serve(handler, host, port) as server:
        logger.info("Listening on %s:%d", host, port)
        try:
            server.serve_forever()
        except KeyboardInterrupt:
            logger.info("Shutting down")
