from mpctrack.simulator.protocol import Telemetry, MANUAL_REPLY, decode_frame, decode_reply, \
    encode_steer, encode_telemetry
from mpctrack.simulator.server import TelemetrySession, serve
from mpctrack.simulator.plant import SimulatedVehicle, oval_track, run_closed_loop
