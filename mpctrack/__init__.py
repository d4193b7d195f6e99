from mpctrack.util import setup_logging
from mpctrack.errors import MPCTrackError, InsufficientPoints, DegenerateInput
from mpctrack.config import ControllerConfig, MPH_TO_MPS
from mpctrack.control import *
from mpctrack.simulator import *

__version__ = "0.1.0"
