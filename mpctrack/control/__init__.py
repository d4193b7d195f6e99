from mpctrack.control.state import Pose, Actuation
from mpctrack.control.frame import world_to_body, body_to_world
from mpctrack.control.reference import polyfit, polyeval, polyeval_derivative, tracking_errors, sample_reference
from mpctrack.control.latency import compensate_latency
from mpctrack.control.model import KinematicBicycleModel
from mpctrack.control.optimizer import TrajectoryOptimizer, OptimizationResult, SolveStatus
from mpctrack.control.controller import MPCController, ControlOutput
