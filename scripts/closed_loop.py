"""
Drive the offline vehicle around an oval track with the MPC tracker.

Usage:
    python scripts/closed_loop.py --ticks 200 --plot
    python scripts/closed_loop.py --config configs/default.json --offset 2.0 --debug
"""

import logging
import argparse

import numpy as np
import matplotlib.pyplot as plt

import mpctrack as mt
from mpctrack.plotting import plot_closed_loop

logger = logging.getLogger(__name__)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Offline closed-loop run of the MPC tracker")
    parser.add_argument("--ticks", "-n", type=int, default=150, help="Number of control ticks")
    parser.add_argument("--config", "-c", type=str, default=None,
                        help="JSON file overriding the default controller configuration")
    parser.add_argument("--speed", type=float, default=10.0, help="Initial speed (m/s)")
    parser.add_argument("--offset", type=float, default=0.0,
                        help="Initial lateral offset from the track (m)")
    parser.add_argument("--plot", action="store_true", help="Show the run when finished")
    parser.add_argument("--save", type=str, default=None, help="Save the figure to this path")
    parser.add_argument("--debug", action="store_true")
    return parser.parse_args()


def main():
    args = parse_args()
    mt.setup_logging(level=logging.DEBUG if args.debug else logging.INFO)

    config = mt.ControllerConfig.from_json(args.config) if args.config else mt.ControllerConfig()
    track = mt.oval_track()
    vehicle = mt.SimulatedVehicle(track, latency=config.latency, lf=config.lf,
                                  max_steering=config.max_steering, start_index=len(track) // 4,
                                  speed=args.speed, lateral_offset=args.offset)
    session = mt.TelemetrySession(config, emulate_latency=False)

    log = mt.run_closed_loop(session, vehicle, args.ticks)
    cte = np.asarray(log["cte"])
    logger.info("%d ticks, %.1fs simulated: mean |cte| %.3fm, max |cte| %.3fm, final speed %.2fm/s",
                args.ticks, vehicle.time, cte.mean(), cte.max(), log["v"][-1])

    if args.plot or args.save:
        fig = plot_closed_loop(track, log)
        if args.save:
            fig.savefig(args.save)
            logger.info("Saved figure to %s", args.save)
        if args.plot:
            plt.show()


if __name__ == "__main__":
    main()
