"""
Serve the MPC path tracker to the driving simulator.

Usage:
    python scripts/run_server.py
    python scripts/run_server.py --config configs/default.json --port 4567 --debug
"""

import logging
import argparse

import mpctrack as mt

logger = logging.getLogger(__name__)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="MPC path tracking server for the driving simulator")
    parser.add_argument("--host", type=str, default="0.0.0.0")
    parser.add_argument("--port", type=int, default=4567)
    parser.add_argument("--config", "-c", type=str, default=None,
                        help="JSON file overriding the default controller configuration")
    parser.add_argument("--no_latency", action="store_true",
                        help="Reply immediately instead of sleeping for the actuation latency")
    parser.add_argument("--debug", action="store_true", help="Log every tick and solve")
    parser.add_argument("--log_path", type=str, default=None,
                        help="Existing directory to also write a log file into")
    return parser.parse_args()


def main():
    args = parse_args()
    mt.setup_logging(level=logging.DEBUG if args.debug else logging.INFO, log_path=args.log_path)

    config = mt.ControllerConfig.from_json(args.config) if args.config else mt.ControllerConfig()
    logger.info("Controller configuration: %s", config.to_dict())
    mt.serve(config, host=args.host, port=args.port, emulate_latency=not args.no_latency)


if __name__ == "__main__":
    main()
