import logging
import os
import sys
from datetime import datetime
from typing import Dict, Optional

LOG_FORMAT = "[%(threadName)-10.10s:%(name)-20.20s] [%(levelname)-6.6s]  %(message)s"

# Third-party loggers that are too chatty at the root level
QUIET_LOGGERS: Dict[str, int] = {
    "matplotlib": logging.INFO,
    "PIL": logging.INFO,
    "websockets": logging.WARNING,
}


def setup_logging(level: int = logging.INFO, log_path: Optional[str] = None) -> logging.Logger:
    """Attach console (and optionally file) handlers to the root logger.

    Args:
        level: Root logger level.
        log_path: Existing directory to write a ``<YYYYmmdd_HHMMSS>.log`` file into.

    Returns:
        The configured root logger.
    """
    if log_path and not os.path.isdir(log_path):
        raise FileNotFoundError(f"Logging path {log_path} does not exist.")

    for name, quiet_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)

    formatter = logging.Formatter(LOG_FORMAT)
    handlers = [logging.StreamHandler(stream=sys.stdout)]
    if log_path:
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        handlers.append(logging.FileHandler(os.path.join(log_path, f"{stamp}.log")))

    root = logging.getLogger()
    root.setLevel(level)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    return root
