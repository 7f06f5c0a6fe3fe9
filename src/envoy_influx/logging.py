import logging
import sys
from pathlib import Path

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def configure_logging(level: str = "INFO", log_file: Path | None = None) -> None:
    """Configure the root logger.

    Log records go to stderr. stdout is reserved for the one-line-per-reading
    diagnostics printed by the Envoy client.
    """
    # `basicConfig` does nothing if the root logger already has handlers (e.g. under pytest).
    logging.basicConfig(format=LOG_FORMAT, stream=sys.stderr)
    log = logging.getLogger()
    log.setLevel(level)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log.addHandler(file_handler)
