"""
Logging configuration.

Called once from the entry points. Logs go to stderr and, optionally, to a
file as well.
"""

import logging
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Third-party loggers that are noisy at INFO
_NOISY_LOGGERS = [
    "urllib3",
    "apscheduler",
    "werkzeug",
]


def configure_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """
    Set up the root logger.

    Args:
        level: Python log level name
        log_file: Optional path of a file that also receives all records
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Remove any existing handlers to avoid duplicates on re-init
    root.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
