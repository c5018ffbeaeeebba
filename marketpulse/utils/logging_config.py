"""Process-wide logging for the marketpulse workers.

One stdout handler on the root logger. The ``websockets`` logger is held at
INFO or above so a DEBUG run does not print every feed frame.
"""
import logging
import sys

LOG_FORMAT = "%(asctime)s | %(levelname).1s | %(name)-30.30s | %(message)s"


def setup_logging(level: int | str = logging.INFO) -> logging.Logger:
    root = logging.getLogger()
    root.setLevel(level)

    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)

    logging.getLogger("websockets").setLevel(max(root.level, logging.INFO))
    return root
