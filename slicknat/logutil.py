"""Logging setup shared by the daemon and the client."""

import logging

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def setup_logging(level: int = logging.INFO):
    """Configure logging."""
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT
    )


def set_level(level: int):
    """Change the verbosity after the configuration has been read."""
    logging.getLogger().setLevel(level)
