"""Logging utilities."""

import logging
import sys


def setup_logging(level: str = "INFO"):
    """Setup logging configuration.

    Safe to call again after a config reload; the root level is updated in
    place.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )
    logging.getLogger().setLevel(log_level)

    # Reduce noise from third-party libraries
    for noisy in ("asyncio", "httpx", "watchfiles", "docker", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
