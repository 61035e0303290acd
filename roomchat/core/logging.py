# roomchat/core/logging.py
"""Logging configuration."""
import logging
import sys


def setup_logging(level: str = "info"):
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    # uvicorn access lines duplicate the request log middleware
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
