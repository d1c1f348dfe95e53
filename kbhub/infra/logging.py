"""Structured logging configuration."""

import logging
import sys
from pythonjsonlogger import jsonlogger
from kbhub.infra.config import config


def setup_logging():
    """Setup structured JSON logging on the package root logger."""
    logger = logging.getLogger("kbhub")
    logger.setLevel(logging.DEBUG if (config.DEBUG or config.AI_VERBOSE_LOGGING) else logging.INFO)

    # Remove existing handlers
    logger.handlers = []

    formatter = jsonlogger.JsonFormatter(
        "%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # Third-party loggers
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return logger


app_logger = setup_logging()
