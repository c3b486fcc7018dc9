"""Centralized logging configuration."""

import logging

from city_dashboard.config import DEBUG


def configure_logging(level: int = logging.DEBUG if DEBUG else logging.INFO):
    """
    Configure a consistent logging format for the entire application.
    """
    # Define the standard formatter
    formatter = logging.Formatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    # Configure the root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove any existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # Third-party loggers share the format. httpx logs full request URLs,
    # which carry API keys as query parameters, so it only reports warnings.
    loggers_to_configure = {
        "uvicorn": level,
        "uvicorn.access": level,
        "uvicorn.error": level,
        "fastapi": level,
        "httpx": logging.WARNING,
        "httpcore": logging.WARNING,
    }

    for logger_name, logger_level in loggers_to_configure.items():
        logger = logging.getLogger(logger_name)
        logger.setLevel(logger_level)

        # Remove existing handlers to avoid duplicate logs
        for handler in logger.handlers[:]:
            logger.removeHandler(handler)

        # Don't propagate to avoid duplicate messages
        logger.propagate = False

        handler = logging.StreamHandler()
        handler.setLevel(logger_level)
        handler.setFormatter(formatter)

        logger.addHandler(handler)
