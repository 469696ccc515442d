"""Logging configuration for the chat server."""
import logging

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# pymongo logs every server heartbeat at DEBUG
_NOISY_LOGGERS = ("pymongo", "motor", "multipart", "uvicorn.access")


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Configure root logging once and return the package logger."""
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level.upper(), format=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    else:
        root.setLevel(level.upper())
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return logging.getLogger("chatline")
