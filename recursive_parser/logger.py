"""
Logging configuration for the recursive parser.
"""

import logging
import sys
from typing import Optional


def setup_logger(
    name: str = "recursive_parser",
    level: int = logging.INFO,
    log_file: Optional[str] = None
) -> logging.Logger:
    """
    Set up and return a logger instance.

    Args:
        name: Logger name
        level: Logging level (default: INFO)
        log_file: Optional file path for logging

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Handlers are installed once; later calls only adjust the level
    if logger.handlers:
        logger.setLevel(level)
        for handler in logger.handlers:
            handler.setLevel(level)
        return logger

    logger.setLevel(level)

    # Format: timestamp - module - level - message
    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


# Default logger instance, created once at import time
logger = setup_logger()


def get_module_logger(module_name: str) -> logging.Logger:
    """
    Get a child logger for a specific module.

    Args:
        module_name: Name of the module (e.g., 'main', 'parsers')

    Returns:
        Child logger instance
    """
    return logging.getLogger(f"recursive_parser.{module_name}")


class ResourceLogAdapter(logging.LoggerAdapter):
    """
    Prefixes messages with the position of the resource being parsed.

    The container logs as "[container]"; embedded resources log as
    "[depth=2 /a.zip/b.txt]" so interleaved messages from a deep traversal
    can be traced back to their resource.
    """

    def process(self, msg, kwargs):
        path = self.extra.get("resource_path")
        depth = self.extra.get("depth", 0)
        where = f"depth={depth} {path}" if path else "container"
        return f"[{where}] {msg}", kwargs


def resource_logger(
    logger: logging.Logger,
    resource_path: Optional[str] = None,
    depth: int = 0
) -> ResourceLogAdapter:
    """
    Wrap a module logger with the context of one resource.

    Args:
        logger: Module logger from get_module_logger()
        resource_path: embedded_resource_path of the resource (None for the container)
        depth: Embedding depth (0 for the container)

    Returns:
        Adapter that prefixes every message with the resource position
    """
    return ResourceLogAdapter(logger, {"resource_path": resource_path, "depth": depth})
