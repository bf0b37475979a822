"""
Utils Module
Logging and error taxonomy
"""
from .logger import setup_logger, get_logger
from .exceptions import (
    VisaCacheError,
    ConfigurationError,
    KeyValidationError,
    GenerationError,
    StoreError,
    MirrorError,
    serialize_error,
)

__all__ = [
    "setup_logger",
    "get_logger",
    "VisaCacheError",
    "ConfigurationError",
    "KeyValidationError",
    "GenerationError",
    "StoreError",
    "MirrorError",
    "serialize_error",
]
