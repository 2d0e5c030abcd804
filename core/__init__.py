"""
Core utilities and infrastructure for the variable analysis system.
"""

from core.exceptions import (
    VariableSystemException,
    StorageException,
    StorageConnectionError,
    CorruptRecordError,
    ExternalServiceException,
    ModelCallError,
    ValidationException,
    ConfigurationError,
)
from core.logging_config import configure_logging, get_logger

__all__ = [
    "VariableSystemException",
    "StorageException",
    "StorageConnectionError",
    "CorruptRecordError",
    "ExternalServiceException",
    "ModelCallError",
    "ValidationException",
    "ConfigurationError",
    "configure_logging",
    "get_logger",
]
