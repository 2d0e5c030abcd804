"""
Custom exception hierarchy for the variable analysis system.
Provides structured error handling with proper context.

Validation problems (duplicate names, bad reorder permutations, missing ids)
are reported through OperationResult values, not exceptions. Exceptions are
reserved for infrastructure failures: storage, model calls and configuration.
"""

from typing import Optional, Dict, Any


class VariableSystemException(Exception):
    """Base exception for all variable system errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize exception with message and optional context.

        Args:
            message: Human-readable error message
            error_code: Machine-readable error code
            context: Additional context information
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging."""
        return {
            "error": self.error_code,
            "message": self.message,
            "context": self.context,
        }


# ==================== Storage Exceptions ====================


class StorageException(VariableSystemException):
    """Base exception for persistence errors."""

    pass


class StorageConnectionError(StorageException):
    """Raised when the database cannot be reached."""

    def __init__(self, details: Optional[str] = None):
        super().__init__(
            message="Failed to connect to variable storage",
            error_code="STORAGE_CONNECTION_ERROR",
            context={"details": details} if details else {},
        )


class CorruptRecordError(StorageException):
    """Raised when a persisted JSON blob cannot be decoded into its schema."""

    def __init__(self, table: str, identifier: Any, details: Optional[str] = None):
        super().__init__(
            message=f"Corrupt {table} record",
            error_code="CORRUPT_RECORD",
            context={"table": table, "identifier": identifier, "details": details},
        )


# ==================== External Service Exceptions ====================


class ExternalServiceException(VariableSystemException):
    """Base exception for external service errors."""

    pass


class ModelCallError(ExternalServiceException):
    """Raised when the language model request fails."""

    def __init__(self, model: Optional[str] = None, details: Optional[str] = None):
        super().__init__(
            message=f"Language model request failed: {details}" if details else "Language model request failed",
            error_code="MODEL_CALL_ERROR",
            context={"model": model, "details": details},
        )


# ==================== Validation Exceptions ====================


class ValidationException(VariableSystemException):
    """Base exception for validation errors."""

    pass


class ConfigurationError(ValidationException):
    """Raised when configuration is invalid."""

    def __init__(self, setting: str, reason: str):
        super().__init__(
            message=f"Invalid configuration: {setting} - {reason}",
            error_code="CONFIGURATION_ERROR",
            context={"setting": setting, "reason": reason},
        )
