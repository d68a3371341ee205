"""
Custom exception classes for the application.
Provides structured error handling across the ingestion and lifecycle modules.
"""

from typing import Any, Optional, Dict


class EarningsEngineException(Exception):
    """Base exception class for the agent earnings backend."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(EarningsEngineException):
    """Raised when there's a configuration error."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "CONFIGURATION_ERROR", details)


class PersistenceError(EarningsEngineException):
    """Raised when a storage or collaborator call fails (possibly transiently)."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        code: str = "PERSISTENCE_ERROR"
    ):
        super().__init__(message, code, details)


class CollaboratorTimeoutError(PersistenceError):
    """Raised when a collaborator call exceeds its timeout."""

    def __init__(self, operation: str, timeout: float):
        super().__init__(
            f"{operation} timed out after {timeout:g}s",
            {"operation": operation, "timeout": timeout},
            code="COLLABORATOR_TIMEOUT"
        )


class NotFoundError(EarningsEngineException):
    """Raised when a requested resource is not found."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "NOT_FOUND", details)


class EarningNotFoundError(NotFoundError):
    """Raised when an earning is not found."""

    def __init__(self, earning_id: str):
        super().__init__(
            f"Earning not found: {earning_id}",
            {"earning_id": earning_id}
        )


class AgentNotFoundError(NotFoundError):
    """Raised when an agent code does not resolve."""

    def __init__(self, agent_code: str):
        super().__init__(
            f"Agent not found: {agent_code}",
            {"agent_code": agent_code}
        )


# Batch ingestion exceptions
class FatalBatchError(EarningsEngineException):
    """Raised when a whole submission must be rejected before any record is touched."""

    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "FATAL_BATCH_ERROR", details)


class MissingColumnsError(FatalBatchError):
    """Raised when required columns cannot be resolved from the headers."""

    def __init__(self, missing: list, headers: list):
        super().__init__(
            "Upload must contain at least Agent Code and Amount columns",
            {"missing": missing, "headers": headers}
        )


class BatchTooLargeError(FatalBatchError):
    """Raised when a submission exceeds the batch size limit."""

    status_code = 413

    def __init__(self, size: int, limit: int):
        super().__init__(
            f"Batch contains {size} entries, limit is {limit}",
            {"size": size, "limit": limit}
        )


class RecordValidationError(EarningsEngineException):
    """Raised when a single record fails business validation."""

    def __init__(
        self,
        message: str,
        category: str = "validation",
        details: Optional[Dict[str, Any]] = None
    ):
        self.category = category
        super().__init__(message, "VALIDATION_ERROR", details)


class DuplicateReferenceError(EarningsEngineException):
    """Raised when a reference id has already been used."""

    def __init__(self, reference_id: str, existing_earning_id: Optional[str] = None):
        self.reference_id = reference_id
        super().__init__(
            f"Duplicate reference ID: {reference_id}",
            "DUPLICATE_REFERENCE",
            {"reference_id": reference_id, "existing_earning_id": existing_earning_id}
        )


# Lifecycle exceptions
class StateConflictError(EarningsEngineException):
    """Raised when a transition is attempted from a non-pending state."""

    def __init__(self, earning_id: str, current_status: str, action: str):
        self.current_status = current_status
        super().__init__(
            f"Cannot {action} earning {earning_id}: status is {current_status}",
            "STATE_CONFLICT",
            {"earning_id": earning_id, "current_status": current_status, "action": action}
        )
