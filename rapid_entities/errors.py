"""
Error taxonomy for the entity engine.

All errors are raised synchronously to the caller of the entity manager and
are never retried. Storage backend errors are not wrapped.
"""

from typing import Any, Dict


class EntityEngineError(Exception):
    """Base class for every error raised by the engine."""

    code = "ENTITY_ENGINE_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
        }


class ConfigurationError(EntityEngineError):
    """Raised when a model or relation property is misconfigured."""

    code = "CONFIGURATION_ERROR"


class NotFoundError(EntityEngineError):
    """Raised when a property, model or entity cannot be found."""

    code = "NOT_FOUND"


class ValidationError(EntityEngineError):
    """Raised when request input is malformed."""

    code = "VALIDATION_ERROR"


class CascadeCycleError(ValidationError):
    """Raised when an embedded entity graph refers back to one of its ancestors."""

    code = "CASCADE_CYCLE"


class CascadeDepthError(ValidationError):
    """Raised when embedded entities are nested deeper than allowed."""

    code = "CASCADE_TOO_DEEP"


class UnsupportedOperationError(EntityEngineError):
    """Raised when an operation is not supported on the given property."""

    code = "UNSUPPORTED_OPERATION"

    def __init__(self, operation: str, message: str):
        self.operation = operation
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["operation"] = self.operation
        return data
