"""
Shared error handling for the rules engine and its workers.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = {}


class RulesException(Exception):
    """Base exception for rules services."""

    status_code = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            details=self.details
        )


class CompilationError(RulesException):
    """A rule could not be compiled into work."""

    status_code = 422

    def __init__(self, message: str = "Rule compilation failed", details: Optional[Dict[str, Any]] = None,
                 code: str = "COMPILATION_ERROR"):
        super().__init__(code, message, details)


class TypeMismatchError(CompilationError):
    """Types of conditions/actions do not align with the rule."""

    def __init__(self, message: str = "Types of conditions/actions do not align", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, code="TYPE_MISMATCH")


class MultiActionUnsupportedError(CompilationError):
    """Rules with more than one action are rejected."""

    def __init__(self, message: str = "Rules with multiple actions are not supported", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, code="MULTI_ACTION_UNSUPPORTED")


class MissingActionError(CompilationError):
    """Rule does not name any action."""

    def __init__(self, message: str = "Rule has no action", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, code="MISSING_ACTION")


class UnsupportedConditionError(CompilationError):
    """Condition cannot be compiled (e.g. it has no schema)."""

    def __init__(self, message: str = "Non-schema conditions are not supported", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, code="UNSUPPORTED_CONDITION")


class MissingOptionError(CompilationError):
    """A template pointer names an option that was not supplied."""

    def __init__(self, message: str = "Missing option for schema template", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, code="MISSING_OPTION")


class TemplatePointerError(CompilationError):
    """A template pointer does not match the schema."""

    def __init__(self, message: str = "Invalid schema template pointer", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, code="TEMPLATE_POINTER_ERROR")


class RegistrationError(RulesException):
    """A store mutation failed while registering a rule."""

    status_code = 502

    def __init__(self, message: str = "Rule registration failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("REGISTRATION_ERROR", message, details)


class SchemaValidationError(RulesException):
    """An item does not satisfy the compiled filter of a work item."""

    status_code = 422

    def __init__(self, message: str = "Item failed schema validation", details: Optional[Dict[str, Any]] = None):
        super().__init__("SCHEMA_VALIDATION_ERROR", message, details)


class ConfigurationError(RulesException):
    """Worker configuration errors detected at startup."""

    status_code = 500

    def __init__(self, message: str = "Invalid worker configuration", details: Optional[Dict[str, Any]] = None,
                 code: str = "CONFIGURATION_ERROR"):
        super().__init__(code, message, details)


class UnsupportedActionError(ConfigurationError):
    """Work names an action this worker does not implement."""

    def __init__(self, action: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"Unsupported action: {action}", details, code="UNSUPPORTED_ACTION")
        self.action = action


class NoImplementationError(ConfigurationError):
    """Worker registered neither actions nor conditions."""

    def __init__(self, message: str = "This service registered neither actions nor conditions",
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, code="NO_IMPLEMENTATION")


class InvalidWorkError(ConfigurationError):
    """Work record cannot be run (e.g. its filter is not a valid schema)."""

    def __init__(self, message: str = "Invalid work", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, code="INVALID_WORK")


class StoreError(RulesException):
    """Document store request failed."""

    def __init__(self, message: str = "Store request failed", status: int = 500,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__("STORE_ERROR", message, details)
        self.status = status
        self.status_code = status
