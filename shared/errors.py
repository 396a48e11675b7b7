"""
Shared error handling for the RBAC authorization layer.
"""

from typing import Dict, Any, Optional

from opentelemetry import trace
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class AccessLayerException(Exception):
    """Base exception for the authorization layer."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        trace_id = None
        current_span = trace.get_current_span()
        if current_span and current_span.is_recording():
            span_context = current_span.get_span_context()
            if span_context.trace_id != 0:
                trace_id = f"{span_context.trace_id:032x}"

        return ErrorResponse(
            trace_id=trace_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class AuthorizationError(AccessLayerException):
    """Authorization-related errors."""

    def __init__(self, message: str = "Authorization failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHORIZATION_ERROR", message, details)


class RbacError(AuthorizationError):
    """Base class for role graph and evaluation errors."""

    code = "RBAC_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.code = type(self).code


class RoleNotFoundError(RbacError):
    """A referenced role is absent from the role graph."""

    code = "ROLE_NOT_FOUND"

    def __init__(self, role: str):
        super().__init__(f"Role '{role}' does not exist", {"role": role})
        self.role = role


class DuplicateRoleError(RbacError):
    """A role with the same name is already in the graph."""

    code = "DUPLICATE_ROLE"

    def __init__(self, role: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"Role '{role}' already exists", {"role": role, **(details or {})})
        self.role = role


class UnknownParentError(RbacError):
    """A role names a parent that is not in the graph."""

    code = "UNKNOWN_PARENT"

    def __init__(self, role: str, parent: str):
        super().__init__(
            f"Parent role '{parent}' of '{role}' does not exist",
            {"role": role, "parent": parent}
        )
        self.role = role
        self.parent = parent


class CyclicRoleError(RbacError):
    """Parent links would make a role its own ancestor."""

    code = "CYCLIC_ROLE"

    def __init__(self, roles):
        roles = sorted(roles)
        super().__init__(
            f"Role hierarchy contains a cycle through {', '.join(roles)}",
            {"roles": roles}
        )
        self.roles = roles


class InvalidAssertionError(RbacError):
    """Assertion is neither callable nor an Assertion object."""

    code = "INVALID_ASSERTION"

    def __init__(self, assertion: Any):
        type_name = type(assertion).__name__
        super().__init__(
            f"Assertions must be callable or implement Assertion, '{type_name}' given",
            {"type": type_name}
        )


class InvalidIdentityError(RbacError):
    """Identity provider returned an object without a roles capability."""

    code = "INVALID_IDENTITY"

    def __init__(self, identity: Any, reason: str = "identity must expose a 'roles' attribute"):
        type_name = type(identity).__name__
        super().__init__(f"Invalid identity '{type_name}': {reason}", {"type": type_name})


class InvalidRoleError(RbacError):
    """A candidate role is neither a role name nor a named role object."""

    code = "INVALID_ROLE"

    def __init__(self, role: Any):
        type_name = type(role).__name__
        super().__init__(f"Expected a role name or a named role, got '{type_name}'", {"type": type_name})


class RoleLoadError(RbacError):
    """The role loader failed to produce roles."""

    code = "ROLE_LOAD_FAILED"

    def __init__(self, loader: str, message: str):
        super().__init__(f"{loader}: {message}", {"loader": loader})
        self.loader = loader
