"""
Identity providers for the RBAC service.

The authorization service never looks up callers itself. It asks an
``IdentityProvider`` for the current identity and reads the identity's
directly assigned roles, which are expanded later against the role graph.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Iterator, List, Optional

from shared.errors import InvalidIdentityError
from shared.logging import identity_id_var


@dataclass
class SimpleIdentity:
    """Identity carrying an id and its directly assigned roles."""
    identity_id: str
    roles: List[Any] = field(default_factory=list)


class IdentityProvider(ABC):
    """Returns the identity of the current caller, or None."""

    @abstractmethod
    def get_identity(self) -> Optional[Any]:
        """Return the current identity, None when nobody is authenticated."""


class StaticIdentityProvider(IdentityProvider):
    """Always returns the same identity."""

    def __init__(self, identity: Optional[Any] = None):
        self.identity = identity

    def get_identity(self) -> Optional[Any]:
        return self.identity


current_identity_var: ContextVar[Optional[Any]] = ContextVar('current_identity', default=None)


class ContextIdentityProvider(IdentityProvider):
    """Reads the identity bound to the current execution context.

    Request handlers bind the caller with ``identity_scope`` so concurrent
    requests (threads or tasks) each see their own identity.
    """

    def get_identity(self) -> Optional[Any]:
        return current_identity_var.get()

    @staticmethod
    @contextmanager
    def identity_scope(identity: Optional[Any]) -> Iterator[Optional[Any]]:
        token = current_identity_var.set(identity)
        log_token = identity_id_var.set(getattr(identity, "identity_id", None))
        try:
            yield identity
        finally:
            identity_id_var.reset(log_token)
            current_identity_var.reset(token)


def extract_role_names(identity: Any) -> List[str]:
    """Return the identity's role names in order, without duplicates.

    Roles may be names or objects with a string ``name``; a bare string is a
    single role.
    """
    if not hasattr(identity, "roles"):
        raise InvalidIdentityError(identity)

    roles = identity.roles
    if callable(roles):
        roles = roles()
    if roles is None:
        return []
    if isinstance(roles, str):
        roles = [roles]

    try:
        entries = list(roles)
    except TypeError:
        raise InvalidIdentityError(identity, "roles must be iterable") from None

    names: List[str] = []
    for entry in entries:
        name = entry if isinstance(entry, str) else getattr(entry, "name", None)
        if not isinstance(name, str):
            raise InvalidIdentityError(
                identity, f"role entries must be names or named roles, got '{type(entry).__name__}'"
            )
        if name not in names:
            names.append(name)
    return names
