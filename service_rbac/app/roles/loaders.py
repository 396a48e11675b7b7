"""
Role loaders for the RBAC service.

A loader turns an external source of roles (configuration, a storage
repository, a callback) into a ``RoleDelta`` that the authorization service
merges into its role graph. Loaders run synchronously, at most once per load
cycle, and never retry; retries belong to the loader's own source.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, List, Mapping, Optional, Union

from shared.logging import get_logger
from .graph import RoleGraph
from .models import RoleDefinition, RoleDelta

logger = get_logger("rbac.role_loader")


@dataclass
class LoadContext:
    """What a load cycle is for.

    ``roles`` and ``permission`` describe the check that triggered the load,
    so loaders backed by large stores can fetch only what the check needs.
    ``permission`` is None for role satisfaction checks.
    """
    graph: RoleGraph
    roles: List[str] = field(default_factory=list)
    permission: Optional[str] = None


class RoleLoader(ABC):
    """Populates a role graph from an external source."""

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    def load_roles(self, context: LoadContext) -> RoleDelta:
        """Return the roles and permissions for this load cycle."""


def _name_of(value: Any) -> Optional[str]:
    if isinstance(value, str):
        return value
    name = getattr(value, "name", None)
    return name if isinstance(name, str) else None


def clean_roles(objects: Iterable[Any]) -> RoleDelta:
    """Convert storage objects into a role delta.

    Objects qualify as roles when they carry a string ``name``. ``parent`` may
    be another role-like object, a role name or None, and an optional
    ``permissions`` iterable may hold strings or named objects. Anything else
    is skipped.
    """
    delta = RoleDelta()
    skipped = 0

    for obj in objects:
        name = getattr(obj, "name", None)
        if not isinstance(name, str) or not name:
            skipped += 1
            continue

        parent = getattr(obj, "parent", None)
        delta.add_role(name, _name_of(parent) if parent is not None else None)

        for permission in getattr(obj, "permissions", None) or ():
            permission_name = _name_of(permission)
            if permission_name:
                delta.grant(name, permission_name)

    if skipped:
        logger.debug("Skipped non-role objects", skipped=skipped, roles=len(delta.roles))

    return delta


class InMemoryRoleLoader(RoleLoader):
    """Serves a fixed set of roles, typically declared in configuration."""

    def __init__(
        self,
        roles: Optional[Mapping[str, Iterable[str]]] = None,
        permissions: Optional[Mapping[str, Iterable[str]]] = None,
        definitions: Optional[Iterable[RoleDefinition]] = None,
    ):
        self.delta = RoleDelta.from_mappings(roles, permissions)
        if definitions:
            self.delta.update(RoleDelta.from_definitions(definitions))

    def load_roles(self, context: LoadContext) -> RoleDelta:
        delta = RoleDelta()
        delta.update(self.delta)
        return delta


class ObjectRepositoryRoleLoader(RoleLoader):
    """Loads every role from a repository exposing ``find_all()``.

    Suited to small role sets, since the whole table is read on each load.
    """

    def __init__(self, repository: Any):
        self.repository = repository

    def load_roles(self, context: LoadContext) -> RoleDelta:
        loaded = self.repository.find_all()
        delta = clean_roles(loaded)
        logger.debug("Roles fetched from repository", roles=len(delta.roles))
        return delta


class CallableRoleLoader(RoleLoader):
    """Adapts a plain ``func(context) -> RoleDelta`` callback."""

    def __init__(self, func: Callable[[LoadContext], Optional[RoleDelta]]):
        self.func = func

    @property
    def name(self) -> str:
        return getattr(self.func, "__name__", type(self.func).__name__)

    def load_roles(self, context: LoadContext) -> RoleDelta:
        return self.func(context) or RoleDelta()


class ChainRoleLoader(RoleLoader):
    """Runs several loaders in order and merges what they return."""

    def __init__(self, loaders: Iterable[RoleLoader]):
        self.loaders = list(loaders)

    def load_roles(self, context: LoadContext) -> RoleDelta:
        delta = RoleDelta()
        for loader in self.loaders:
            delta.update(loader.load_roles(context))
        return delta


class NullRoleLoader(RoleLoader):
    """Loader for graphs populated up front."""

    def load_roles(self, context: LoadContext) -> RoleDelta:
        return RoleDelta()


def as_role_loader(
    loader: Union[RoleLoader, Callable[[LoadContext], Optional[RoleDelta]], Iterable[RoleLoader], None]
) -> RoleLoader:
    """Normalize the accepted loader shapes into a RoleLoader."""
    if loader is None:
        return NullRoleLoader()
    if isinstance(loader, RoleLoader):
        return loader
    if callable(loader):
        return CallableRoleLoader(loader)
    if isinstance(loader, (str, bytes)) or not isinstance(loader, Iterable):
        raise TypeError(
            f"Expected a RoleLoader, a callable or an iterable of loaders, got '{type(loader).__name__}'"
        )
    return ChainRoleLoader(as_role_loader(item) for item in loader)
