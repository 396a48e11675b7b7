"""
Role data models for the RBAC service.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Set

from pydantic import BaseModel, Field, field_validator


@dataclass(eq=False)
class Role:
    """A named role in the role graph.

    ``parent`` and ``children`` are references into the owning graph; the
    graph keeps them consistent when roles are added.
    """
    name: str
    parent: Optional["Role"] = None
    permissions: Set[str] = field(default_factory=set)
    children: List["Role"] = field(default_factory=list, repr=False)

    def add_permission(self, permission: str) -> None:
        """Grant a permission directly to this role."""
        self.permissions.add(permission)

    def has_permission(self, permission: str) -> bool:
        """Check direct assignment only, ignoring ancestors."""
        return permission in self.permissions

    def has_children(self) -> bool:
        return bool(self.children)

    @property
    def parent_name(self) -> Optional[str]:
        return self.parent.name if self.parent is not None else None


@dataclass
class RoleDelta:
    """Roles and permissions produced by one load cycle.

    ``roles`` maps a role name to a list holding zero or one parent name.
    ``permissions`` maps a role name to the permissions granted directly.
    """
    roles: Dict[str, List[str]] = field(default_factory=dict)
    permissions: Dict[str, Set[str]] = field(default_factory=dict)

    def add_role(self, name: str, parent: Optional[str] = None) -> None:
        parents = self.roles.setdefault(name, [])
        if parent and parent not in parents:
            parents.append(parent)

    def grant(self, role: str, permission: str) -> None:
        self.permissions.setdefault(role, set()).add(permission)

    def update(self, other: "RoleDelta") -> None:
        """Merge another delta into this one."""
        for name, parents in other.roles.items():
            self.add_role(name)
            for parent in parents:
                self.add_role(name, parent)
        for role, permissions in other.permissions.items():
            for permission in permissions:
                self.grant(role, permission)

    def is_empty(self) -> bool:
        return not self.roles and not self.permissions

    @classmethod
    def from_mappings(
        cls,
        roles: Optional[Mapping[str, Iterable[str]]] = None,
        permissions: Optional[Mapping[str, Iterable[str]]] = None,
    ) -> "RoleDelta":
        delta = cls()
        for name, parents in (roles or {}).items():
            delta.add_role(name)
            for parent in parents or ():
                delta.add_role(name, parent)
        for role, granted in (permissions or {}).items():
            for permission in granted:
                delta.grant(role, permission)
        return delta

    @classmethod
    def from_definitions(cls, definitions: Iterable["RoleDefinition"]) -> "RoleDelta":
        delta = cls()
        for definition in definitions:
            delta.add_role(definition.name, definition.parent)
            for permission in definition.permissions:
                delta.grant(definition.name, permission)
        return delta


class RoleDefinition(BaseModel):
    """Declarative role entry, as found in configuration."""
    name: str = Field(..., min_length=1, description="Role name")
    parent: Optional[str] = Field(None, description="Parent role name")
    permissions: List[str] = Field(default_factory=list, description="Permissions granted directly")

    @field_validator("parent")
    @classmethod
    def _blank_parent_is_root(cls, value: Optional[str]) -> Optional[str]:
        return value or None
