"""
In-memory role graph for the RBAC service.
"""

from typing import Any, Dict, Iterable, Iterator, List, Optional, Set, Tuple

from shared.logging import get_logger
from shared.errors import (
    CyclicRoleError, DuplicateRoleError, RoleNotFoundError, UnknownParentError
)
from .models import Role, RoleDelta


class RoleGraph:
    """Forest of roles keyed by name.

    Every role has at most one parent. Permission checks walk from a role up
    through its ancestors; role flattening walks down through children.
    """

    def __init__(self):
        self.logger = get_logger("rbac.role_graph")
        self.roles: Dict[str, Role] = {}

    def __contains__(self, name: object) -> bool:
        return name in self.roles

    def __len__(self) -> int:
        return len(self.roles)

    def __iter__(self) -> Iterator[Role]:
        return iter(list(self.roles.values()))

    @property
    def role_names(self) -> List[str]:
        return list(self.roles)

    def add_role(self, name: str, parent: Optional[str] = None, permissions: Iterable[str] = ()) -> Role:
        """Add a role under an existing parent."""
        if name in self.roles:
            raise DuplicateRoleError(name)

        parent_role = None
        if parent is not None:
            parent_role = self.roles.get(parent)
            if parent_role is None:
                raise UnknownParentError(name, parent)

        role = Role(name=name, parent=parent_role, permissions=set(permissions))
        if parent_role is not None:
            parent_role.children.append(role)
        self.roles[name] = role

        self.logger.debug("Role added", role=name, parent=parent)
        return role

    def has_role(self, name: str) -> bool:
        return name in self.roles

    def get_role(self, name: str) -> Role:
        try:
            return self.roles[name]
        except KeyError:
            raise RoleNotFoundError(name) from None

    def grant(self, name: str, permission: str) -> None:
        """Grant a permission directly to an existing role."""
        self.get_role(name).add_permission(permission)

    def is_granted(self, name: str, permission: str) -> bool:
        """Check whether a role or any of its ancestors holds a permission."""
        role = self.get_role(name)
        for current in self._walk_ancestors(role):
            if current.has_permission(permission):
                return True
        return False

    def ancestors(self, name: str) -> List[str]:
        """Return the role followed by its parent chain up to the root."""
        return [role.name for role in self._walk_ancestors(self.get_role(name))]

    def descendants(self, name: str) -> List[str]:
        """Return the role followed by every role that inherits from it."""
        role = self.get_role(name)
        ordered: List[str] = []
        visited: Set[str] = set()
        stack = [role]

        while stack:
            current = stack.pop()
            if current.name in visited:
                continue
            visited.add(current.name)
            ordered.append(current.name)
            # Reversed so children pop in insertion order
            stack.extend(reversed(current.children))

        return ordered

    def expand_descendants(self, names: Iterable[str]) -> Set[str]:
        """Flatten role names in the descendant direction.

        Names missing from the graph flatten to themselves.
        """
        flattened: Set[str] = set()
        for name in names:
            if name in flattened:
                continue
            if name in self.roles:
                flattened.update(self.descendants(name))
            else:
                flattened.add(name)
        return flattened

    def merge(self, delta: RoleDelta, placeholders: Iterable[str] = ()) -> List[str]:
        """Apply a load delta, all or nothing.

        Roles named in ``placeholders`` that are still bare (no parent, no
        children, no permissions) may be redefined by the delta instead of
        being rejected as duplicates.

        Returns the names of roles that were not already present.
        """
        plan, replaced = self._plan_merge(delta, set(placeholders))

        for role_name in delta.permissions:
            if role_name not in self.roles and role_name not in delta.roles:
                raise RoleNotFoundError(role_name)

        for name in replaced:
            del self.roles[name]
            self.logger.debug("Placeholder role replaced", role=name)

        added: List[str] = []
        for name, parent in plan:
            self.add_role(name, parent)
            if name not in replaced:
                added.append(name)

        for role_name, permissions in delta.permissions.items():
            role = self.roles[role_name]
            for permission in permissions:
                role.add_permission(permission)

        self.logger.info(
            "Role delta merged",
            added_roles=len(added),
            total_roles=len(self.roles),
            granted_roles=len(delta.permissions)
        )
        return added

    def clear(self) -> None:
        """Remove every role from the graph."""
        self.roles.clear()
        self.logger.info("Role graph cleared")

    def get_graph_stats(self) -> Dict[str, Any]:
        """Get graph statistics."""
        return {
            "total_roles": len(self.roles),
            "root_roles": sorted(r.name for r in self.roles.values() if r.parent is None),
            "total_grants": sum(len(r.permissions) for r in self.roles.values()),
            "permissions": sorted({p for r in self.roles.values() for p in r.permissions}),
        }

    def _walk_ancestors(self, role: Role) -> Iterator[Role]:
        # Bounded by graph size so a corrupted parent chain still terminates
        visited: Set[str] = set()
        limit = max(len(self.roles), 1)
        current: Optional[Role] = role

        while current is not None:
            if current.name in visited:
                self.logger.warning("Cycle in role ancestry", role=role.name, at=current.name)
                return
            yield current
            visited.add(current.name)
            if len(visited) >= limit:
                return
            current = current.parent

    def _plan_merge(
        self, delta: RoleDelta, placeholders: Set[str]
    ) -> Tuple[List[Tuple[str, Optional[str]]], Set[str]]:
        """Validate a delta and order its new roles parents-first."""
        pending: Dict[str, Optional[str]] = {}
        replaced: Set[str] = set()

        for name, parents in delta.roles.items():
            parents = list(parents or [])
            if len(parents) > 1:
                raise DuplicateRoleError(name, {"parents": parents})
            parent = parents[0] if parents else None

            existing = self.roles.get(name)
            if existing is not None:
                if existing.parent_name == parent:
                    continue
                if name not in placeholders or not _is_bare(existing):
                    raise DuplicateRoleError(
                        name, {"parent": existing.parent_name, "requested_parent": parent}
                    )
                replaced.add(name)
            pending[name] = parent

        known = set(self.roles) - replaced
        for name, parent in pending.items():
            if parent is not None and parent not in known and parent not in pending:
                raise UnknownParentError(name, parent)

        ordered: List[Tuple[str, Optional[str]]] = []
        placed: Set[str] = set()
        remaining = dict(pending)

        while remaining:
            ready = [
                name for name, parent in remaining.items()
                if parent is None or parent in known or parent in placed
            ]
            if not ready:
                raise CyclicRoleError(remaining.keys())
            for name in ready:
                ordered.append((name, remaining.pop(name)))
                placed.add(name)

        return ordered, replaced


def _is_bare(role: Role) -> bool:
    return role.parent is None and not role.children and not role.permissions
