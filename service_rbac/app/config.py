"""
Configuration for the RBAC service.

Every field can be set from the environment with the ``RBAC_`` prefix, e.g.
``RBAC_GUEST_ROLE=guest`` or ``RBAC_ROLES='{"admin": ["user"], "user": []}'``.
"""

from typing import Dict, List, Optional

from pydantic import Field, field_validator

from shared.config import BaseConfig
from .authorization.models import EvaluationMode, UnknownRolePolicy
from .roles.models import RoleDefinition


class RbacConfig(BaseConfig):
    """Authorization service settings."""

    service_name: str = Field(default="rbac", description="Name used in logs and metrics")

    guest_role: Optional[str] = Field(default=None, description="Role used when there is no identity")
    force_reload: bool = Field(default=False, description="Invoke the role loader on every check")
    evaluation_mode: EvaluationMode = Field(default=EvaluationMode.ANY)
    unknown_role_policy: UnknownRolePolicy = Field(default=UnknownRolePolicy.SKIP)

    # Static role universe, served by an InMemoryRoleLoader
    roles: Dict[str, List[str]] = Field(default_factory=dict, description="Role name to parent names")
    permissions: Dict[str, List[str]] = Field(default_factory=dict, description="Role name to permissions")
    role_definitions: List[RoleDefinition] = Field(default_factory=list)

    @field_validator("guest_role")
    @classmethod
    def _empty_guest_role_disables_guest(cls, value: Optional[str]) -> Optional[str]:
        return value or None

    def has_static_roles(self) -> bool:
        return bool(self.roles or self.permissions or self.role_definitions)


def get_config(**overrides) -> RbacConfig:
    """Get the RBAC configuration, applying explicit overrides over the environment."""
    return RbacConfig(**overrides)
