"""
Authorization data models for the RBAC service.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class EvaluationMode(str, Enum):
    """How the decisions of several identity roles combine."""
    ANY = "any"   # granted if any role grants (union)
    ALL = "all"   # granted only if every role grants


class UnknownRolePolicy(str, Enum):
    """What a check does with identity roles missing from the graph."""
    SKIP = "skip"  # ignore the role, keep evaluating the others
    DENY = "deny"  # deny the whole check


class LoadState(str, Enum):
    """Role graph load state."""
    UNLOADED = "unloaded"
    LOADED = "loaded"


@dataclass
class AuthorizationResult:
    """Result of one permission check."""
    allowed: bool
    permission: str
    reason: Optional[str] = None
    matched_roles: List[str] = field(default_factory=list)
    unknown_roles: List[str] = field(default_factory=list)
    evaluation_time_ms: float = 0.0

    def __bool__(self) -> bool:
        return self.allowed
