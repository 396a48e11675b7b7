"""
Runtime assertions evaluated alongside the role graph.

An assertion can veto a permission the roles would otherwise grant, for
example "only the owner may edit this document". It receives the current
identity (None for guests).
"""

from abc import ABC, abstractmethod
from typing import Any, Callable

from shared.errors import InvalidAssertionError


class Assertion(ABC):
    """Object form of an assertion."""

    @abstractmethod
    def evaluate(self, identity: Any) -> bool:
        """Return False to deny access."""


def resolve_assertion(assertion: Any) -> Callable[[Any], bool]:
    """Return the predicate behind an assertion argument."""
    if isinstance(assertion, Assertion):
        return assertion.evaluate
    if callable(assertion):
        return assertion
    raise InvalidAssertionError(assertion)
