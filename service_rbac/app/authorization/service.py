"""
Authorization service for the RBAC layer.

The service answers "may the current caller do X?". It resolves the caller's
roles through an identity provider, makes sure the role graph has been
populated by the role loader, runs the optional assertion and then asks the
graph whether the caller's roles grant the permission.

Load lifecycle::

    UNLOADED --first successful load--> LOADED
    LOADED   --reset()----------------> UNLOADED

With ``force_reload`` enabled every check runs the loader again while the
state stays LOADED. Loads are serialized by a lock owned by the instance, so
concurrent first checks trigger a single load.
"""

import threading
import time
from typing import Any, Iterable, List, Optional, Tuple

from opentelemetry import trace

from shared.errors import InvalidRoleError, RbacError, RoleLoadError
from shared.logging import configure_logging, get_logger
from shared.metrics import MetricsCollector, get_metrics_collector
from shared.tracing import get_tracer, traced_operation
from ..config import RbacConfig, get_config
from ..identity.providers import IdentityProvider, extract_role_names
from ..roles.graph import RoleGraph
from ..roles.loaders import InMemoryRoleLoader, LoadContext, RoleLoader, as_role_loader
from ..roles.models import RoleDelta
from .assertions import resolve_assertion
from .models import AuthorizationResult, EvaluationMode, LoadState, UnknownRolePolicy


class AuthorizationService:
    """Permission checks against a lazily loaded role graph."""

    def __init__(
        self,
        identity_provider: IdentityProvider,
        role_graph: Optional[RoleGraph] = None,
        role_loader: Any = None,
        guest_role: Optional[str] = None,
        force_reload: bool = False,
        mode: EvaluationMode = EvaluationMode.ANY,
        unknown_role_policy: UnknownRolePolicy = UnknownRolePolicy.SKIP,
        metrics: Optional[MetricsCollector] = None,
        tracer: Optional[trace.Tracer] = None,
    ):
        self.logger = get_logger("rbac.authorization")
        self.identity_provider = identity_provider
        self.role_graph = role_graph if role_graph is not None else RoleGraph()
        self.role_loader: RoleLoader = as_role_loader(role_loader)
        self.guest_role = guest_role or None
        self.mode = EvaluationMode(mode)
        self.unknown_role_policy = UnknownRolePolicy(unknown_role_policy)
        self.metrics = metrics or get_metrics_collector("rbac")
        self.tracer = tracer or get_tracer("rbac")

        self._force_reload = bool(force_reload)
        self._state = LoadState.UNLOADED
        self._load_lock = threading.RLock()
        # Guest role inserted by the service rather than declared by a loader
        self._guest_placeholder = False

    @property
    def state(self) -> LoadState:
        return self._state

    @property
    def is_loaded(self) -> bool:
        return self._state is LoadState.LOADED

    @property
    def force_reload(self) -> bool:
        return self._force_reload

    def set_force_reload(self, force_reload: bool) -> None:
        """Run the role loader on every check instead of once."""
        self._force_reload = bool(force_reload)

    def get_role_graph(self) -> RoleGraph:
        return self.role_graph

    def reset(self, clear_graph: bool = False) -> None:
        """Return to UNLOADED so the next check loads roles again."""
        with self._load_lock:
            if clear_graph:
                self.role_graph.clear()
                self._guest_placeholder = False
            self._state = LoadState.UNLOADED
        self.logger.info("Authorization service reset", cleared=clear_graph)

    def get_identity_roles(self) -> List[str]:
        """Role names of the current caller, or the guest role when anonymous."""
        return self._resolve_identity()[1]

    def is_granted(self, permission: str, assertion: Any = None) -> bool:
        """Check if the permission is granted to the current identity."""
        return self.evaluate(permission, assertion).allowed

    def evaluate(self, permission: str, assertion: Any = None) -> AuthorizationResult:
        """Check a permission and explain the decision."""
        start_time = time.time()

        with traced_operation(
            "rbac.is_granted",
            tracer=self.tracer,
            permission=permission,
            mode=self.mode.value,
        ) as span:
            try:
                identity, roles = self._resolve_identity()

                if not roles:
                    result = AuthorizationResult(
                        allowed=False,
                        permission=permission,
                        reason="Identity has no roles"
                    )
                else:
                    self._load(roles, permission)
                    result = self._evaluate_roles(identity, roles, permission, assertion)
            except RbacError as e:
                self.metrics.record_error(e.code)
                self.logger.error(
                    "Authorization check failed",
                    permission=permission,
                    code=e.code,
                    error=e.message
                )
                raise

            span.set_attribute("rbac.allowed", result.allowed)

        duration = time.time() - start_time
        result.evaluation_time_ms = duration * 1000
        self.metrics.record_check("granted" if result.allowed else "denied", self.mode.value, duration)

        self.logger.debug(
            "Authorization decision",
            permission=permission,
            allowed=result.allowed,
            reason=result.reason,
            matched_roles=result.matched_roles
        )
        return result

    def satisfy_identity_roles(self, roles: Iterable[Any]) -> bool:
        """Check if the caller holds one of the roles or a role inheriting from it."""
        start_time = time.time()

        with traced_operation("rbac.satisfy_identity_roles", tracer=self.tracer) as span:
            try:
                candidates = _role_names(roles)
                _, identity_roles = self._resolve_identity()

                if not identity_roles:
                    satisfied = False
                else:
                    self._load(identity_roles, None)
                    held = self.role_graph.expand_descendants(identity_roles)
                    satisfied = bool(self.role_graph.expand_descendants(candidates) & held)
            except RbacError as e:
                self.metrics.record_error(e.code)
                self.logger.error("Role satisfaction check failed", code=e.code, error=e.message)
                raise

            span.set_attribute("rbac.satisfied", satisfied)

        self.metrics.record_role_check("granted" if satisfied else "denied", time.time() - start_time)
        self.logger.debug(
            "Role satisfaction decision",
            roles=candidates,
            identity_roles=identity_roles,
            satisfied=satisfied
        )
        return satisfied

    def _resolve_identity(self) -> Tuple[Optional[Any], List[str]]:
        identity = self.identity_provider.get_identity()

        if identity is None:
            return None, [self.guest_role] if self.guest_role else []

        return identity, extract_role_names(identity)

    def _evaluate_roles(
        self,
        identity: Optional[Any],
        roles: List[str],
        permission: str,
        assertion: Any,
    ) -> AuthorizationResult:
        # The assertion sees the same identity for every role, so it runs once up front
        if assertion is not None:
            predicate = resolve_assertion(assertion)
            if not predicate(identity):
                return AuthorizationResult(
                    allowed=False,
                    permission=permission,
                    reason="Assertion rejected the identity"
                )

        matched: List[str] = []
        unknown: List[str] = []
        evaluated = 0

        for role in roles:
            if not self.role_graph.has_role(role):
                unknown.append(role)
                self.logger.warning(
                    "Identity role missing from role graph",
                    role=role,
                    policy=self.unknown_role_policy.value
                )
                if self.unknown_role_policy is UnknownRolePolicy.DENY:
                    return AuthorizationResult(
                        allowed=False,
                        permission=permission,
                        reason=f"Role '{role}' is not defined",
                        unknown_roles=unknown
                    )
                continue

            evaluated += 1
            if self.role_graph.is_granted(role, permission):
                matched.append(role)
                if self.mode is EvaluationMode.ANY:
                    return AuthorizationResult(
                        allowed=True,
                        permission=permission,
                        reason=f"Granted through role '{role}'",
                        matched_roles=matched,
                        unknown_roles=unknown
                    )
            elif self.mode is EvaluationMode.ALL:
                return AuthorizationResult(
                    allowed=False,
                    permission=permission,
                    reason=f"Role '{role}' does not grant the permission",
                    matched_roles=matched,
                    unknown_roles=unknown
                )

        if self.mode is EvaluationMode.ALL and evaluated:
            return AuthorizationResult(
                allowed=True,
                permission=permission,
                reason="Granted through every role",
                matched_roles=matched,
                unknown_roles=unknown
            )

        return AuthorizationResult(
            allowed=False,
            permission=permission,
            reason="No role grants the permission" if evaluated else "No identity role is defined",
            matched_roles=matched,
            unknown_roles=unknown
        )

    def _load(self, roles: List[str], permission: Optional[str]) -> None:
        if self._state is LoadState.LOADED and not self._force_reload:
            return

        with self._load_lock:
            if self._state is LoadState.LOADED and not self._force_reload:
                return

            context = LoadContext(graph=self.role_graph, roles=list(roles), permission=permission)

            with traced_operation(
                "rbac.load_roles",
                tracer=self.tracer,
                loader=self.role_loader.name,
                permission=permission,
            ):
                try:
                    delta = self.role_loader.load_roles(context)
                    added = self._merge(delta) if delta is not None else []
                except RbacError:
                    self.metrics.record_load("failed")
                    raise
                except Exception as e:
                    self.metrics.record_load("failed")
                    self.logger.error("Role loader failed", loader=self.role_loader.name, error=str(e))
                    raise RoleLoadError(self.role_loader.name, str(e)) from e

            # Guests must always resolve to a known role, even without permissions
            if self.guest_role and not self.role_graph.has_role(self.guest_role):
                self.role_graph.add_role(self.guest_role)
                self._guest_placeholder = True

            self._state = LoadState.LOADED
            self.metrics.record_load("success", len(self.role_graph))
            self.logger.info(
                "Role graph loaded",
                loader=self.role_loader.name,
                added_roles=len(added),
                total_roles=len(self.role_graph),
                forced=self._force_reload
            )

    def _merge(self, delta: RoleDelta) -> List[str]:
        placeholders = [self.guest_role] if self._guest_placeholder else []
        added = self.role_graph.merge(delta, placeholders=placeholders)

        if self._guest_placeholder and (self.guest_role in delta.roles or self.guest_role in delta.permissions):
            self._guest_placeholder = False
        return added


def _role_names(roles: Any) -> List[str]:
    if isinstance(roles, str):
        roles = [roles]

    try:
        items = list(roles)
    except TypeError:
        raise InvalidRoleError(roles) from None

    names = []
    for role in items:
        name = role if isinstance(role, str) else getattr(role, "name", None)
        if not isinstance(name, str):
            raise InvalidRoleError(role)
        names.append(name)
    return names


def create_authorization_service(
    identity_provider: IdentityProvider,
    config: Optional[RbacConfig] = None,
    role_loader: Any = None,
    role_graph: Optional[RoleGraph] = None,
    metrics: Optional[MetricsCollector] = None,
) -> AuthorizationService:
    """Build an authorization service from configuration.

    Without an explicit loader, roles declared in the configuration are
    served by an in-memory loader.
    """
    config = config or get_config()
    configure_logging(config.service_name, config.log_level)

    if role_loader is None and config.has_static_roles():
        role_loader = InMemoryRoleLoader(
            roles=config.roles,
            permissions=config.permissions,
            definitions=config.role_definitions
        )

    tracer = get_tracer(config.service_name) if config.enable_tracing else trace.NoOpTracer()

    return AuthorizationService(
        identity_provider,
        role_graph=role_graph,
        role_loader=role_loader,
        guest_role=config.guest_role,
        force_reload=config.force_reload,
        mode=config.evaluation_mode,
        unknown_role_policy=config.unknown_role_policy,
        metrics=metrics or get_metrics_collector(config.service_name),
        tracer=tracer
    )
