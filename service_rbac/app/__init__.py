"""
RBAC service package.

This package decides whether the current caller may use a permission,
based on the caller's roles and a hierarchical role graph. It provides:

- app.roles: Role model, role graph, and loaders that populate it.
- app.identity: Identity providers that report the caller's roles.
- app.authorization: Assertions and the authorization service.
- app.config: Service settings (guest role, reload policy, evaluation mode).

Guidelines:
- The role graph is loaded lazily, once per service instance unless
  force-reload is enabled.
- Integrity errors in the role graph are always raised, never turned into
  a denial.
- Keep evaluation deterministic and observable (metrics + logs).
"""
