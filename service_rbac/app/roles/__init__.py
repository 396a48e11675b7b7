"""
Role graph package.

Defines the role model, the in-memory role graph and the loaders that
populate it. Permission checks walk from a role up to its ancestors; role
flattening walks down to its descendants.

Modules of interest:
- models: Role, RoleDelta and the declarative RoleDefinition.
- graph: RoleGraph with add/lookup, inheritance checks and atomic merges.
- loaders: RoleLoader interface plus in-memory, repository, callback and
  chained implementations.
"""
