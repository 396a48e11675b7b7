"""RBAC authorization service."""
