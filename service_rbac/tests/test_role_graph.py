"""
Unit tests for the RBAC role graph.
"""

import pytest

from service_rbac.app.roles.graph import RoleGraph
from service_rbac.app.roles.models import RoleDelta
from shared.errors import (
    CyclicRoleError, DuplicateRoleError, RoleNotFoundError, UnknownParentError
)


class TestRoleGraph:
    """Test cases for RoleGraph."""

    @pytest.fixture
    def graph(self):
        """Create an empty role graph."""
        return RoleGraph()

    @pytest.fixture
    def hierarchy(self, graph):
        """guest <- user <- admin, user <- editor."""
        graph.add_role("guest", permissions=["read"])
        graph.add_role("user", parent="guest", permissions=["view"])
        graph.add_role("admin", parent="user", permissions=["delete"])
        graph.add_role("editor", parent="user", permissions=["publish"])
        return graph

    def test_add_role(self, graph):
        """Test adding a root role."""
        role = graph.add_role("user", permissions=["view"])

        assert graph.has_role("user")
        assert "user" in graph
        assert len(graph) == 1
        assert role.parent is None
        assert role.has_permission("view")

    def test_add_role_links_parent_and_child(self, hierarchy):
        """Test that parent and child references are kept in sync."""
        admin = hierarchy.get_role("admin")
        user = hierarchy.get_role("user")

        assert admin.parent is user
        assert admin.parent_name == "user"
        assert admin in user.children
        assert user.has_children()
        assert not admin.has_children()

    def test_add_role_duplicate(self, graph):
        """Test that adding a role twice fails fast."""
        graph.add_role("user")

        with pytest.raises(DuplicateRoleError) as exc_info:
            graph.add_role("user")

        assert exc_info.value.code == "DUPLICATE_ROLE"
        assert exc_info.value.details["role"] == "user"

    def test_add_role_unknown_parent(self, graph):
        """Test that the parent must exist before the child."""
        with pytest.raises(UnknownParentError) as exc_info:
            graph.add_role("admin", parent="user")

        assert exc_info.value.parent == "user"
        assert not graph.has_role("admin")

    def test_get_role_not_found(self, graph):
        """Test retrieving a missing role."""
        with pytest.raises(RoleNotFoundError) as exc_info:
            graph.get_role("ghost")

        assert exc_info.value.role == "ghost"

    def test_has_role_missing(self, graph):
        """Test existence check for a missing role."""
        assert graph.has_role("ghost") is False

    def test_is_granted_direct(self, hierarchy):
        """Test permission assigned directly to the role."""
        assert hierarchy.is_granted("user", "view") is True

    def test_is_granted_inherited_from_ancestors(self, hierarchy):
        """Test permissions inherited from parent and grandparent."""
        assert hierarchy.is_granted("admin", "view") is True
        assert hierarchy.is_granted("admin", "read") is True

    def test_is_granted_does_not_walk_down(self, hierarchy):
        """Test that parents do not inherit from children."""
        assert hierarchy.is_granted("user", "delete") is False
        assert hierarchy.is_granted("guest", "view") is False

    def test_is_granted_siblings_are_independent(self, hierarchy):
        """Test that sibling roles do not share permissions."""
        assert hierarchy.is_granted("admin", "publish") is False
        assert hierarchy.is_granted("editor", "delete") is False

    def test_is_granted_every_descendant(self, hierarchy):
        """Test a permission reaches every role below the one holding it."""
        for name in hierarchy.descendants("guest"):
            assert hierarchy.is_granted(name, "read") is True

    def test_is_granted_unknown_role(self, hierarchy):
        """Test permission check on a missing role."""
        with pytest.raises(RoleNotFoundError):
            hierarchy.is_granted("ghost", "view")

    def test_is_granted_terminates_on_corrupted_cycle(self, hierarchy):
        """Test that a cycle introduced behind the graph's back still terminates."""
        hierarchy.get_role("guest").parent = hierarchy.get_role("admin")

        assert hierarchy.is_granted("admin", "missing") is False
        assert hierarchy.is_granted("admin", "read") is True
        assert hierarchy.ancestors("admin") == ["admin", "user", "guest"]

    def test_grant(self, hierarchy):
        """Test granting a permission after creation."""
        hierarchy.grant("guest", "comment")

        assert hierarchy.is_granted("admin", "comment") is True

    def test_grant_unknown_role(self, graph):
        """Test granting to a missing role."""
        with pytest.raises(RoleNotFoundError):
            graph.grant("ghost", "view")

    def test_ancestors(self, hierarchy):
        """Test ancestor chain ordering."""
        assert hierarchy.ancestors("admin") == ["admin", "user", "guest"]
        assert hierarchy.ancestors("guest") == ["guest"]

    def test_descendants(self, hierarchy):
        """Test descendant traversal starts with the role itself."""
        assert hierarchy.descendants("user") == ["user", "admin", "editor"]
        assert hierarchy.descendants("admin") == ["admin"]

    def test_expand_descendants(self, hierarchy):
        """Test flattening a role set in the descendant direction."""
        flattened = hierarchy.expand_descendants(["user", "unknown"])

        assert flattened == {"user", "admin", "editor", "unknown"}

    def test_get_graph_stats(self, hierarchy):
        """Test graph statistics."""
        stats = hierarchy.get_graph_stats()

        assert stats["total_roles"] == 4
        assert stats["root_roles"] == ["guest"]
        assert stats["total_grants"] == 4
        assert "publish" in stats["permissions"]

    def test_clear(self, hierarchy):
        """Test clearing the graph."""
        hierarchy.clear()

        assert len(hierarchy) == 0
        assert hierarchy.role_names == []


class TestRoleGraphMerge:
    """Test cases for applying loader deltas."""

    @pytest.fixture
    def graph(self):
        """Create a graph with one root role."""
        graph = RoleGraph()
        graph.add_role("user", permissions=["view"])
        return graph

    def test_merge_orders_parents_first(self, graph):
        """Test that children listed before their parents still load."""
        delta = RoleDelta.from_mappings(
            roles={"superadmin": ["admin"], "admin": ["user"]},
            permissions={"admin": ["delete"]}
        )

        added = graph.merge(delta)

        assert added == ["admin", "superadmin"]
        assert graph.is_granted("superadmin", "delete") is True
        assert graph.is_granted("superadmin", "view") is True

    def test_merge_is_idempotent(self, graph):
        """Test that re-merging the same delta changes nothing."""
        delta = RoleDelta.from_mappings(roles={"admin": ["user"], "user": []})

        graph.merge(delta)
        added = graph.merge(delta)

        assert added == []
        assert len(graph) == 2

    def test_merge_adds_permissions_to_existing_roles(self, graph):
        """Test granting permissions to roles already loaded."""
        graph.merge(RoleDelta.from_mappings(permissions={"user": ["comment"]}))

        assert graph.is_granted("user", "comment") is True
        assert graph.is_granted("user", "view") is True

    def test_merge_conflicting_parent(self, graph):
        """Test that an existing role cannot be re-parented."""
        graph.add_role("staff")
        graph.add_role("admin", parent="user")

        with pytest.raises(DuplicateRoleError) as exc_info:
            graph.merge(RoleDelta.from_mappings(roles={"admin": ["staff"]}))

        assert exc_info.value.details["parent"] == "user"
        assert exc_info.value.details["requested_parent"] == "staff"

    def test_merge_multiple_parents(self, graph):
        """Test that a role may only have a single parent."""
        delta = RoleDelta()
        delta.add_role("admin", "user")
        delta.add_role("admin", "staff")

        with pytest.raises(DuplicateRoleError):
            graph.merge(delta)

    def test_merge_unknown_parent(self, graph):
        """Test a delta referring to a parent nobody defines."""
        with pytest.raises(UnknownParentError):
            graph.merge(RoleDelta.from_mappings(roles={"admin": ["owner"]}))

    def test_merge_cycle(self, graph):
        """Test a delta whose parent links loop."""
        delta = RoleDelta.from_mappings(roles={"a": ["b"], "b": ["c"], "c": ["a"]})

        with pytest.raises(CyclicRoleError) as exc_info:
            graph.merge(delta)

        assert exc_info.value.roles == ["a", "b", "c"]

    def test_merge_permissions_for_unknown_role(self, graph):
        """Test granting to a role absent from graph and delta."""
        with pytest.raises(RoleNotFoundError):
            graph.merge(RoleDelta.from_mappings(permissions={"ghost": ["view"]}))

    def test_merge_failure_leaves_graph_untouched(self, graph):
        """Test that a rejected delta applies nothing."""
        delta = RoleDelta.from_mappings(
            roles={"admin": ["user"], "broken": ["missing"]},
            permissions={"user": ["delete"]}
        )

        with pytest.raises(UnknownParentError):
            graph.merge(delta)

        assert graph.role_names == ["user"]
        assert graph.is_granted("user", "delete") is False

    def test_merge_replaces_bare_placeholder(self, graph):
        """Test that a bare placeholder role can be given a parent."""
        graph.add_role("guest")

        added = graph.merge(
            RoleDelta.from_mappings(roles={"guest": ["base"], "base": ["user"]}),
            placeholders=["guest"]
        )

        assert added == ["base"]
        assert graph.ancestors("guest") == ["guest", "base", "user"]
        assert graph.get_role("base").children[0].name == "guest"

    def test_merge_placeholder_with_children_kept(self, graph):
        """Test that placeholders other roles inherit from are not replaced."""
        graph.add_role("guest")
        graph.add_role("visitor", parent="guest")

        with pytest.raises(DuplicateRoleError):
            graph.merge(RoleDelta.from_mappings(roles={"guest": ["user"]}), placeholders=["guest"])

        assert graph.get_role("guest").parent is None

    def test_merge_without_placeholder_rejects_reparent(self, graph):
        """Test that regular roles are never re-parented."""
        graph.add_role("guest")

        with pytest.raises(DuplicateRoleError):
            graph.merge(RoleDelta.from_mappings(roles={"guest": ["user"]}))

    def test_merge_placeholder_cycle_leaves_graph_unchanged(self, graph):
        """Test that a rejected replacement keeps the placeholder."""
        graph.add_role("guest")

        with pytest.raises(CyclicRoleError):
            graph.merge(
                RoleDelta.from_mappings(roles={"guest": ["base"], "base": ["guest"]}),
                placeholders=["guest"]
            )

        assert graph.has_role("guest")
        assert not graph.has_role("base")
