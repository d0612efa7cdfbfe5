"""Tests for the work graph and its builder."""

import pytest

from stackdeploy_lib.deploy.work_graph import (
    AssetBuildNode,
    NodeKind,
    NodeState,
    StackNode,
    WorkGraph,
    WorkGraphBuilder,
)


class TestWorkGraphBuilder:
    """Tests for WorkGraphBuilder."""

    def test_stack_dependencies(self, make_stack):
        """Test that stack nodes wait for their upstream stacks."""
        a, b = make_stack("A"), make_stack("B", dependencies=["A"])

        graph = WorkGraphBuilder().build([a, b])

        assert graph.nodes["A"].depends_on == set()
        assert graph.nodes["B"].depends_on == {"A"}

    def test_dependencies_outside_selection_are_dropped(self, make_stack):
        """Test that only selected stacks constrain the order."""
        graph = WorkGraphBuilder().build([make_stack("B", dependencies=["A", "Z"])])
        assert graph.nodes["B"].depends_on == set()

    def test_asset_nodes_prebuild(self, make_stack, make_file_asset):
        """Test asset wiring when assets are built before deploying."""
        asset = make_file_asset("a1")
        a = make_stack("A")
        b = make_stack("B", dependencies=["A"], assets=[asset])

        graph = WorkGraphBuilder(prebuild_assets=True).build([a, b])

        assert graph.nodes["a1-build"].depends_on == set()
        assert graph.nodes["a1-publish"].depends_on == {"a1-build", "A"}
        assert graph.nodes["B"].depends_on == {"A", "a1-publish"}

    def test_asset_nodes_just_in_time(self, make_stack, make_file_asset):
        """Test that just-in-time builds wait for the upstream stacks."""
        asset = make_file_asset("a1")
        graph = WorkGraphBuilder(prebuild_assets=False).build(
            [make_stack("A"), make_stack("B", dependencies=["A"], assets=[asset])]
        )
        assert graph.nodes["a1-build"].depends_on == {"A"}

    def test_shared_asset_has_single_build_and_publish(self, make_stack, make_file_asset):
        """Test that an asset shared by two stacks is built and published once."""
        asset = make_file_asset("shared")
        graph = WorkGraphBuilder().build([make_stack("A", assets=[asset]), make_stack("B", assets=[asset])])

        assert len(graph.nodes_of_kind(NodeKind.ASSET_BUILD)) == 1
        assert len(graph.nodes_of_kind(NodeKind.ASSET_PUBLISH)) == 1
        assert "shared-publish" in graph.nodes["A"].depends_on
        assert "shared-publish" in graph.nodes["B"].depends_on
        assert graph.nodes["shared-publish"].parent_stack.id == "A"

    @pytest.mark.parametrize("prebuild_assets", [True, False])
    def test_shared_asset_between_dependent_stacks(self, prebuild_assets, make_stack, make_file_asset):
        """Test that a shared asset never waits for a stack that needs it."""
        asset = make_file_asset("shared")
        a = make_stack("A", assets=[asset])
        b = make_stack("B", dependencies=["A"], assets=[asset])

        graph = WorkGraphBuilder(prebuild_assets=prebuild_assets).build([a, b])

        assert graph.nodes["shared-build"].depends_on == set()
        assert graph.nodes["shared-publish"].depends_on == {"shared-build"}
        assert graph.nodes["A"].depends_on == {"shared-publish"}
        assert graph.nodes["B"].depends_on == {"A", "shared-publish"}

    def test_shared_asset_keeps_safe_upstream_edges(self, make_stack, make_file_asset):
        """Test that inherited upstream edges stay when they cannot close a cycle."""
        asset = make_file_asset("shared")
        stacks = [
            make_stack("Base"),
            make_stack("A", dependencies=["Base"], assets=[asset]),
            make_stack("B", dependencies=["A"], assets=[asset]),
        ]

        graph = WorkGraphBuilder(prebuild_assets=False).build(stacks)

        assert graph.nodes["shared-build"].depends_on == {"Base"}
        assert graph.nodes["shared-publish"].depends_on == {"shared-build", "Base"}
        assert not graph.reaches("shared-publish", "A")


class TestWorkGraph:
    """Tests for WorkGraph operations."""

    def test_duplicate_node(self, make_stack):
        """Test that node ids are unique."""
        graph = WorkGraph()
        stack = make_stack("A")
        graph.add_nodes(StackNode(id="A", stack=stack))
        with pytest.raises(ValueError, match="Duplicate node id"):
            graph.add_nodes(StackNode(id="A", stack=stack))

    def test_ready_nodes(self, make_stack):
        """Test readiness as predecessors complete."""
        graph = WorkGraphBuilder().build([make_stack("A"), make_stack("B", dependencies=["A"])])

        assert [node.id for node in graph.ready_nodes()] == ["A"]
        graph.nodes["A"].state = NodeState.RUNNING
        assert graph.ready_nodes() == []
        graph.nodes["A"].state = NodeState.COMPLETED
        assert [node.id for node in graph.ready_nodes()] == ["B"]

    def test_remove_node_strips_edges(self, make_stack):
        """Test that removing a node frees its dependents."""
        graph = WorkGraphBuilder().build([make_stack("A"), make_stack("B", dependencies=["A"])])
        graph.remove_node("A")
        assert "A" not in graph
        assert graph.nodes["B"].depends_on == set()

    def test_remove_published_assets(self, make_stack, make_file_asset):
        """Test that published assets lose their publish and build nodes."""
        published, pending = make_file_asset("done"), make_file_asset("todo")
        graph = WorkGraphBuilder().build([make_stack("A", assets=[published, pending])])

        removed = graph.remove_unnecessary_assets(lambda node: node.asset.id == "done")

        assert sorted(removed) == ["done-build", "done-publish"]
        assert graph.nodes["A"].depends_on == {"todo-publish"}
        assert "todo-build" in graph

    def test_describe(self, make_stack, make_file_asset):
        """Test the human-readable description of stuck nodes."""
        graph = WorkGraph()
        stack = make_stack("A")
        graph.add_nodes(
            StackNode(id="A", stack=stack, depends_on={"x"}),
            AssetBuildNode(id="b", asset=make_file_asset("b"), parent_stack=stack),
        )
        assert graph.describe(graph.nodes.values()) == "A (waiting for x), b (waiting for nothing)"
