"""
Work graph of one deploy run.

Nodes are stack deploys, asset builds and asset publishes. An edge means "the
predecessor must complete first": a stack depends on the publishes of the assets it
references and on its upstream stacks, and an asset publish depends on its build.
The graph is built once per run, optionally pruned of already-published assets,
and then consumed by the ConcurrencyScheduler.
"""

from collections.abc import Callable, Iterable
from enum import Enum
from typing import Literal

from loguru import logger
from pydantic import BaseModel, Field

from stackdeploy_lib.types.artifacts import AssetEntry, StackArtifact

LOGGER = logger.bind(name="stackdeploy_lib.deploy.work_graph")


class NodeKind(str, Enum):
    """Work-graph node category; each has its own concurrency ceiling."""

    STACK = "stack"
    ASSET_BUILD = "asset-build"
    ASSET_PUBLISH = "asset-publish"


class NodeState(str, Enum):
    """Lifecycle of a node during scheduling."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class StackNode(BaseModel):
    """Deploy one stack."""

    kind: Literal[NodeKind.STACK] = NodeKind.STACK
    id: str
    stack: StackArtifact
    depends_on: set[str] = Field(default_factory=set)
    state: NodeState = NodeState.PENDING


class AssetBuildNode(BaseModel):
    """Build one asset for the stack that first referenced it."""

    kind: Literal[NodeKind.ASSET_BUILD] = NodeKind.ASSET_BUILD
    id: str
    asset: AssetEntry
    parent_stack: StackArtifact
    depends_on: set[str] = Field(default_factory=set)
    state: NodeState = NodeState.PENDING


class AssetPublishNode(BaseModel):
    """Publish one built asset."""

    kind: Literal[NodeKind.ASSET_PUBLISH] = NodeKind.ASSET_PUBLISH
    id: str
    asset: AssetEntry
    parent_stack: StackArtifact
    depends_on: set[str] = Field(default_factory=set)
    state: NodeState = NodeState.PENDING


WorkNode = StackNode | AssetBuildNode | AssetPublishNode


def build_node_id(asset: AssetEntry) -> str:
    return f"{asset.id}-build"


def publish_node_id(asset: AssetEntry) -> str:
    return f"{asset.id}-publish"


class WorkGraph:
    """
    Dependency graph of work nodes.

    Insertion order is kept, so ready nodes are dispatched in the order stacks and
    assets were added.
    """

    def __init__(self) -> None:
        self.nodes: dict[str, WorkNode] = {}

    def __contains__(self, node_id: str) -> bool:
        return node_id in self.nodes

    def __len__(self) -> int:
        return len(self.nodes)

    def add_nodes(self, *nodes: WorkNode) -> None:
        for node in nodes:
            if node.id in self.nodes:
                raise ValueError(f"Duplicate node id in work graph: {node.id}")
            self.nodes[node.id] = node

    def add_dependency(self, node_id: str, depends_on: str) -> None:
        """Make ``node_id`` wait for ``depends_on``."""
        self.nodes[node_id].depends_on.add(depends_on)

    def remove_node(self, node_id: str) -> None:
        """Remove a node and every edge pointing at it."""
        self.nodes.pop(node_id, None)
        for node in self.nodes.values():
            node.depends_on.discard(node_id)

    def nodes_of_kind(self, kind: NodeKind) -> list[WorkNode]:
        return [node for node in self.nodes.values() if node.kind == kind]

    def dependents(self, node_id: str) -> list[WorkNode]:
        return [node for node in self.nodes.values() if node_id in node.depends_on]

    def is_ready(self, node: WorkNode) -> bool:
        """A pending node whose predecessors have all completed."""
        if node.state != NodeState.PENDING:
            return False
        return all(
            dep not in self.nodes or self.nodes[dep].state == NodeState.COMPLETED for dep in node.depends_on
        )

    def ready_nodes(self) -> list[WorkNode]:
        return [node for node in self.nodes.values() if self.is_ready(node)]

    def pending_nodes(self) -> list[WorkNode]:
        return [node for node in self.nodes.values() if node.state == NodeState.PENDING]

    def remove_unnecessary_assets(self, is_published: Callable[[AssetPublishNode], bool]) -> list[str]:
        """
        Drop publish nodes whose asset is already published.

        A build node goes with them once no remaining publish node needs it.

        Returns
        -------
            Ids of the removed nodes

        """
        removed: list[str] = []
        for node in list(self.nodes_of_kind(NodeKind.ASSET_PUBLISH)):
            if is_published(node):  # type: ignore[arg-type]
                LOGGER.debug(f"Asset {node.asset.display_name} is already published, skipping it")
                self.remove_node(node.id)
                removed.append(node.id)

        for node in list(self.nodes_of_kind(NodeKind.ASSET_BUILD)):
            if not self.dependents(node.id):
                self.remove_node(node.id)
                removed.append(node.id)
        return removed

    def reaches(self, node_id: str, target: str) -> bool:
        """Whether ``node_id`` waits for ``target``, directly or transitively."""
        seen: set[str] = set()
        todo = [node_id]
        while todo:
            current = todo.pop()
            if current == target:
                return True
            if current in seen or current not in self.nodes:
                continue
            seen.add(current)
            todo.extend(self.nodes[current].depends_on)
        return False

    def describe(self, nodes: Iterable[WorkNode]) -> str:
        return ", ".join(f"{node.id} (waiting for {', '.join(sorted(node.depends_on)) or 'nothing'})" for node in nodes)


class WorkGraphBuilder:
    """
    Build the work graph for a set of stacks.

    With ``prebuild_assets`` (asset build time ALL_BEFORE_DEPLOY) asset builds do not
    wait for anything, so every build runs, and can fail, before stacks are touched.
    Otherwise builds wait for the parent stack's upstream stacks. Publishes always
    wait for the build and for the parent stack's upstream stacks.

    An asset shared by several stacks inherits the upstream stacks of each of them.
    Inherited edges that would make the asset wait for a stack which itself waits
    for the asset are dropped.
    """

    def __init__(self, prebuild_assets: bool = True) -> None:
        self._prebuild_assets = prebuild_assets

    def build(self, stacks: list[StackArtifact]) -> WorkGraph:
        graph = WorkGraph()
        selected = {stack.id for stack in stacks}
        inherited: list[tuple[str, str]] = []

        for stack in stacks:
            upstream = {dep for dep in stack.dependencies if dep in selected}
            dropped = [dep for dep in stack.dependencies if dep not in selected]
            if dropped:
                LOGGER.debug(f"{stack.id}: ignoring dependencies outside the selection: {', '.join(dropped)}")

            graph.add_nodes(StackNode(id=stack.id, stack=stack, depends_on=set(upstream)))

            for asset in stack.assets:
                build_id = build_node_id(asset)
                publish_id = publish_node_id(asset)

                if build_id not in graph:
                    graph.add_nodes(AssetBuildNode(id=build_id, asset=asset, parent_stack=stack))
                if not self._prebuild_assets:
                    graph.nodes[build_id].depends_on.update(upstream)
                    inherited.extend((build_id, dep) for dep in upstream)

                if publish_id not in graph:
                    graph.add_nodes(
                        AssetPublishNode(id=publish_id, asset=asset, parent_stack=stack, depends_on={build_id})
                    )
                graph.nodes[publish_id].depends_on.update(upstream)
                inherited.extend((publish_id, dep) for dep in upstream)

                graph.add_dependency(stack.id, publish_id)

        for node_id, dep in inherited:
            if dep in graph.nodes[node_id].depends_on and graph.reaches(dep, node_id):
                LOGGER.debug(f"{node_id}: not waiting for {dep}, which needs it first")
                graph.nodes[node_id].depends_on.discard(dep)

        LOGGER.debug(
            f"Work graph: {len(graph.nodes_of_kind(NodeKind.STACK))} stacks, "
            f"{len(graph.nodes_of_kind(NodeKind.ASSET_BUILD))} builds, "
            f"{len(graph.nodes_of_kind(NodeKind.ASSET_PUBLISH))} publishes"
        )
        return graph
