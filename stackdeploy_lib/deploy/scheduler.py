"""
Concurrency scheduler for the work graph.

Each node category runs on its own bounded thread pool: asset builds are CPU or
Docker bound, asset publishes are network bound, and neither may starve the other.
A node starts only when all of its predecessors have completed. After the first
failure no new node is started; nodes already running finish, and then the first
failure is raised as it was thrown.
"""

from collections.abc import Callable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait

from loguru import logger

from stackdeploy_lib.config.schemas import GraphConcurrency
from stackdeploy_lib.deploy.work_graph import NodeKind, NodeState, WorkGraph, WorkNode
from stackdeploy_lib.exceptions import StackDeployConfigurationError, StackDeployToolkitError

LOGGER = logger.bind(name="stackdeploy_lib.deploy.scheduler")

NodeHandler = Callable[[WorkNode], None]


class ConcurrencyScheduler:
    """
    Run a work graph under per-category concurrency ceilings.

    Example:
    -------
        ```python
        scheduler = ConcurrencyScheduler(GraphConcurrency(stack=2, asset_build=1, asset_publish=8))
        scheduler.run(graph, {
            NodeKind.STACK: deploy_stack,
            NodeKind.ASSET_BUILD: build_asset,
            NodeKind.ASSET_PUBLISH: publish_asset,
        })
        ```

    """

    def __init__(self, concurrency: GraphConcurrency) -> None:
        self._limits = {
            NodeKind.STACK: concurrency.stack,
            NodeKind.ASSET_BUILD: concurrency.asset_build,
            NodeKind.ASSET_PUBLISH: concurrency.asset_publish,
        }

    @property
    def limits(self) -> dict[NodeKind, int]:
        return dict(self._limits)

    def run(self, graph: WorkGraph, handlers: dict[NodeKind, NodeHandler]) -> None:
        """
        Execute every node of the graph.

        Args:
        ----
            graph: Work graph; node states are updated in place
            handlers: What to do for a node of each category

        Raises:
        ------
            StackDeployConfigurationError: If a category present in the graph has no handler
            StackDeployToolkitError: If nodes remain that can never become ready (a cycle)
            The first exception a handler raised, unchanged

        """
        missing = {node.kind for node in graph.nodes.values()} - set(handlers)
        if missing:
            raise StackDeployConfigurationError(
                f"No handler for work graph node kinds: {', '.join(sorted(kind.value for kind in missing))}"
            )

        pools = {kind: ThreadPoolExecutor(max_workers=limit, thread_name_prefix=kind.value) for kind, limit in self._limits.items()}
        running: dict[Future, WorkNode] = {}
        active = {kind: 0 for kind in self._limits}
        first_failure: BaseException | None = None

        try:
            while True:
                if first_failure is None:
                    for node in graph.ready_nodes():
                        if active[node.kind] >= self._limits[node.kind]:
                            continue
                        node.state = NodeState.RUNNING
                        active[node.kind] += 1
                        LOGGER.debug(f"Starting {node.kind.value} node {node.id}")
                        running[pools[node.kind].submit(handlers[node.kind], node)] = node

                if not running:
                    if first_failure is not None:
                        raise first_failure
                    stuck = graph.pending_nodes()
                    if stuck:
                        raise StackDeployToolkitError(
                            f"Unable to make progress anymore, dependency cycle between remaining nodes: "
                            f"{graph.describe(stuck)}"
                        )
                    return

                done, _ = wait(running, return_when=FIRST_COMPLETED)
                for future in done:
                    node = running.pop(future)
                    active[node.kind] -= 1
                    error = future.exception()
                    if error is None:
                        node.state = NodeState.COMPLETED
                        LOGGER.debug(f"Completed {node.kind.value} node {node.id}")
                        continue

                    node.state = NodeState.FAILED
                    if first_failure is None:
                        first_failure = error
                        LOGGER.debug(f"{node.id} failed, waiting for {len(running)} running node(s) to finish")
        finally:
            for pool in pools.values():
                pool.shutdown(wait=True)
