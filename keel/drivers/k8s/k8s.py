"""Kubernetes scheduler driver.

Expands app specs into kubernetes_asyncio models and routes each of them
through the ResourceDispatcher:

    storage (StorageClass, PersistentVolumeClaim) -> core (Deployment)

Every operation walks the context's resources in spec order and stops at the
first failure, raising one app-scoped error chained to the cluster error.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Awaitable, Callable

import structlog
from kubernetes_asyncio.client import V1Deployment, V1PersistentVolumeClaim

from keel.cluster.k8s import K8sClusterClient
from keel.config import get_settings
from keel.drivers.base import Context, Node, NodeType, ScheduleOptions, SchedulerDriver
from keel.drivers.dispatch import ResourceDispatcher
from keel.errors import (
    AppError,
    ClusterApiError,
    FailedToDestroyAppError,
    FailedToDestroyStorageError,
    FailedToGetNodesForAppError,
    FailedToGetVolumesForAppError,
    FailedToGetVolumesParametersError,
    FailedToScheduleAppError,
    FailedToValidateAppDestroyError,
    FailedToValidateAppError,
    FailedToValidateStorageError,
    UnsupportedResourceKindError,
)

if TYPE_CHECKING:
    from kubernetes_asyncio.client import V1Node

    from keel.cluster.base import ClusterClient
    from keel.config import Settings
    from keel.drivers.registry import DriverRegistry
    from keel.specs.base import AppSpec, ResourceObject
    from keel.specs.factory import AppSpecFactory

logger = structlog.get_logger()

SCHED_NAME = "k8s"

# Node address types kept in the snapshot
NODE_ADDRESS_TYPES = ("InternalIP", "ExternalIP")

Operation = Callable[["ResourceObject", "AppSpec"], Awaitable[None]]

# Failures attributed to the app by the driver
DISPATCH_ERRORS = (UnsupportedResourceKindError, ClusterApiError)


class K8sDriver(SchedulerDriver):
    """Scheduler driver for Kubernetes clusters."""

    name = SCHED_NAME

    def __init__(
        self,
        factory: "AppSpecFactory",
        cluster: "ClusterClient | None" = None,
        settings: "Settings | None" = None,
    ) -> None:
        settings = settings or get_settings()

        self._factory = factory
        self._cluster = cluster or K8sClusterClient(settings)
        self._dispatcher = ResourceDispatcher(self._cluster)
        self._master_labels = list(settings.driver.k8s.master_labels)
        self._nodes: list[Node] = []
        self._log = logger.bind(driver=SCHED_NAME)

    @property
    def dispatcher(self) -> ResourceDispatcher:
        return self._dispatcher

    def _is_master(self, node: "V1Node") -> bool:
        labels = (node.metadata.labels if node.metadata else None) or {}
        return any(label in labels for label in self._master_labels)

    def _to_node(self, node: "V1Node") -> Node:
        # Status may be missing on nodes that have not reported yet
        raw_addresses = (node.status.addresses if node.status else None) or []
        addresses = tuple(
            addr.address for addr in raw_addresses if addr.type in NODE_ADDRESS_TYPES
        )
        node_type = NodeType.MASTER if self._is_master(node) else NodeType.WORKER
        return Node(name=node.metadata.name, addresses=addresses, type=node_type)

    async def init(self) -> None:
        """Snapshot cluster nodes.

        The snapshot is replaced only after listing succeeds.
        """
        raw_nodes = await self._cluster.list_nodes()
        self._nodes = [self._to_node(n) for n in raw_nodes]
        self._log.info(
            "k8s.init",
            nodes=len(self._nodes),
            masters=sum(1 for n in self._nodes if n.type == NodeType.MASTER),
        )

    def get_nodes(self) -> list[Node]:
        return list(self._nodes)

    def _resolve_specs(self, options: ScheduleOptions | None) -> list["AppSpec"]:
        if options is not None and options.app_keys:
            return [self._factory.get(key) for key in options.app_keys]
        return self._factory.get_all()

    def _cause(self, action: str, obj: "ResourceObject", exc: Exception) -> str:
        if isinstance(exc, UnsupportedResourceKindError):
            return exc.cause
        message = getattr(exc, "message", str(exc))
        return f"Failed to {action} {self._dispatcher.describe(obj)}. Err: {message}"

    async def _run(
        self,
        app: "AppSpec",
        objects: list["ResourceObject"],
        operation: Operation,
        error_cls: type[AppError],
        action: str,
        event: str,
    ) -> None:
        """Apply `operation` to each object in order, failing fast."""
        for obj in objects:
            try:
                await operation(obj, app)
            except DISPATCH_ERRORS as e:
                self._log.warning(f"{event}.failed", app=app.key, error=str(e))
                raise error_cls(app, self._cause(action, obj, e)) from e
            self._log.info(event, app=app.key, resource=self._dispatcher.describe(obj))

    async def schedule(
        self,
        instance_id: str,
        options: ScheduleOptions | None = None,
    ) -> list[Context]:
        specs = self._resolve_specs(options)
        contexts: list[Context] = []

        for spec in specs:
            objects = [*spec.storage(instance_id), *spec.core(instance_id)]
            try:
                await self._run(
                    spec,
                    objects,
                    self._dispatcher.materialize,
                    FailedToScheduleAppError,
                    "create",
                    "k8s.schedule.created",
                )
            except FailedToScheduleAppError as e:
                # Prior specs stay in the cluster; hand their contexts to the caller
                e.contexts = list(contexts)
                raise

            contexts.append(Context(uid=instance_id, app=spec))
            self._log.info("k8s.schedule.done", app=spec.key, instance_id=instance_id)

        return contexts

    async def wait_for_running(self, ctx: Context, *, timeout: float | None = None) -> None:
        async def validate(obj, app):
            await self._dispatcher.validate(obj, app, timeout=timeout)

        await self._run(
            ctx.app,
            ctx.app.core(ctx.uid),
            validate,
            FailedToValidateAppError,
            "validate",
            "k8s.wait_for_running.validated",
        )

    async def destroy(self, ctx: Context) -> None:
        await self._run(
            ctx.app,
            ctx.app.core(ctx.uid),
            self._dispatcher.teardown,
            FailedToDestroyAppError,
            "destroy",
            "k8s.destroy.destroyed",
        )

    async def wait_for_destroy(self, ctx: Context, *, timeout: float | None = None) -> None:
        async def validate_teardown(obj, app):
            await self._dispatcher.validate_teardown(obj, app, timeout=timeout)

        await self._run(
            ctx.app,
            ctx.app.core(ctx.uid),
            validate_teardown,
            FailedToValidateAppDestroyError,
            "validate destroy of",
            "k8s.wait_for_destroy.validated",
        )

    async def get_volumes(self, ctx: Context) -> list[str]:
        volumes: list[str] = []
        for obj in ctx.app.storage(ctx.uid):
            if not isinstance(obj, V1PersistentVolumeClaim):
                continue
            try:
                volumes.append(await self._cluster.get_volume_for_claim(obj))
            except ClusterApiError as e:
                raise FailedToGetVolumesForAppError(
                    ctx.app, self._cause("get volume for", obj, e)
                ) from e

        return volumes

    async def get_volume_parameters(self, ctx: Context) -> dict[str, dict[str, str]]:
        result: dict[str, dict[str, str]] = {}
        for obj in ctx.app.storage(ctx.uid):
            if not isinstance(obj, V1PersistentVolumeClaim):
                continue
            try:
                volume = await self._cluster.get_volume_for_claim(obj)
                params = await self._cluster.get_claim_parameters(obj)
            except ClusterApiError as e:
                raise FailedToGetVolumesParametersError(
                    ctx.app, self._cause("get parameters for", obj, e)
                ) from e
            result[volume] = params

        return result

    async def inspect_volumes(self, ctx: Context, *, timeout: float | None = None) -> None:
        async def validate(obj, app):
            await self._dispatcher.validate(obj, app, timeout=timeout)

        await self._run(
            ctx.app,
            ctx.app.storage(ctx.uid),
            validate,
            FailedToValidateStorageError,
            "validate",
            "k8s.inspect_volumes.validated",
        )

    async def delete_volumes(self, ctx: Context) -> None:
        await self._run(
            ctx.app,
            ctx.app.storage(ctx.uid),
            self._dispatcher.teardown,
            FailedToDestroyStorageError,
            "destroy",
            "k8s.delete_volumes.destroyed",
        )

    async def get_nodes_for_app(self, ctx: Context) -> list[Node]:
        """Nodes from the init() snapshot running pods of the context's deployments."""
        by_name = {n.name: n for n in self._nodes}
        result: list[Node] = []

        for obj in ctx.app.core(ctx.uid):
            if not isinstance(obj, V1Deployment):
                continue
            try:
                node_names = await self._cluster.list_pod_nodes_for_deployment(obj)
            except ClusterApiError as e:
                raise FailedToGetNodesForAppError(
                    ctx.app, self._cause("get nodes for", obj, e)
                ) from e

            for name in node_names:
                node = by_name.get(name)
                if node is None:
                    self._log.warning("k8s.get_nodes_for_app.unknown_node", node=name)
                    continue
                if node not in result:
                    result.append(node)

        return result

    async def stop_sched_on_node(self, node: Node) -> None:
        self._log.info("k8s.stop_sched_on_node", node=node.name)
        await self._cluster.stop_scheduling_service(node)

    async def start_sched_on_node(self, node: Node) -> None:
        self._log.info("k8s.start_sched_on_node", node=node.name)
        await self._cluster.start_scheduling_service(node)

    async def close(self) -> None:
        await self._cluster.close()


def register(
    registry: "DriverRegistry",
    factory: "AppSpecFactory",
    settings: "Settings | None" = None,
) -> None:
    registry.register(SCHED_NAME, K8sDriver(factory, settings=settings))
