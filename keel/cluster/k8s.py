"""Kubernetes cluster client implementation using kubernetes-asyncio.

Wraps the CoreV1/AppsV1/StorageV1 APIs behind the ClusterClient contract.
Readiness and deletion checks poll the API server every `retry_interval`
seconds until the resource reaches the expected state or the timeout
elapses. Scheduler service control is delegated to SshServiceController.

Every failure leaves this module as ClusterApiError: API errors
(ApiException) and transport errors (connection, session timeout,
kubeconfig loading) alike.
"""

from __future__ import annotations

import asyncio
import functools
from typing import TYPE_CHECKING, Awaitable, Callable

import aiohttp
import structlog
from kubernetes_asyncio import client, config
from kubernetes_asyncio.client import ApiClient, ApiException
from kubernetes_asyncio.config.config_exception import ConfigException

from keel.cluster.base import ClusterClient
from keel.cluster.ssh import SshServiceController
from keel.config import get_settings
from keel.errors import ClusterApiError

if TYPE_CHECKING:
    from kubernetes_asyncio.client import (
        V1Deployment,
        V1Node,
        V1PersistentVolumeClaim,
        V1StorageClass,
    )

    from keel.config import Settings
    from keel.drivers.base import Node

logger = structlog.get_logger()

# Probe result: (done, observed state for logs)
Probe = Callable[[], Awaitable[tuple[bool, str]]]


def _label_selector(labels: dict[str, str] | None) -> str:
    """Build label selector: key1=value1,key2=value2"""
    return ",".join(f"{k}={v}" for k, v in (labels or {}).items())


def _api_error(action: str, kind: str, name: str, e: ApiException) -> ClusterApiError:
    return ClusterApiError(
        f"Failed to {action} {kind} {name}: {e.status} {e.reason}",
        details={"kind": kind, "name": name, "status": e.status},
    )


# Failures below the HTTP API: connection, session timeout, credentials
TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, ConfigException)


def _transport_errors(action: str):
    """Re-raise transport failures of the wrapped call as ClusterApiError.

    The wrapped method's first positional argument, when it is a resource
    object, names the target in the error message.
    """

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(self, *args, **kwargs):
            try:
                return await func(self, *args, **kwargs)
            except TRANSPORT_ERRORS as e:
                metadata = getattr(args[0], "metadata", None) if args else None
                name = getattr(metadata, "name", None)
                target = f"{action} {name}" if name else action
                raise ClusterApiError(
                    f"Failed to {target}: {type(e).__name__}: {e}",
                    details={"action": action, "name": name, "error": type(e).__name__},
                ) from e

        return wrapper

    return decorator


class K8sClusterClient(ClusterClient):
    """ClusterClient talking to a Kubernetes API server."""

    def __init__(
        self,
        settings: "Settings | None" = None,
        *,
        service_controller: SshServiceController | None = None,
    ) -> None:
        settings = settings or get_settings()
        k8s_cfg = settings.driver.k8s

        self._namespace = k8s_cfg.namespace
        self._kubeconfig = k8s_cfg.kubeconfig
        self._validate_timeout = k8s_cfg.validate_timeout
        self._retry_interval = k8s_cfg.retry_interval
        self._adopt_existing = k8s_cfg.adopt_existing
        self._services = service_controller or SshServiceController(settings.node)

        self._log = logger.bind(component="cluster", backend="k8s")
        self._api_client: ApiClient | None = None
        self._config_loaded = False

    async def _ensure_config(self) -> None:
        """Load Kubernetes configuration once."""
        if self._config_loaded:
            return

        if self._kubeconfig:
            await config.load_kube_config(config_file=self._kubeconfig)
            self._log.info("cluster.config.loaded", source="kubeconfig", path=self._kubeconfig)
        else:
            config.load_incluster_config()
            self._log.info("cluster.config.loaded", source="incluster")

        self._config_loaded = True

    async def _get_api_client(self) -> ApiClient:
        """Get or create the API client."""
        await self._ensure_config()
        if self._api_client is None:
            self._api_client = ApiClient()
        return self._api_client

    async def close(self) -> None:
        """Close the API client."""
        if self._api_client is not None:
            await self._api_client.close()
            self._api_client = None

    def _ns(self, obj) -> str:
        return obj.metadata.namespace or self._namespace

    async def _wait_until(
        self,
        description: str,
        probe: Probe,
        timeout: float | None,
    ) -> None:
        """Poll `probe` until it reports done.

        Raises:
            ClusterApiError: If the timeout elapses first
        """
        timeout = self._validate_timeout if timeout is None else timeout
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        attempt = 0

        while True:
            attempt += 1
            done, state = await probe()
            if done:
                self._log.debug("cluster.wait.done", target=description, attempts=attempt)
                return

            if loop.time() + self._retry_interval > deadline:
                raise ClusterApiError(
                    f"Timed out after {timeout}s waiting for {description} (last state: {state})",
                    details={"target": description, "state": state},
                )

            self._log.debug(
                "cluster.wait.waiting",
                target=description,
                state=state,
                attempt=attempt,
            )
            await asyncio.sleep(self._retry_interval)

    # Nodes

    @_transport_errors("list nodes")
    async def list_nodes(self) -> list["V1Node"]:
        api_client = await self._get_api_client()
        v1 = client.CoreV1Api(api_client)

        try:
            nodes = await v1.list_node()
        except ApiException as e:
            raise ClusterApiError(f"Failed to list nodes: {e.status} {e.reason}") from e

        return list(nodes.items)

    @_transport_errors("list pods of Deployment")
    async def list_pod_nodes_for_deployment(self, obj: "V1Deployment") -> list[str]:
        api_client = await self._get_api_client()
        v1 = client.CoreV1Api(api_client)

        selector = _label_selector(obj.spec.selector.match_labels)
        try:
            pods = await v1.list_namespaced_pod(
                namespace=self._ns(obj),
                label_selector=selector,
            )
        except ApiException as e:
            raise _api_error("list pods of", "Deployment", obj.metadata.name, e) from e

        node_names: list[str] = []
        for pod in pods.items:
            node_name = pod.spec.node_name
            if node_name and node_name not in node_names:
                node_names.append(node_name)
        return node_names

    async def stop_scheduling_service(self, node: "Node") -> None:
        await self._services.stop_service(node)

    async def start_scheduling_service(self, node: "Node") -> None:
        await self._services.start_service(node)

    # Storage classes

    @_transport_errors("create StorageClass")
    async def create_storage_class(self, obj: "V1StorageClass") -> None:
        api_client = await self._get_api_client()
        storage = client.StorageV1Api(api_client)
        name = obj.metadata.name

        self._log.info("cluster.create", kind="StorageClass", name=name)
        try:
            await storage.create_storage_class(body=obj)
        except ApiException as e:
            if e.status == 409 and self._adopt_existing:
                self._log.warning("cluster.create.adopted", kind="StorageClass", name=name)
            else:
                raise _api_error("create", "StorageClass", name, e) from e

    @_transport_errors("validate StorageClass")
    async def validate_storage_class(
        self, obj: "V1StorageClass", *, timeout: float | None = None
    ) -> None:
        api_client = await self._get_api_client()
        storage = client.StorageV1Api(api_client)
        name = obj.metadata.name

        async def probe() -> tuple[bool, str]:
            try:
                await storage.read_storage_class(name=name)
            except ApiException as e:
                if e.status == 404:
                    return False, "not_found"
                raise _api_error("read", "StorageClass", name, e) from e
            return True, "exists"

        await self._wait_until(f"StorageClass {name}", probe, timeout)

    @_transport_errors("delete StorageClass")
    async def delete_storage_class(self, obj: "V1StorageClass") -> None:
        api_client = await self._get_api_client()
        storage = client.StorageV1Api(api_client)
        name = obj.metadata.name

        self._log.info("cluster.delete", kind="StorageClass", name=name)
        try:
            await storage.delete_storage_class(name=name)
        except ApiException as e:
            if e.status == 404:
                self._log.warning("cluster.delete.not_found", kind="StorageClass", name=name)
            else:
                raise _api_error("delete", "StorageClass", name, e) from e

    @_transport_errors("validate deletion of StorageClass")
    async def validate_deleted_storage_class(
        self, obj: "V1StorageClass", *, timeout: float | None = None
    ) -> None:
        api_client = await self._get_api_client()
        storage = client.StorageV1Api(api_client)
        name = obj.metadata.name

        async def probe() -> tuple[bool, str]:
            try:
                await storage.read_storage_class(name=name)
            except ApiException as e:
                if e.status == 404:
                    return True, "not_found"
                raise _api_error("read", "StorageClass", name, e) from e
            return False, "exists"

        await self._wait_until(f"deletion of StorageClass {name}", probe, timeout)

    # Persistent volume claims

    async def _read_claim(self, obj: "V1PersistentVolumeClaim"):
        api_client = await self._get_api_client()
        v1 = client.CoreV1Api(api_client)
        return await v1.read_namespaced_persistent_volume_claim(
            name=obj.metadata.name,
            namespace=self._ns(obj),
        )

    @_transport_errors("create PersistentVolumeClaim")
    async def create_persistent_volume_claim(self, obj: "V1PersistentVolumeClaim") -> None:
        api_client = await self._get_api_client()
        v1 = client.CoreV1Api(api_client)
        name = obj.metadata.name

        self._log.info(
            "cluster.create",
            kind="PersistentVolumeClaim",
            name=name,
            storage_class=obj.spec.storage_class_name,
        )
        try:
            await v1.create_namespaced_persistent_volume_claim(
                namespace=self._ns(obj),
                body=obj,
            )
        except ApiException as e:
            if e.status == 409 and self._adopt_existing:
                self._log.warning(
                    "cluster.create.adopted", kind="PersistentVolumeClaim", name=name
                )
            else:
                raise _api_error("create", "PersistentVolumeClaim", name, e) from e

    @_transport_errors("validate PersistentVolumeClaim")
    async def validate_persistent_volume_claim(
        self, obj: "V1PersistentVolumeClaim", *, timeout: float | None = None
    ) -> None:
        name = obj.metadata.name

        async def probe() -> tuple[bool, str]:
            try:
                pvc = await self._read_claim(obj)
            except ApiException as e:
                if e.status == 404:
                    return False, "not_found"
                raise _api_error("read", "PersistentVolumeClaim", name, e) from e
            phase = pvc.status.phase if pvc.status else None
            return phase == "Bound", str(phase)

        await self._wait_until(f"PersistentVolumeClaim {name} to be Bound", probe, timeout)

    @_transport_errors("delete PersistentVolumeClaim")
    async def delete_persistent_volume_claim(self, obj: "V1PersistentVolumeClaim") -> None:
        api_client = await self._get_api_client()
        v1 = client.CoreV1Api(api_client)
        name = obj.metadata.name

        self._log.info("cluster.delete", kind="PersistentVolumeClaim", name=name)
        try:
            await v1.delete_namespaced_persistent_volume_claim(
                name=name,
                namespace=self._ns(obj),
            )
        except ApiException as e:
            if e.status == 404:
                self._log.warning(
                    "cluster.delete.not_found", kind="PersistentVolumeClaim", name=name
                )
            else:
                raise _api_error("delete", "PersistentVolumeClaim", name, e) from e

    @_transport_errors("validate deletion of PersistentVolumeClaim")
    async def validate_deleted_persistent_volume_claim(
        self, obj: "V1PersistentVolumeClaim", *, timeout: float | None = None
    ) -> None:
        name = obj.metadata.name

        async def probe() -> tuple[bool, str]:
            try:
                pvc = await self._read_claim(obj)
            except ApiException as e:
                if e.status == 404:
                    return True, "not_found"
                raise _api_error("read", "PersistentVolumeClaim", name, e) from e
            return False, str(pvc.status.phase if pvc.status else None)

        await self._wait_until(f"deletion of PersistentVolumeClaim {name}", probe, timeout)

    @_transport_errors("get volume for PersistentVolumeClaim")
    async def get_volume_for_claim(self, obj: "V1PersistentVolumeClaim") -> str:
        name = obj.metadata.name
        try:
            pvc = await self._read_claim(obj)
        except ApiException as e:
            raise _api_error("read", "PersistentVolumeClaim", name, e) from e

        volume_name = pvc.spec.volume_name if pvc.spec else None
        if not volume_name:
            raise ClusterApiError(
                f"PersistentVolumeClaim {name} is not bound to a volume",
                details={"kind": "PersistentVolumeClaim", "name": name},
            )
        return volume_name

    @_transport_errors("get parameters of PersistentVolumeClaim")
    async def get_claim_parameters(self, obj: "V1PersistentVolumeClaim") -> dict[str, str]:
        """Storage class parameters of the claim, plus its requested size."""
        api_client = await self._get_api_client()
        storage = client.StorageV1Api(api_client)
        name = obj.metadata.name

        try:
            pvc = await self._read_claim(obj)
        except ApiException as e:
            raise _api_error("read", "PersistentVolumeClaim", name, e) from e

        params: dict[str, str] = {}
        sc_name = pvc.spec.storage_class_name if pvc.spec else None
        if sc_name:
            try:
                sc = await storage.read_storage_class(name=sc_name)
            except ApiException as e:
                raise _api_error("read", "StorageClass", sc_name, e) from e
            params.update(sc.parameters or {})

        requests = {}
        if pvc.spec and pvc.spec.resources and pvc.spec.resources.requests:
            requests = pvc.spec.resources.requests
        if "storage" in requests:
            params["size"] = str(requests["storage"])

        return params

    # Deployments

    async def _read_deployment(self, obj: "V1Deployment"):
        api_client = await self._get_api_client()
        apps = client.AppsV1Api(api_client)
        return await apps.read_namespaced_deployment(
            name=obj.metadata.name,
            namespace=self._ns(obj),
        )

    @_transport_errors("create Deployment")
    async def create_deployment(self, obj: "V1Deployment") -> None:
        api_client = await self._get_api_client()
        apps = client.AppsV1Api(api_client)
        name = obj.metadata.name

        self._log.info("cluster.create", kind="Deployment", name=name, replicas=obj.spec.replicas)
        try:
            await apps.create_namespaced_deployment(namespace=self._ns(obj), body=obj)
        except ApiException as e:
            if e.status == 409 and self._adopt_existing:
                self._log.warning("cluster.create.adopted", kind="Deployment", name=name)
            else:
                raise _api_error("create", "Deployment", name, e) from e

    @_transport_errors("validate Deployment")
    async def validate_deployment(
        self, obj: "V1Deployment", *, timeout: float | None = None
    ) -> None:
        name = obj.metadata.name

        async def probe() -> tuple[bool, str]:
            try:
                dep = await self._read_deployment(obj)
            except ApiException as e:
                if e.status == 404:
                    return False, "not_found"
                raise _api_error("read", "Deployment", name, e) from e

            desired = dep.spec.replicas if dep.spec.replicas is not None else 1
            status = dep.status
            ready = (status.ready_replicas or 0) if status else 0
            available = (status.available_replicas or 0) if status else 0
            observed = (status.observed_generation or 0) if status else 0
            generation = dep.metadata.generation or 0

            done = observed >= generation and ready >= desired and available >= desired
            return done, f"ready={ready}/{desired} available={available}"

        await self._wait_until(f"Deployment {name} to be ready", probe, timeout)

    @_transport_errors("delete Deployment")
    async def delete_deployment(self, obj: "V1Deployment") -> None:
        api_client = await self._get_api_client()
        apps = client.AppsV1Api(api_client)
        name = obj.metadata.name

        self._log.info("cluster.delete", kind="Deployment", name=name)
        try:
            await apps.delete_namespaced_deployment(
                name=name,
                namespace=self._ns(obj),
                body=client.V1DeleteOptions(propagation_policy="Foreground"),
            )
        except ApiException as e:
            if e.status == 404:
                self._log.warning("cluster.delete.not_found", kind="Deployment", name=name)
            else:
                raise _api_error("delete", "Deployment", name, e) from e

    @_transport_errors("validate deletion of Deployment")
    async def validate_deleted_deployment(
        self, obj: "V1Deployment", *, timeout: float | None = None
    ) -> None:
        api_client = await self._get_api_client()
        v1 = client.CoreV1Api(api_client)
        name = obj.metadata.name
        selector = _label_selector(obj.spec.selector.match_labels)

        async def probe() -> tuple[bool, str]:
            try:
                await self._read_deployment(obj)
                return False, "exists"
            except ApiException as e:
                if e.status != 404:
                    raise _api_error("read", "Deployment", name, e) from e

            # Deployment object is gone; pods may still be terminating
            try:
                pods = await v1.list_namespaced_pod(
                    namespace=self._ns(obj),
                    label_selector=selector,
                )
            except ApiException as e:
                raise _api_error("list pods of", "Deployment", name, e) from e

            remaining = len(pods.items)
            return remaining == 0, f"pods_remaining={remaining}"

        await self._wait_until(f"deletion of Deployment {name}", probe, timeout)
