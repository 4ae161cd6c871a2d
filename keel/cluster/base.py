"""Cluster API client contract.

The client is the only component that talks to the cluster. It is
responsible for:
- Resource CRUD per kind (storage class, volume claim, deployment)
- Readiness / deletion polling, including retry and timeout policy
- Node listing and node-level scheduler service control

It does NOT decide pass/fail of a scenario and does NOT attribute errors to
applications; the scheduler driver does that.

Every failure MUST surface as `ClusterApiError`, including transport and
credential failures. Validate calls MUST return or raise within their
timeout instead of hanging.

Create calls fail when the object already exists. Implementations may offer
adopting the existing object as an explicit opt-in.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from kubernetes_asyncio.client import (
        V1Deployment,
        V1Node,
        V1PersistentVolumeClaim,
        V1StorageClass,
    )

    from keel.drivers.base import Node


class ClusterClient(ABC):
    """Abstract cluster API client."""

    # Nodes

    @abstractmethod
    async def list_nodes(self) -> list["V1Node"]:
        """List all cluster nodes."""
        ...

    @abstractmethod
    async def list_pod_nodes_for_deployment(self, obj: "V1Deployment") -> list[str]:
        """Names of the nodes running pods of a deployment."""
        ...

    @abstractmethod
    async def stop_scheduling_service(self, node: "Node") -> None:
        """Stop the orchestrator's node agent on a node.

        Idempotent: stopping an already stopped service succeeds.
        """
        ...

    @abstractmethod
    async def start_scheduling_service(self, node: "Node") -> None:
        """Start the orchestrator's node agent on a node.

        Idempotent: starting a running service succeeds.
        """
        ...

    # Storage classes

    @abstractmethod
    async def create_storage_class(self, obj: "V1StorageClass") -> None: ...

    @abstractmethod
    async def validate_storage_class(
        self, obj: "V1StorageClass", *, timeout: float | None = None
    ) -> None: ...

    @abstractmethod
    async def delete_storage_class(self, obj: "V1StorageClass") -> None: ...

    @abstractmethod
    async def validate_deleted_storage_class(
        self, obj: "V1StorageClass", *, timeout: float | None = None
    ) -> None: ...

    # Persistent volume claims

    @abstractmethod
    async def create_persistent_volume_claim(self, obj: "V1PersistentVolumeClaim") -> None: ...

    @abstractmethod
    async def validate_persistent_volume_claim(
        self, obj: "V1PersistentVolumeClaim", *, timeout: float | None = None
    ) -> None:
        """Wait until the claim is Bound."""
        ...

    @abstractmethod
    async def delete_persistent_volume_claim(self, obj: "V1PersistentVolumeClaim") -> None: ...

    @abstractmethod
    async def validate_deleted_persistent_volume_claim(
        self, obj: "V1PersistentVolumeClaim", *, timeout: float | None = None
    ) -> None: ...

    @abstractmethod
    async def get_volume_for_claim(self, obj: "V1PersistentVolumeClaim") -> str:
        """Name of the volume bound to a claim."""
        ...

    @abstractmethod
    async def get_claim_parameters(self, obj: "V1PersistentVolumeClaim") -> dict[str, str]:
        """Provisioning parameters of a claim (from its storage class)."""
        ...

    # Deployments

    @abstractmethod
    async def create_deployment(self, obj: "V1Deployment") -> None: ...

    @abstractmethod
    async def validate_deployment(
        self, obj: "V1Deployment", *, timeout: float | None = None
    ) -> None:
        """Wait until every desired replica is ready."""
        ...

    @abstractmethod
    async def delete_deployment(self, obj: "V1Deployment") -> None: ...

    @abstractmethod
    async def validate_deleted_deployment(
        self, obj: "V1Deployment", *, timeout: float | None = None
    ) -> None:
        """Wait until the deployment and its pods are gone."""
        ...

    async def close(self) -> None:
        """Release client resources."""
        return None
