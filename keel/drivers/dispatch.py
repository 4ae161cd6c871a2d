"""Resource dispatcher - kind-keyed routing of resource objects.

Maps the exact Python type of a resource object to the cluster client calls
that create, validate, delete and validate deletion of that kind. A kind is
registered as one ResourceKind carrying all four handlers, so no operation
can be left unhandled for a known kind.

Objects of an unregistered type always raise UnsupportedResourceKindError;
they are never skipped. Cluster failures (ClusterApiError) propagate
unchanged, the driver attributes them to the app.

Adding a resource kind:
1. Add the CRUD/poll calls to ClusterClient and its implementations
2. Register a ResourceKind for the model type (see DEFAULT_KINDS)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from kubernetes_asyncio import client as k8s

from keel.errors import UnsupportedResourceKindError

if TYPE_CHECKING:
    from keel.cluster.base import ClusterClient
    from keel.specs.base import AppSpec, ResourceObject

Handler = Callable[["ClusterClient", Any], Awaitable[None]]
WaitHandler = Callable[["ClusterClient", Any, "float | None"], Awaitable[None]]


@dataclass(frozen=True)
class ResourceKind:
    """Handlers for one resource kind."""

    name: str
    type: type
    create: Handler
    validate: WaitHandler
    delete: Handler
    validate_deleted: WaitHandler


STORAGE_CLASS = ResourceKind(
    name="StorageClass",
    type=k8s.V1StorageClass,
    create=lambda c, obj: c.create_storage_class(obj),
    validate=lambda c, obj, timeout: c.validate_storage_class(obj, timeout=timeout),
    delete=lambda c, obj: c.delete_storage_class(obj),
    validate_deleted=lambda c, obj, timeout: c.validate_deleted_storage_class(obj, timeout=timeout),
)

PERSISTENT_VOLUME_CLAIM = ResourceKind(
    name="PersistentVolumeClaim",
    type=k8s.V1PersistentVolumeClaim,
    create=lambda c, obj: c.create_persistent_volume_claim(obj),
    validate=lambda c, obj, timeout: c.validate_persistent_volume_claim(obj, timeout=timeout),
    delete=lambda c, obj: c.delete_persistent_volume_claim(obj),
    validate_deleted=lambda c, obj, timeout: c.validate_deleted_persistent_volume_claim(
        obj, timeout=timeout
    ),
)

DEPLOYMENT = ResourceKind(
    name="Deployment",
    type=k8s.V1Deployment,
    create=lambda c, obj: c.create_deployment(obj),
    validate=lambda c, obj, timeout: c.validate_deployment(obj, timeout=timeout),
    delete=lambda c, obj: c.delete_deployment(obj),
    validate_deleted=lambda c, obj, timeout: c.validate_deleted_deployment(obj, timeout=timeout),
)

DEFAULT_KINDS = (STORAGE_CLASS, PERSISTENT_VOLUME_CLAIM, DEPLOYMENT)


class ResourceDispatcher:
    """Routes resource objects to cluster client calls by kind."""

    def __init__(
        self,
        cluster: "ClusterClient",
        kinds: tuple[ResourceKind, ...] = DEFAULT_KINDS,
    ) -> None:
        self._cluster = cluster
        self._kinds: dict[type, ResourceKind] = {}
        for kind in kinds:
            self.register_kind(kind)

    def register_kind(self, kind: ResourceKind) -> None:
        if kind.type in self._kinds:
            raise ValueError(f"Resource kind already registered: {kind.type.__name__}")
        self._kinds[kind.type] = kind

    def kind_of(self, obj: "ResourceObject") -> ResourceKind | None:
        # Exact type match: subclasses of a model are different kinds
        return self._kinds.get(type(obj))

    def describe(self, obj: "ResourceObject") -> str:
        """Short description for logs and error causes (e.g. 'Deployment echo-run-1')."""
        kind = self.kind_of(obj)
        if kind is None:
            return f"unsupported component {obj!r}"
        metadata = getattr(obj, "metadata", None)
        name = getattr(metadata, "name", None) if metadata is not None else None
        return f"{kind.name} {name}" if name else kind.name

    def _resolve(self, obj: "ResourceObject", app: "AppSpec", action: str) -> ResourceKind:
        kind = self.kind_of(obj)
        if kind is None:
            raise UnsupportedResourceKindError(
                app,
                f"Failed to {action} unsupported component: {obj!r}",
            )
        return kind

    async def materialize(self, obj: "ResourceObject", app: "AppSpec") -> None:
        """Create the resource in the cluster."""
        kind = self._resolve(obj, app, "create")
        await kind.create(self._cluster, obj)

    async def validate(
        self,
        obj: "ResourceObject",
        app: "AppSpec",
        *,
        timeout: float | None = None,
    ) -> None:
        """Wait for the resource to be ready/bound."""
        kind = self._resolve(obj, app, "validate")
        await kind.validate(self._cluster, obj, timeout)

    async def teardown(self, obj: "ResourceObject", app: "AppSpec") -> None:
        """Delete the resource."""
        kind = self._resolve(obj, app, "destroy")
        await kind.delete(self._cluster, obj)

    async def validate_teardown(
        self,
        obj: "ResourceObject",
        app: "AppSpec",
        *,
        timeout: float | None = None,
    ) -> None:
        """Wait for the resource to be fully gone."""
        kind = self._resolve(obj, app, "validate destroy of")
        await kind.validate_deleted(self._cluster, obj, timeout)
