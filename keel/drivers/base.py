"""Scheduler driver base class - backend abstraction.

A scheduler driver schedules application instances on one orchestrator
backend and drives them through their lifecycle:

    (absent) --schedule--> Scheduled --wait_for_running--> Running
    Running --destroy--> Destroying --wait_for_destroy--> Destroyed

The state is never stored; each call observes it from the cluster.

Drivers do NOT:
- Retry failed operations (retry/poll policy lives in the cluster client)
- Roll back partially scheduled batches
- Decide pass/fail of a scenario

Every operation is fail-fast: the first failing resource aborts the call
with exactly one app-scoped error (see keel.errors).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from keel.specs.base import AppSpec


class NodeType(str, Enum):
    """Node role classification."""

    MASTER = "master"
    WORKER = "worker"


@dataclass(frozen=True)
class Node:
    """Snapshot of one cluster node taken by init()."""

    name: str
    addresses: tuple[str, ...] = ()
    type: NodeType = NodeType.WORKER


@dataclass
class Context:
    """Handle to one scheduled application instance.

    The context does not own cluster resources. Dropping it without calling
    destroy/wait_for_destroy/delete_volumes leaks them. Calling any
    operation on a context whose resources were already destroyed is caller
    error; drivers do not detect it.
    """

    uid: str  # Instance ID
    app: "AppSpec"  # Template the instance was expanded from

    @property
    def key(self) -> str:
        return self.app.key


@dataclass
class ScheduleOptions:
    """Options for schedule().

    app_keys: specs to schedule, in this order. Empty = all registered specs.
    """

    app_keys: list[str] = field(default_factory=list)


class SchedulerDriver(ABC):
    """Abstract scheduler driver interface."""

    name: str = ""

    def __str__(self) -> str:
        return self.name

    @abstractmethod
    async def init(self) -> None:
        """Discover cluster nodes and keep them as an immutable snapshot."""
        ...

    @abstractmethod
    def get_nodes(self) -> list[Node]:
        """Nodes discovered by init()."""
        ...

    @abstractmethod
    async def schedule(
        self,
        instance_id: str,
        options: ScheduleOptions | None = None,
    ) -> list[Context]:
        """Create the resources of the requested app specs.

        Args:
            instance_id: Unique instance ID parametrizing every spec
            options: Which specs to schedule

        Returns:
            One Context per spec, in spec order

        Raises:
            UnknownAppKindError: If a requested key is not registered
            FailedToScheduleAppError: On the first failing resource. Its
                `contexts` holds the specs fully scheduled before it; they
                are NOT rolled back.
        """
        ...

    @abstractmethod
    async def wait_for_running(self, ctx: Context, *, timeout: float | None = None) -> None:
        """Wait until every core resource of the context is ready.

        Args:
            ctx: Context from schedule()
            timeout: Per-resource wait bound in seconds (None = backend default)
        """
        ...

    @abstractmethod
    async def destroy(self, ctx: Context) -> None:
        """Delete the core resources of the context."""
        ...

    @abstractmethod
    async def wait_for_destroy(self, ctx: Context, *, timeout: float | None = None) -> None:
        """Wait until the core resources of the context are gone."""
        ...

    @abstractmethod
    async def get_volumes(self, ctx: Context) -> list[str]:
        """Backend volume IDs of the context's volume claims, in spec order."""
        ...

    @abstractmethod
    async def get_volume_parameters(self, ctx: Context) -> dict[str, dict[str, str]]:
        """Map of volume ID -> provisioning parameters."""
        ...

    @abstractmethod
    async def inspect_volumes(self, ctx: Context, *, timeout: float | None = None) -> None:
        """Validate every storage resource of the context."""
        ...

    @abstractmethod
    async def delete_volumes(self, ctx: Context) -> None:
        """Delete every storage resource of the context."""
        ...

    # Fault injection

    @abstractmethod
    async def get_nodes_for_app(self, ctx: Context) -> list[Node]:
        """Nodes currently running workloads of the context."""
        ...

    @abstractmethod
    async def stop_sched_on_node(self, node: Node) -> None:
        """Stop the orchestrator's scheduling service on a node."""
        ...

    @abstractmethod
    async def start_sched_on_node(self, node: Node) -> None:
        """Start the orchestrator's scheduling service on a node."""
        ...

    async def close(self) -> None:
        """Release backend resources."""
        return None
