"""Driver layer - scheduler backend abstraction."""

from __future__ import annotations

from typing import TYPE_CHECKING

from keel.drivers import k8s
from keel.drivers.base import Context, Node, NodeType, ScheduleOptions, SchedulerDriver
from keel.drivers.dispatch import ResourceDispatcher, ResourceKind
from keel.drivers.k8s import K8sDriver
from keel.drivers.registry import DriverRegistry

if TYPE_CHECKING:
    from keel.config import Settings
    from keel.specs.factory import AppSpecFactory


def build_driver_registry(
    factory: "AppSpecFactory",
    settings: "Settings | None" = None,
) -> DriverRegistry:
    """Create a registry holding the bundled scheduler drivers."""
    registry = DriverRegistry()
    k8s.register(registry, factory, settings)
    return registry


__all__ = [
    "Context",
    "DriverRegistry",
    "K8sDriver",
    "Node",
    "NodeType",
    "ResourceDispatcher",
    "ResourceKind",
    "ScheduleOptions",
    "SchedulerDriver",
    "build_driver_registry",
]
