"""Keel - scheduler driver core for application resilience testing.

Schedules application instances on a cluster through pluggable scheduler
drivers and injects node-level faults while they run.
"""

from importlib.metadata import PackageNotFoundError, version as _pkg_version

from keel.drivers import (
    Context,
    DriverRegistry,
    Node,
    NodeType,
    ScheduleOptions,
    SchedulerDriver,
    build_driver_registry,
)
from keel.errors import (
    AppError,
    ClusterApiError,
    DuplicateAppKeyError,
    FailedToDestroyAppError,
    FailedToDestroyStorageError,
    FailedToGetNodesForAppError,
    FailedToGetVolumesForAppError,
    FailedToGetVolumesParametersError,
    FailedToScheduleAppError,
    FailedToValidateAppDestroyError,
    FailedToValidateAppError,
    FailedToValidateStorageError,
    KeelError,
    UnknownAppKindError,
    UnknownDriverError,
    UnsupportedResourceKindError,
)
from keel.specs import AppSpec, AppSpecFactory, build_spec_factory

__all__ = [
    # Drivers
    "Context",
    "DriverRegistry",
    "Node",
    "NodeType",
    "ScheduleOptions",
    "SchedulerDriver",
    "build_driver_registry",
    # Specs
    "AppSpec",
    "AppSpecFactory",
    "build_spec_factory",
    # Errors
    "KeelError",
    "AppError",
    "ClusterApiError",
    "DuplicateAppKeyError",
    "UnknownAppKindError",
    "UnknownDriverError",
    "UnsupportedResourceKindError",
    "FailedToScheduleAppError",
    "FailedToValidateAppError",
    "FailedToDestroyAppError",
    "FailedToValidateAppDestroyError",
    "FailedToGetVolumesForAppError",
    "FailedToGetVolumesParametersError",
    "FailedToValidateStorageError",
    "FailedToDestroyStorageError",
    "FailedToGetNodesForAppError",
]

try:
    __version__ = _pkg_version("keel-harness")
except PackageNotFoundError:
    __version__ = "unknown"
