"""Keel error types.

Error codes are stable strings for programmatic handling by scenario
runners and reports.

App-scoped errors carry the owning AppSpec and a human-readable cause.
Driver operations raise them `from` the underlying failure, so the original
cluster error stays reachable via `__cause__`.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from keel.drivers.base import Context
    from keel.specs.base import AppSpec


class KeelError(Exception):
    """Base error for all Keel exceptions."""

    code: str = "internal_error"
    message: str = "An internal error occurred"

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message or self.__class__.message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }


class UnknownDriverError(KeelError):
    """No scheduler driver registered under the requested name."""

    code = "unknown_driver"
    message = "Unknown scheduler driver"

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(
            f"Unknown scheduler driver: {name}",
            details={"driver": name},
        )


class UnknownAppKindError(KeelError):
    """No app spec registered under the requested key."""

    code = "unknown_app_kind"
    message = "Unknown app kind"

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Unknown app kind: {key}", details={"app": key})


class DuplicateAppKeyError(KeelError):
    """An app spec with the same key is already registered."""

    code = "duplicate_app_key"
    message = "App spec already registered"

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"App spec already registered: {key}", details={"app": key})


class ClusterApiError(KeelError):
    """Cluster API call failed, timed out or was rejected."""

    code = "cluster_api_error"
    message = "Cluster API call failed"


class AppError(KeelError):
    """Error attributed to one application spec."""

    code = "app_error"
    message = "Application error"

    def __init__(self, app: "AppSpec", cause: str) -> None:
        self.app = app
        self.cause = cause
        super().__init__(
            f"{self.__class__.message} {app.key}: {cause}",
            details={"app": app.key, "cause": cause},
        )


class UnsupportedResourceKindError(AppError):
    code = "unsupported_resource_kind"
    message = "Unsupported resource kind in app"


class FailedToScheduleAppError(AppError):
    """Scheduling stopped at the first failing resource.

    Resources of specs scheduled earlier in the same batch are left in the
    cluster. Their contexts are exposed on `contexts` so the caller can tear
    them down.
    """

    code = "failed_to_schedule_app"
    message = "Failed to schedule app"

    def __init__(
        self,
        app: "AppSpec",
        cause: str,
        contexts: list["Context"] | None = None,
    ) -> None:
        super().__init__(app, cause)
        self.contexts = list(contexts or [])


class FailedToValidateAppError(AppError):
    code = "failed_to_validate_app"
    message = "Failed to validate app"


class FailedToDestroyAppError(AppError):
    code = "failed_to_destroy_app"
    message = "Failed to destroy app"


class FailedToValidateAppDestroyError(AppError):
    code = "failed_to_validate_app_destroy"
    message = "Failed to validate destroy of app"


class FailedToGetVolumesForAppError(AppError):
    code = "failed_to_get_volumes"
    message = "Failed to get volumes for app"


class FailedToGetVolumesParametersError(AppError):
    code = "failed_to_get_volume_parameters"
    message = "Failed to get volume parameters for app"


class FailedToValidateStorageError(AppError):
    code = "failed_to_validate_storage"
    message = "Failed to validate storage of app"


class FailedToDestroyStorageError(AppError):
    code = "failed_to_destroy_storage"
    message = "Failed to destroy storage of app"


class FailedToGetNodesForAppError(AppError):
    code = "failed_to_get_nodes"
    message = "Failed to get nodes for app"
