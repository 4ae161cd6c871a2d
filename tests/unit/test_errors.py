"""Unit tests for Keel error types."""

from __future__ import annotations

import pytest

from keel.drivers.base import Context
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
from tests.fakes import StaticSpec


def test_default_message():
    err = ClusterApiError()

    assert err.message == "Cluster API call failed"
    assert str(err) == "Cluster API call failed"


def test_to_dict():
    err = ClusterApiError("boom", details={"status": 500})

    assert err.to_dict() == {
        "error": {
            "code": "cluster_api_error",
            "message": "boom",
            "details": {"status": 500},
        }
    }


def test_lookup_errors_carry_name():
    assert UnknownDriverError("swarm").details == {"driver": "swarm"}
    assert UnknownAppKindError("redis").key == "redis"
    assert "redis" in str(DuplicateAppKeyError("redis"))


def test_app_error_message_names_app():
    app = StaticSpec("postgres")

    err = FailedToValidateAppError(app, "Deployment postgres-1 not ready")

    assert err.app is app
    assert err.cause == "Deployment postgres-1 not ready"
    assert err.message == "Failed to validate app postgres: Deployment postgres-1 not ready"
    assert err.details == {"app": "postgres", "cause": "Deployment postgres-1 not ready"}


@pytest.mark.parametrize(
    "error_cls, code",
    [
        (UnsupportedResourceKindError, "unsupported_resource_kind"),
        (FailedToScheduleAppError, "failed_to_schedule_app"),
        (FailedToValidateAppError, "failed_to_validate_app"),
        (FailedToDestroyAppError, "failed_to_destroy_app"),
        (FailedToValidateAppDestroyError, "failed_to_validate_app_destroy"),
        (FailedToGetVolumesForAppError, "failed_to_get_volumes"),
        (FailedToGetVolumesParametersError, "failed_to_get_volume_parameters"),
        (FailedToValidateStorageError, "failed_to_validate_storage"),
        (FailedToDestroyStorageError, "failed_to_destroy_storage"),
        (FailedToGetNodesForAppError, "failed_to_get_nodes"),
    ],
)
def test_app_error_codes(error_cls, code):
    err = error_cls(StaticSpec("demo"), "cause")

    assert isinstance(err, AppError)
    assert isinstance(err, KeelError)
    assert err.to_dict()["error"]["code"] == code


def test_schedule_error_keeps_partial_contexts():
    first = StaticSpec("first")
    contexts = [Context(uid="run-1", app=first)]

    err = FailedToScheduleAppError(StaticSpec("second"), "cause", contexts=contexts)

    assert err.contexts == contexts
    assert err.contexts is not contexts
    assert FailedToScheduleAppError(first, "cause").contexts == []
