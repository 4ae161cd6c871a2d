"""Keel configuration management.

Configuration sources (in priority order):
1. Environment variables (KEEL_ prefix, `__` for nesting)
2. Config file (keel.yaml)
3. Defaults
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)


class K8sConfig(BaseModel):
    """Kubernetes backend configuration."""

    namespace: str = "default"
    kubeconfig: str | None = None  # None = in-cluster config

    # Default upper bound for a single validate / validate-deleted poll loop
    validate_timeout: float = 300.0

    # Delay between two polls of the same resource
    retry_interval: float = 5.0

    # Treat "already exists" on create as success, keeping the existing object
    adopt_existing: bool = False

    # A node carrying any of these labels is classified as master
    master_labels: list[str] = Field(
        default_factory=lambda: [
            "node-role.kubernetes.io/master",
            "node-role.kubernetes.io/control-plane",
        ]
    )


class DriverConfig(BaseModel):
    """Scheduler driver selection."""

    name: str = "k8s"
    k8s: K8sConfig = Field(default_factory=K8sConfig)


class NodeConfig(BaseModel):
    """Node-level access used for scheduler service fault injection."""

    ssh_user: str = "root"
    ssh_key: str | None = None
    ssh_options: list[str] = Field(
        default_factory=lambda: [
            "-o", "StrictHostKeyChecking=no",
            "-o", "UserKnownHostsFile=/dev/null",
            "-o", "BatchMode=yes",
        ]
    )
    ssh_timeout: float = 60.0

    # systemd unit of the orchestrator's node agent
    scheduler_service: str = "kubelet"


class ScenarioConfig(BaseModel):
    """Defaults for the bundled resilience scenarios."""

    # Empty = every registered app spec
    app_keys: list[str] = Field(default_factory=list)

    # Number of instances of each app scheduled per scenario
    scale_factor: int = 1

    # Seconds to wait after stopping the scheduler service before re-validating
    reschedule_wait: float = 360.0


class Settings(BaseSettings):
    """Keel settings."""

    model_config = SettingsConfigDict(
        env_prefix="KEEL_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    driver: DriverConfig = Field(default_factory=DriverConfig)
    node: NodeConfig = Field(default_factory=NodeConfig)
    scenario: ScenarioConfig = Field(default_factory=ScenarioConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Environment wins over values loaded from the YAML file
        return env_settings, init_settings, dotenv_settings, file_secret_settings


def _load_config_file() -> dict:
    """Load configuration from YAML file if exists.

    Looks for config file in order:
    1. KEEL_CONFIG_FILE environment variable
    2. ./keel.yaml
    3. /etc/keel/keel.yaml
    """
    config_paths = [
        os.environ.get("KEEL_CONFIG_FILE"),
        Path("keel.yaml"),
        Path("/etc/keel/keel.yaml"),
    ]

    for path in config_paths:
        if path is None:
            continue
        path = Path(path)
        if path.exists():
            with open(path) as f:
                return yaml.safe_load(f) or {}

    return {}


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Environment variables override values from the YAML file.
    """
    file_config = _load_config_file()
    return Settings(**file_config)
