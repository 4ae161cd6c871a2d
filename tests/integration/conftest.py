"""E2E integration tests configuration for Keel.

Prerequisites:
- A reachable Kubernetes cluster (kubeconfig via KEEL_DRIVER__K8S__KUBECONFIG
  or in-cluster credentials)
- ssh access to the worker nodes (KEEL_NODE__SSH_USER, KEEL_NODE__SSH_KEY)
- KEEL_E2E=1

    KEEL_E2E=1 pytest tests/integration -m e2e
"""

from __future__ import annotations

import os
from typing import AsyncGenerator

import pytest

from keel.config import get_settings
from keel.harness import Instance, init_instance

E2E_ENABLED = os.environ.get("KEEL_E2E") == "1"

e2e_skipif_marks = [
    pytest.mark.skipif(not E2E_ENABLED, reason="KEEL_E2E=1 not set"),
    pytest.mark.e2e,
]


@pytest.fixture
async def instance() -> AsyncGenerator[Instance, None]:
    get_settings.cache_clear()
    inst = await init_instance()
    try:
        yield inst
    finally:
        await inst.close()
