"""Unit tests for SshServiceController.

These tests do NOT require ssh to be installed.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

import pytest

import keel.cluster.ssh as ssh_module
from keel.cluster.ssh import SshServiceController
from keel.config import NodeConfig
from keel.drivers.base import Node
from keel.errors import ClusterApiError


@dataclass
class _FakeProcess:
    stdout_bytes: bytes
    stderr_bytes: bytes
    returncode: int = 0
    delay: float = 0

    async def communicate(self) -> tuple[bytes, bytes]:
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.stdout_bytes, self.stderr_bytes

    def kill(self) -> None:
        self.returncode = -9

    async def wait(self) -> int:
        return self.returncode


@pytest.fixture
def node() -> Node:
    return Node(name="w1", addresses=("10.0.0.5", "203.0.113.5"))


@pytest.fixture
def controller() -> SshServiceController:
    return SshServiceController(
        NodeConfig(ssh_user="ops", ssh_key="/keys/id", ssh_options=["-p", "2222"])
    )


def _capture(monkeypatch: pytest.MonkeyPatch, process: _FakeProcess) -> dict[str, object]:
    captured: dict[str, object] = {}

    async def fake_create_subprocess_exec(*args, **kwargs):
        captured["args"] = list(args)
        captured["kwargs"] = kwargs
        return process

    monkeypatch.setattr(ssh_module.asyncio, "create_subprocess_exec", fake_create_subprocess_exec)
    return captured


def test_build_command(controller: SshServiceController, node: Node):
    argv = controller.build_command(node, "uptime")

    assert argv == ["ssh", "-p", "2222", "-i", "/keys/id", "ops@10.0.0.5", "uptime"]


def test_build_command_without_key(node: Node):
    controller = SshServiceController(NodeConfig(ssh_options=[]))

    assert controller.build_command(node, "uptime") == ["ssh", "root@10.0.0.5", "uptime"]


def test_build_command_requires_address(controller: SshServiceController):
    with pytest.raises(ClusterApiError) as exc_info:
        controller.build_command(Node(name="ghost"), "uptime")

    assert exc_info.value.details == {"node": "ghost"}


async def test_run_returns_stdout(
    monkeypatch: pytest.MonkeyPatch, controller: SshServiceController, node: Node
):
    captured = _capture(monkeypatch, _FakeProcess(b"up 3 days\n", b""))

    out = await controller.run(node, "uptime")

    assert out == "up 3 days\n"
    assert captured["args"][-1] == "uptime"
    assert captured["kwargs"]["stdout"] is asyncio.subprocess.PIPE


async def test_run_nonzero_exit(
    monkeypatch: pytest.MonkeyPatch, controller: SshServiceController, node: Node
):
    _capture(monkeypatch, _FakeProcess(b"", b"Permission denied\n", returncode=255))

    with pytest.raises(ClusterApiError) as exc_info:
        await controller.run(node, "uptime")

    assert "Permission denied" in exc_info.value.message
    assert exc_info.value.details["exit_code"] == 255


async def test_run_timeout_kills_process(monkeypatch: pytest.MonkeyPatch, node: Node):
    controller = SshServiceController(NodeConfig(ssh_timeout=0.01))
    process = _FakeProcess(b"", b"", delay=5)
    _capture(monkeypatch, process)

    with pytest.raises(ClusterApiError) as exc_info:
        await controller.run(node, "uptime")

    assert "timed out" in exc_info.value.message
    assert process.returncode == -9


async def test_run_missing_ssh_binary(
    monkeypatch: pytest.MonkeyPatch, controller: SshServiceController, node: Node
):
    async def fake_create_subprocess_exec(*args, **kwargs):
        raise FileNotFoundError(args[0])

    monkeypatch.setattr(ssh_module.asyncio, "create_subprocess_exec", fake_create_subprocess_exec)

    with pytest.raises(ClusterApiError) as exc_info:
        await controller.run(node, "uptime")

    assert isinstance(exc_info.value.__cause__, FileNotFoundError)


async def test_stop_and_start_service(monkeypatch: pytest.MonkeyPatch, node: Node):
    commands: list[str] = []

    async def fake_create_subprocess_exec(*args, **kwargs):
        commands.append(args[-1])
        return _FakeProcess(b"", b"")

    monkeypatch.setattr(ssh_module.asyncio, "create_subprocess_exec", fake_create_subprocess_exec)
    controller = SshServiceController(NodeConfig(scheduler_service="k3s-agent"))

    await controller.stop_service(node)
    await controller.start_service(node)

    assert commands == ["sudo systemctl stop k3s-agent", "sudo systemctl start k3s-agent"]
