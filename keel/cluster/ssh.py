"""Node service control over ssh.

Runs `systemctl stop|start <service>` on a node through the local `ssh`
binary using asyncio.create_subprocess_exec, so the event loop is never
blocked while the remote command runs.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from keel.errors import ClusterApiError

if TYPE_CHECKING:
    from keel.config import NodeConfig
    from keel.drivers.base import Node

logger = structlog.get_logger()


class SshServiceController:
    """Start/stop a systemd service on cluster nodes."""

    def __init__(self, config: "NodeConfig") -> None:
        self._user = config.ssh_user
        self._key = config.ssh_key
        self._options = list(config.ssh_options)
        self._timeout = config.ssh_timeout
        self._service = config.scheduler_service
        self._log = logger.bind(component="ssh")

    def build_command(self, node: "Node", remote: str) -> list[str]:
        """Build the ssh argv for running `remote` on `node`."""
        if not node.addresses:
            raise ClusterApiError(
                f"Node {node.name} has no address to connect to",
                details={"node": node.name},
            )

        parts = ["ssh", *self._options]
        if self._key:
            parts.extend(["-i", self._key])
        parts.append(f"{self._user}@{node.addresses[0]}")
        parts.append(remote)
        return parts

    async def run(self, node: "Node", remote: str) -> str:
        """Run a command on a node and return its stdout.

        Raises:
            ClusterApiError: On non-zero exit, timeout or missing ssh binary
        """
        argv = self.build_command(node, remote)
        self._log.info("ssh.run", node=node.name, command=remote)

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise ClusterApiError("ssh not found. Is it installed?") from e

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as e:
            try:
                process.kill()
                await process.wait()
            except ProcessLookupError:
                pass
            raise ClusterApiError(
                f"Command '{remote}' on node {node.name} timed out after {self._timeout}s",
                details={"node": node.name},
            ) from e

        if process.returncode:
            raise ClusterApiError(
                f"Command '{remote}' on node {node.name} exited with "
                f"{process.returncode}: {stderr.decode('utf-8', errors='replace').strip()}",
                details={"node": node.name, "exit_code": process.returncode},
            )

        return stdout.decode("utf-8", errors="replace")

    async def stop_service(self, node: "Node") -> None:
        await self.run(node, f"sudo systemctl stop {self._service}")
        self._log.info("ssh.service.stopped", node=node.name, service=self._service)

    async def start_service(self, node: "Node") -> None:
        await self.run(node, f"sudo systemctl start {self._service}")
        self._log.info("ssh.service.started", node=node.name, service=self._service)
