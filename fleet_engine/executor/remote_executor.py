# fleet_engine/executor/remote_executor.py
"""Remote executor - runs compiled command sequences via Runtime Agent."""

import logging
from dataclasses import dataclass
from typing import Dict
from uuid import UUID

from runtime_agent.client import RuntimeAgentClient
from fleet_engine.core.errors import RemoteExecutionError
from fleet_engine.domain.models import Server
from fleet_engine.pipeline.sequence import CommandSequence

logger = logging.getLogger(__name__)


@dataclass
class CompletionMessage:
    """Outcome of one command sequence on one host."""
    correlation_id: UUID
    success: bool
    exit_code: int
    output: str


class RemoteExecutor:
    """
    Executes command sequences on managed hosts by calling their Runtime Agent.

    One sequence runs over one agent connection: health check, copy-channel
    uploads, then the commands in order.
    """

    def __init__(self, timeout: int = 600):
        self.timeout = timeout
        self._agent_clients: Dict[str, RuntimeAgentClient] = {}

    def execute(
        self,
        sequence: CommandSequence,
        server: Server,
        correlation_id: UUID,
    ) -> CompletionMessage:
        """
        Run a command sequence on a server.

        Args:
            sequence: Compiled commands plus copy-channel uploads
            server: Target host
            correlation_id: Unit id

        Returns:
            CompletionMessage for a successful run

        Raises:
            RemoteExecutionError: Agent unreachable, upload failed or a command exited non-zero
        """
        logger.info(f"[remote] [{correlation_id}] Executing {sequence.instance_id} on {server.name}")

        agent_client = self._get_agent_client(server.agent_url)

        if not agent_client.health_check():
            raise RemoteExecutionError(f"Runtime agent at {server.agent_url} is not healthy")

        for upload in sequence.uploads:
            agent_client.upload_file(upload.path, upload.content_base64)

        result = agent_client.execute(correlation_id, list(sequence.commands))

        if not result.success:
            logger.error(
                f"[remote] [{correlation_id}] ❌ Exit {result.exit_code} on {server.name}: {result.failed_command}"
            )
            raise RemoteExecutionError(
                f"Command failed with exit code {result.exit_code}: {result.failed_command}",
                exit_code=result.exit_code,
                output=result.output,
            )

        logger.info(f"[remote] [{correlation_id}] ✅ Sequence finished on {server.name}")
        return CompletionMessage(
            correlation_id=correlation_id,
            success=True,
            exit_code=result.exit_code,
            output=result.output,
        )

    def _get_agent_client(self, agent_url: str) -> RuntimeAgentClient:
        """Get or create agent client for given URL."""
        if agent_url not in self._agent_clients:
            self._agent_clients[agent_url] = RuntimeAgentClient(agent_url, timeout=self.timeout)

        return self._agent_clients[agent_url]
