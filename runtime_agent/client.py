# runtime_agent/client.py
"""Runtime Agent client for shipping files and command sequences to a host."""

import requests
from typing import Any, Dict, List, Optional
from uuid import UUID
from dataclasses import dataclass
import logging

from fleet_engine.core.errors import RemoteExecutionError

logger = logging.getLogger(__name__)


@dataclass
class ExecutionResult:
    """Result of one command sequence run on the agent."""
    exit_code: int
    output: str
    failed_command: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.exit_code == 0


class RuntimeAgentClient:
    """Client for communicating with Runtime Agent."""

    def __init__(self, agent_url: str, timeout: int = 600, session: Optional[requests.Session] = None):
        """
        Initialize client.

        Args:
            agent_url: Base URL of runtime agent (e.g., "http://10.0.1.10:9000")
            timeout: Request timeout in seconds for /execute
            session: Optional requests session (shared connection pool)
        """
        self.base_url = agent_url.rstrip('/')
        self.timeout = timeout
        self._http = session or requests.Session()

    def health_check(self) -> bool:
        """
        Check if agent is healthy.

        Returns:
            True if healthy, False otherwise
        """
        try:
            response = self._http.get(f"{self.base_url}/health", timeout=5)
            return response.status_code == 200
        except requests.exceptions.RequestException as e:
            logger.error(f"[remote] Health check of {self.base_url} failed: {e}")
            return False

    def upload_file(self, path: str, content_base64: str) -> None:
        """
        Write one file on the host through the copy channel.

        Raises:
            RemoteExecutionError: If the agent rejects or cannot be reached
        """
        try:
            response = self._http.put(
                f"{self.base_url}/files",
                json={"path": path, "content_base64": content_base64},
                timeout=30,
            )
        except requests.exceptions.RequestException as e:
            raise RemoteExecutionError(f"Upload of {path} to {self.base_url} failed: {e}") from e

        if response.status_code != 200:
            raise RemoteExecutionError(
                f"Upload of {path} rejected [{response.status_code}]: {_detail(response)}"
            )

    def execute(self, correlation_id: UUID, commands: List[str]) -> ExecutionResult:
        """
        Run commands in order on the host.

        Args:
            correlation_id: Unit id, echoed in agent logs
            commands: Shell commands

        Returns:
            ExecutionResult (a non-zero exit code is returned, not raised)

        Raises:
            RemoteExecutionError: On timeout, connection loss or agent error
        """
        payload = {
            "correlation_id": str(correlation_id),
            "commands": commands,
        }

        try:
            logger.info(f"[remote] [{correlation_id}] Executing {len(commands)} commands on {self.base_url}")
            response = self._http.post(
                f"{self.base_url}/execute",
                json=payload,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            raise RemoteExecutionError(f"Execution timeout after {self.timeout}s") from e
        except requests.exceptions.ConnectionError as e:
            raise RemoteExecutionError(f"Cannot connect to runtime agent at {self.base_url}") from e

        if response.status_code != 200:
            raise RemoteExecutionError(
                f"Execution failed [{response.status_code}]: {_detail(response)}"
            )

        data: Dict[str, Any] = response.json()
        return ExecutionResult(
            exit_code=data["exit_code"],
            output=data.get("output", ""),
            failed_command=data.get("failed_command"),
        )


def _detail(response: requests.Response) -> str:
    try:
        return response.json().get('detail', response.text)
    except ValueError:
        return response.text
