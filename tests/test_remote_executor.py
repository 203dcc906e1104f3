#tests\test_remote_executor.py

"""Test remote execution against an in-process runtime agent."""

from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from fleet_engine.core.errors import RemoteExecutionError
from fleet_engine.executor.remote_executor import RemoteExecutor
from fleet_engine.pipeline.compiler import encode_content, write_file_command
from fleet_engine.pipeline.sequence import CommandSequence, FileUpload
from runtime_agent import server as agent
from runtime_agent.client import RuntimeAgentClient


class LiveDocker:
    def ping(self):
        return True


@pytest.fixture
def remote(server, monkeypatch):
    """RemoteExecutor whose client for ``server`` talks to the agent app directly."""
    monkeypatch.setattr(agent, "docker_client", LiveDocker())
    executor = RemoteExecutor(timeout=30)
    executor._agent_clients[server.agent_url] = RuntimeAgentClient(
        server.agent_url,
        session=TestClient(agent.app),
    )
    return executor


class TestRemoteExecutor:

    def test_uploads_then_commands(self, remote, server, tmp_path):
        conf = tmp_path / "redis-cache" / "redis.conf"
        seed = tmp_path / "seed.sql"
        sequence = CommandSequence(
            instance_id="redis-cache",
            commands=(
                write_file_command(str(seed), "select 1;\n"),
                f"cat {conf} {seed}",
            ),
            uploads=(FileUpload(path=str(conf), content_base64=encode_content("maxmemory 1mb\n")),),
        )
        correlation_id = uuid4()

        message = remote.execute(sequence, server, correlation_id)

        assert message.success
        assert message.correlation_id == correlation_id
        assert message.output == "maxmemory 1mb\nselect 1;\n"

    def test_non_zero_exit(self, remote, server):
        sequence = CommandSequence(
            instance_id="pg-main",
            commands=("echo pulling", "echo 'pull access denied'; exit 2", "echo unreachable"),
        )

        with pytest.raises(RemoteExecutionError) as exc_info:
            remote.execute(sequence, server, uuid4())

        assert exc_info.value.exit_code == 2
        assert exc_info.value.output == "pulling\npull access denied\n"

    def test_rejected_upload(self, remote, server):
        sequence = CommandSequence(
            instance_id="redis-cache",
            commands=("true",),
            uploads=(FileUpload(path="relative/redis.conf", content_base64=encode_content("x")),),
        )

        with pytest.raises(RemoteExecutionError):
            remote.execute(sequence, server, uuid4())

    def test_unhealthy_agent(self, remote, server, monkeypatch):
        monkeypatch.setattr(agent, "docker_client", None)

        with pytest.raises(RemoteExecutionError):
            remote.execute(CommandSequence(instance_id="x", commands=("true",)), server, uuid4())

    def test_client_cached_per_agent(self):
        executor = RemoteExecutor()

        first = executor._get_agent_client("http://10.0.0.5:9000")

        assert executor._get_agent_client("http://10.0.0.5:9000") is first
        assert executor._get_agent_client("http://10.0.0.6:9000") is not first
