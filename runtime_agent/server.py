# runtime_agent/server.py
"""
Runtime Agent - Runs on managed hosts.
Receives files and command sequences from the executors and runs them
next to the local Docker daemon.
"""

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field
from typing import List, Optional
from pathlib import Path
import base64
import binascii
import subprocess
import docker
import logging

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Runtime Agent",
    description="Host agent for the fleet engine",
    version="1.0.0"
)

# Docker client (connects to local Docker daemon)
try:
    docker_client = docker.from_env()
    logger.info("[agent] ✅ Connected to Docker daemon")
except docker.errors.DockerException as e:
    logger.error(f"[agent] ❌ Failed to connect to Docker: {e}")
    docker_client = None


# ============================================
# REQUEST/RESPONSE MODELS
# ============================================

class FileUploadRequest(BaseModel):
    """File shipped through the copy channel."""
    path: str = Field(..., description="Absolute path on the host")
    content_base64: str = Field(..., description="File content, base64 encoded")


class ExecuteRequest(BaseModel):
    """Ordered commands to run with bash."""
    correlation_id: str
    commands: List[str] = Field(default_factory=list)
    timeout_seconds: Optional[int] = Field(default=None, description="Per-command timeout")


class ExecuteResponse(BaseModel):
    correlation_id: str
    exit_code: int
    output: str
    failed_command: Optional[str] = None


# ============================================
# ENDPOINTS
# ============================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    if docker_client is None:
        raise HTTPException(status_code=503, detail="Docker not available")

    try:
        docker_client.ping()
    except docker.errors.APIError as e:
        raise HTTPException(status_code=503, detail=f"Docker not responding: {e}")

    return {
        "status": "healthy",
        "docker_connected": True
    }


@app.put("/files")
def upload_file(request: FileUploadRequest):
    """Write a file, creating its parent directories."""
    path = Path(request.path)
    if not path.is_absolute():
        raise HTTPException(status_code=400, detail=f"Path must be absolute: {request.path}")

    try:
        content = base64.b64decode(request.content_base64, validate=True)
    except binascii.Error:
        raise HTTPException(status_code=400, detail="content_base64 is not valid base64")

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
    except OSError as e:
        logger.error(f"[agent] Failed to write {path}: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    logger.info(f"[agent] Wrote {path} ({len(content)} bytes)")
    return {"status": "written", "path": str(path), "size": len(content)}


@app.post("/execute", response_model=ExecuteResponse)
def execute(request: ExecuteRequest):
    """
    Run commands in order.

    Stops at the first non-zero exit; the response carries that exit
    code, the failing command and the combined output so far.
    """
    logger.info(f"[agent] [{request.correlation_id}] Running {len(request.commands)} commands")
    output: List[str] = []

    for command in request.commands:
        try:
            completed = subprocess.run(
                ["bash", "-c", command],
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                timeout=request.timeout_seconds,
            )
        except subprocess.TimeoutExpired as e:
            output.append(_as_text(e.output))
            logger.error(f"[agent] [{request.correlation_id}] ❌ Timed out: {command}")
            return ExecuteResponse(
                correlation_id=request.correlation_id,
                exit_code=124,
                output="".join(output),
                failed_command=command,
            )

        output.append(completed.stdout)
        if completed.returncode != 0:
            logger.error(
                f"[agent] [{request.correlation_id}] ❌ Exit {completed.returncode}: {command}"
            )
            return ExecuteResponse(
                correlation_id=request.correlation_id,
                exit_code=completed.returncode,
                output="".join(output),
                failed_command=command,
            )

    logger.info(f"[agent] [{request.correlation_id}] ✅ All commands succeeded")
    return ExecuteResponse(
        correlation_id=request.correlation_id,
        exit_code=0,
        output="".join(output),
    )


def _as_text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


if __name__ == "__main__":
    import uvicorn

    logger.info("🚀 Starting Runtime Agent...")
    logger.info("📍 Listening on 0.0.0.0:9000")

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=9000,
        log_level="info"
    )
