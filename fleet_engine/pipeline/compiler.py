# fleet_engine/pipeline/compiler.py
"""Command pipeline compiler - deployment spec + files -> remote command sequence."""

import base64
import logging
import shlex
from typing import Iterable, List, Union

from fleet_engine.core.errors import ConfigurationError
from fleet_engine.deployment.spec import DeploymentSpec
from fleet_engine.pipeline.sequence import (
    CommandSequence,
    FileChannel,
    FileMaterialization,
    FileUpload,
)

logger = logging.getLogger(__name__)


# ============================================
# ENCODING
# ============================================

def encode_content(content: Union[str, bytes]) -> str:
    """Base64 so the content survives a single-quoted one-line echo."""
    if isinstance(content, str):
        content = content.encode("utf-8")
    return base64.b64encode(content).decode("ascii")


def decode_content(encoded: str) -> bytes:
    return base64.b64decode(encoded.encode("ascii"))


def echo(message: str) -> str:
    return f"echo {shlex.quote(message)}"


def write_file_command(path: str, content: Union[str, bytes]) -> str:
    return f"echo '{encode_content(content)}' | base64 -d > {path}"


# ============================================
# COMPILER
# ============================================

def compile_sequence(
    spec: DeploymentSpec,
    files: Iterable[FileMaterialization],
) -> CommandSequence:
    """
    Compile a deployment into an ordered, re-runnable command sequence.

    Directory creation precedes every write into the directory, every file
    is written before the image is pulled and the instance converged.
    Re-submitting the same sequence is safe.

    Raises:
        ConfigurationError: If the descriptor is not among the files
    """
    files = list(files)

    if not any(f.path == spec.descriptor_path for f in files):
        raise ConfigurationError(
            f"deployment descriptor {spec.descriptor_path} is not materialized"
        )

    commands: List[str] = [echo(f"Starting {spec.name}.")]

    # -------------------------
    # DIRECTORIES
    # -------------------------
    directories: List[str] = []
    for directory in list(spec.required_directories) + [f.directory for f in files]:
        if directory and directory not in directories:
            directories.append(directory)
    commands.extend(f"mkdir -p {directory}" for directory in directories)

    # -------------------------
    # FILES
    # -------------------------
    uploads: List[FileUpload] = []
    for f in files:
        if f.channel == FileChannel.COPY:
            uploads.append(FileUpload(path=f.path, content_base64=encode_content(f.content)))
            continue
        commands.append(write_file_command(f.path, f.content))

    # -------------------------
    # CONVERGE
    # -------------------------
    compose = f"docker compose -f {spec.descriptor_path}"
    commands.extend([
        echo(f"Pulling {spec.image} image."),
        f"{compose} pull",
        f"{compose} up -d {spec.instance_id}",
        echo(f"{spec.name} started."),
    ])

    logger.debug(
        f"[compiler] {spec.instance_id}: {len(commands)} command(s), {len(uploads)} upload(s)"
    )

    return CommandSequence(
        instance_id=spec.instance_id,
        commands=tuple(commands),
        uploads=tuple(uploads),
    )
