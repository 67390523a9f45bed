"""
Shared helpers for the HTTP routers: engine sessions and artifact paths.
"""
import os
import uuid

from gobuild.core.config import ARTIFACT_ROOT
from gobuild.engine.docker_engine import DockerEngine


def open_engine() -> DockerEngine:
    """One engine session per request; use as a context manager."""
    return DockerEngine()


def new_run_id() -> str:
    return str(uuid.uuid4())[:12]


def artifact_dir(run_id: str) -> str:
    return os.path.abspath(os.path.join(ARTIFACT_ROOT, run_id))


def validate_source(path: str) -> str:
    path = path.strip()
    if not os.path.isdir(path):
        raise ValueError(f"source directory does not exist: {path}")
    return os.path.abspath(path)
