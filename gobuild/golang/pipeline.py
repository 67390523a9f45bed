"""
Preparation Pipeline
====================
Turns a BuildState into a ready-to-run container:

    1. copy the project to /src
    2. set the working directory to /src
    3. attach a fresh dockerd sidecar

Runs once per operation and is never cached, so each operation provisions
its own attachment. An attachment failure is logged and the unattached
container is used, unless ``require_docker`` is set.
"""
import logging
from dataclasses import dataclass

from gobuild.core.config import DEFAULT_DOCKER_VERSION
from gobuild.core.constants import PROJ_MOUNT
from gobuild.engine.container import Container
from gobuild.golang.attach import AttachResult, Degraded, attach
from gobuild.golang.state import BuildState, resolve_project

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Prepared:
    container: Container
    attachment: AttachResult


def prepare(
    engine,
    state: BuildState,
    docker_version: str = DEFAULT_DOCKER_VERSION,
    require_docker: bool = False,
) -> Prepared:
    project = resolve_project(state, "prepare")
    ctr = state.container.with_directory(PROJ_MOUNT, project).with_workdir(PROJ_MOUNT)

    result = attach(engine, ctr, docker_version)
    if isinstance(result, Degraded):
        if require_docker:
            raise result.error
        logger.warning("[PREPARE] Continuing without docker sidecar: %s", result.reason)

    return Prepared(result.container, result)
