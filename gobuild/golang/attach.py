"""
Attachment
==========
Binds a freshly provisioned dockerd service to a container.

The outcome is explicit:
    Attached  — new container with peer ``docker`` and DOCKER_HOST set.
    Degraded  — the input container, untouched, plus the resolution error.
Callers decide whether a Degraded result is fatal.
"""
import logging
from dataclasses import dataclass
from typing import Union

from gobuild.core.config import DEFAULT_DOCKER_VERSION
from gobuild.core.constants import DOCKER_SERVICE_ALIAS
from gobuild.core.errors import EndpointResolutionFailed
from gobuild.engine.container import Container
from gobuild.golang.service import docker_service

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Attached:
    container: Container
    endpoint: str

    @property
    def attached(self) -> bool:
        return True


@dataclass(frozen=True)
class Degraded:
    container: Container
    error: EndpointResolutionFailed

    @property
    def attached(self) -> bool:
        return False

    @property
    def reason(self) -> str:
        return str(self.error)


AttachResult = Union[Attached, Degraded]


def attach(engine, container: Container, docker_version: str = DEFAULT_DOCKER_VERSION) -> AttachResult:
    dockerd = docker_service(docker_version)

    try:
        docker_host = engine.endpoint(dockerd, scheme="tcp")
    except EndpointResolutionFailed as e:
        logger.debug("[ATTACH] %s", e)
        return Degraded(container, e)

    logger.info("[ATTACH] DOCKER_HOST=%s", docker_host)
    return Attached(
        container
        .with_service_binding(DOCKER_SERVICE_ALIAS, dockerd)
        .with_env_variable("DOCKER_HOST", docker_host),
        docker_host,
    )
