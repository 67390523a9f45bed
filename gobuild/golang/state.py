"""
Build State
===========
The (container, project) pair every operation starts from.

The project tree is optional. ``resolve_project`` is the single place that
decides what an absent project means: the ``/src`` directory of the current
container, with a warning. Nothing else substitutes defaults.
"""
import logging
from dataclasses import dataclass, replace
from typing import Optional

from gobuild.core.constants import PROJ_MOUNT
from gobuild.engine.container import Container, Directory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuildState:
    container: Container
    project: Optional[Directory] = None

    def with_container(self, container: Container) -> "BuildState":
        return replace(self, container=container)

    def with_project(self, project: Directory) -> "BuildState":
        return replace(self, project=project)


def default_project(container: Container) -> Directory:
    return container.directory(PROJ_MOUNT)


def resolve_project(state: BuildState, caller: str = "") -> Directory:
    """Return the bound project, or the container's own ``/src`` if none is bound."""
    if state.project is not None:
        return state.project
    logger.warning(
        "[STATE] No project bound%s. Defaulting to %s of the current container.",
        f" in {caller}" if caller else "", PROJ_MOUNT,
    )
    return default_project(state.container)
