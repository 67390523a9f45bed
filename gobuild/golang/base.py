"""
Base Container
==============
golang image with the module and build caches mounted.

Both caches are keyed by fixed names, so every Go version and every
session shares the same two volumes.
"""
import logging
from typing import Optional, Tuple

from gobuild.core.constants import (
    GOBUILDCACHE_NAME,
    GOBUILDCACHE_PATH,
    GOMODCACHE_NAME,
    GOMODCACHE_PATH,
    PROJ_MOUNT,
)
from gobuild.engine.container import CacheVolume, Container, Directory, from_image
from gobuild.golang.state import BuildState, resolve_project

logger = logging.getLogger(__name__)


def base_container(
    version: str,
    project: Optional[Directory] = None,
    vendor: bool = False,
) -> Tuple[Container, Optional[Directory]]:
    """
    Build the base container for ``golang:<version>``.

    With ``vendor=True`` the project's ``vendor`` tree is mounted at
    ``/src/vendor`` and ``GOFLAGS=-mod=vendor`` is set. An absent project
    falls back to the container's own ``/src``.

    Returns
    -------
    (Container, Directory | None)
        The container and the project it was built against (the fallback
        when one had to be substituted).
    """
    ctr = (
        from_image(f"golang:{version}")
        .with_mounted_cache(GOMODCACHE_PATH, CacheVolume(GOMODCACHE_NAME))
        .with_mounted_cache(GOBUILDCACHE_PATH, CacheVolume(GOBUILDCACHE_NAME))
    )
    if not vendor:
        return ctr, project

    project = resolve_project(BuildState(ctr, project), "vendored base")
    ctr = (
        ctr.with_mounted_directory(f"{PROJ_MOUNT}/vendor", project.directory("vendor"))
        .with_env_variable("GOFLAGS", "-mod=vendor")
    )
    return ctr, project
