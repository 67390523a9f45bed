"""
Utils
=====
Small helpers that share nothing with the Go module:

    tar(directory)         — gzip tarball of a directory
    multisync(containers)  — evaluate N containers concurrently and wait for all
"""
import logging
from typing import Sequence

from gobuild.core.config import TAR_IMAGE
from gobuild.engine.container import Container, ContainerFile, Directory, from_image, scratch

logger = logging.getLogger(__name__)

_SYNC_FILE = "/syncfile"


class Utils:

    def __init__(self, engine) -> None:
        self.engine = engine

    def tar(self, directory: Directory) -> ContainerFile:
        """Get a tarball of a Directory."""
        return (
            from_image(TAR_IMAGE)
            .with_mounted_directory("/assets", directory)
            .with_exec(["tar", "czf", "out.tar.gz", "/assets"])
            .file("out.tar.gz")
        )

    def multisync(self, containers: Sequence[Container]) -> list[str]:
        """
        Concurrently sync multiple containers.

        Each container writes a marker file; the markers are gathered into
        one directory whose entries are read back once every container is
        done. Returns the entry names (empty for no containers).
        """
        aggregate = scratch()
        for i, ctr in enumerate(containers):
            marker = ctr.with_new_file(_SYNC_FILE).file(_SYNC_FILE)
            aggregate = aggregate.with_file(f"{_SYNC_FILE}{i}", marker)

        if not aggregate.files:
            return []

        logger.info("[SYNC] Waiting for %d containers", len(aggregate.files))
        return self.engine.entries(aggregate)
