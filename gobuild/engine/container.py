"""
Container Descriptors
=====================
Immutable, lazy descriptions of containers, directories, files and services.

Nothing in this module talks to Docker. Every ``with_*`` call returns a new
object and leaves the original untouched, so a descriptor can be shared and
extended freely. A DockerEngine evaluates descriptors on demand.

STEP MODEL:
    A Container is a base image plus an ordered tuple of steps.
    - Filesystem steps (CopyDirectory, CopyFile, NewFile) accumulate.
    - An Exec step runs a command against a snapshot of the configuration
      at the moment it was added (env, workdir, mounts, service bindings).
    Configuration set after an Exec only affects later Execs.

IDENTITY:
    Descriptors are plain frozen dataclasses: two descriptors built the same
    way compare equal. A Service derives its hostname from a digest of its
    container, so identical service descriptors share one hostname.
"""
import hashlib
import os
import posixpath
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Sequence, Tuple, Union

from gobuild.core.config import GIT_IMAGE


class CacheSharingMode(str, Enum):
    """How concurrent users of one cache volume are treated."""

    SHARED = "shared"
    PRIVATE = "private"


@dataclass(frozen=True)
class CacheVolume:
    """A named, persistent volume. Same key → same volume."""

    key: str


@dataclass(frozen=True)
class CacheMount:
    path: str
    cache: CacheVolume
    sharing: CacheSharingMode = CacheSharingMode.SHARED


# ---------------------------------------------------------------------------
# Directories and files
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class Directory:
    """Base class of every directory reference."""

    def directory(self, path: str) -> "Directory":
        raise NotImplementedError


@dataclass(frozen=True)
class HostDirectory(Directory):
    """A directory on the host running the engine."""

    path: str

    def directory(self, path: str) -> "HostDirectory":
        return HostDirectory(os.path.join(self.path, path))


@dataclass(frozen=True)
class ContainerDirectory(Directory):
    """A directory inside the filesystem produced by a container."""

    container: "Container"
    path: str

    def directory(self, path: str) -> "ContainerDirectory":
        return ContainerDirectory(self.container, posixpath.join(self.path, path))


@dataclass(frozen=True)
class ScratchDirectory(Directory):
    """An initially empty directory assembled from individual files."""

    files: Tuple[Tuple[str, "ContainerFile"], ...] = ()

    def with_file(self, path: str, file: "ContainerFile") -> "ScratchDirectory":
        rel = posixpath.normpath(path.lstrip("/"))
        kept = tuple((p, f) for p, f in self.files if p != rel)
        return ScratchDirectory(kept + ((rel, file),))

    def directory(self, path: str) -> "ScratchDirectory":
        prefix = posixpath.normpath(path.strip("/")) + "/"
        return ScratchDirectory(
            tuple((p[len(prefix):], f) for p, f in self.files if p.startswith(prefix))
        )


@dataclass(frozen=True)
class ContainerFile:
    """A single file inside the filesystem produced by a container."""

    container: "Container"
    path: str


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class DirectoryMount:
    path: str
    source: Directory


@dataclass(frozen=True)
class ServiceBinding:
    alias: str
    service: "Service"


@dataclass(frozen=True)
class CopyDirectory:
    path: str
    source: Directory


@dataclass(frozen=True)
class CopyFile:
    path: str
    source: ContainerFile


@dataclass(frozen=True)
class NewFile:
    path: str
    contents: str = ""
    permissions: int = 0o644


@dataclass(frozen=True)
class Exec:
    args: Tuple[str, ...]
    env: Tuple[Tuple[str, str], ...] = ()
    workdir: Optional[str] = None
    cache_mounts: Tuple[CacheMount, ...] = ()
    directory_mounts: Tuple[DirectoryMount, ...] = ()
    service_bindings: Tuple[ServiceBinding, ...] = ()
    insecure_root_capabilities: bool = False


Step = Union[CopyDirectory, CopyFile, NewFile, Exec]


# ---------------------------------------------------------------------------
# Container
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class Container:
    image: Optional[str] = None
    steps: Tuple[Step, ...] = ()
    env: Tuple[Tuple[str, str], ...] = ()
    workdir: Optional[str] = None
    cache_mounts: Tuple[CacheMount, ...] = ()
    directory_mounts: Tuple[DirectoryMount, ...] = ()
    service_bindings: Tuple[ServiceBinding, ...] = ()
    exposed_ports: Tuple[int, ...] = ()

    # --- configuration ---
    def with_env_variable(self, name: str, value: str) -> "Container":
        env = tuple((k, v) for k, v in self.env if k != name)
        return replace(self, env=env + ((name, value),))

    def env_variable(self, name: str) -> Optional[str]:
        return dict(self.env).get(name)

    def with_workdir(self, path: str) -> "Container":
        return replace(self, workdir=path)

    def with_mounted_cache(
        self,
        path: str,
        cache: CacheVolume,
        sharing: CacheSharingMode = CacheSharingMode.SHARED,
    ) -> "Container":
        mounts = tuple(m for m in self.cache_mounts if m.path != path)
        return replace(self, cache_mounts=mounts + (CacheMount(path, cache, sharing),))

    def with_mounted_directory(self, path: str, source: Directory) -> "Container":
        mounts = tuple(m for m in self.directory_mounts if m.path != path)
        return replace(self, directory_mounts=mounts + (DirectoryMount(path, source),))

    def with_exposed_port(self, port: int) -> "Container":
        if port in self.exposed_ports:
            return self
        return replace(self, exposed_ports=self.exposed_ports + (port,))

    def with_service_binding(self, alias: str, service: "Service") -> "Container":
        bindings = tuple(b for b in self.service_bindings if b.alias != alias)
        return replace(self, service_bindings=bindings + (ServiceBinding(alias, service),))

    # --- filesystem ---
    def with_directory(self, path: str, source: Directory) -> "Container":
        return replace(self, steps=self.steps + (CopyDirectory(path, source),))

    def with_file(self, path: str, source: ContainerFile) -> "Container":
        return replace(self, steps=self.steps + (CopyFile(path, source),))

    def with_new_file(self, path: str, contents: str = "", permissions: int = 0o644) -> "Container":
        return replace(self, steps=self.steps + (NewFile(path, contents, permissions),))

    # --- execution ---
    def with_exec(self, args: Sequence[str], insecure_root_capabilities: bool = False) -> "Container":
        step = Exec(
            args=tuple(args),
            env=self.env,
            workdir=self.workdir,
            cache_mounts=self.cache_mounts,
            directory_mounts=self.directory_mounts,
            service_bindings=self.service_bindings,
            insecure_root_capabilities=insecure_root_capabilities,
        )
        return replace(self, steps=self.steps + (step,))

    @property
    def execs(self) -> Tuple[Exec, ...]:
        return tuple(s for s in self.steps if isinstance(s, Exec))

    @property
    def last_exec(self) -> Optional[Exec]:
        execs = self.execs
        return execs[-1] if execs else None

    # --- references ---
    def directory(self, path: str) -> ContainerDirectory:
        return ContainerDirectory(self, path)

    def file(self, path: str) -> ContainerFile:
        return ContainerFile(self, path)

    def as_service(self) -> "Service":
        return Service(self)


@dataclass(frozen=True)
class Service:
    """A container whose last Exec runs as a long-lived background process."""

    container: Container

    @property
    def hostname(self) -> str:
        digest = hashlib.sha256(repr(self.container).encode("utf-8")).hexdigest()
        return f"svc-{digest[:12]}"

    @property
    def ports(self) -> Tuple[int, ...]:
        return self.container.exposed_ports


# ---------------------------------------------------------------------------
# Constructors
# ---------------------------------------------------------------------------
def from_image(image: str) -> Container:
    return Container(image=image)


def host_directory(path: str) -> HostDirectory:
    return HostDirectory(os.path.abspath(path))


def scratch() -> ScratchDirectory:
    return ScratchDirectory()


def git_tree(url: str, branch: str, image: str = GIT_IMAGE) -> ContainerDirectory:
    """Source tree of ``branch`` cloned from ``url``."""
    ctr = from_image(image).with_exec(
        ["git", "clone", "--depth", "1", "--branch", branch, url, "/repo"]
    )
    return ctr.directory("/repo")
