"""
Docker Engine
=============
Evaluates container descriptors (see container.py) against a Docker daemon
through the docker SDK.

EVALUATION STRATEGY:
    - One ephemeral container per Exec step. A successful step is committed
      to an image that becomes the base of the next step.
    - Filesystem steps are written with put_archive into the container of
      the next Exec, or into a throwaway container that is committed when
      no Exec follows.
    - Cache volumes are Docker named volumes keyed by the cache key, so the
      daemon de-duplicates them across sessions.
    - Mounted directories are bind-mounted read-only. Directories produced
      by containers are exported to a session temp dir first.
    - Exec steps skip the image entrypoint.

SERVICES:
    - Started detached on a per-session bridge network with a DNS alias
      equal to Service.hostname.
    - Peers are bound per container through extra_hosts (alias → service IP).
    - Identical service descriptors share one running instance per session.

LIFECYCLE:
    with DockerEngine() as engine:
        ...
    close() removes services, the session network, intermediate images
    and temp dirs. Images tagged with publish_local() are kept.
"""
import logging
import os
import shutil
import tempfile
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from typing import Optional, Sequence

import docker
from docker.errors import APIError, DockerException, ImageNotFound, NotFound

from gobuild.core.config import MAX_WORKERS, NETWORK_PREFIX, SERVICE_START_TIMEOUT
from gobuild.core.errors import EndpointResolutionFailed, EngineError, ExecError, GoBuildError
from gobuild.engine.archive import (
    is_masked,
    pack_directory,
    pack_file,
    read_single_file,
    unpack_stream,
)
from gobuild.engine.container import (
    CacheMount,
    CacheSharingMode,
    Container,
    ContainerDirectory,
    ContainerFile,
    CopyDirectory,
    CopyFile,
    Directory,
    DirectoryMount,
    Exec,
    HostDirectory,
    NewFile,
    ScratchDirectory,
    Service,
)

logger = logging.getLogger(__name__)

_POLL_INTERVAL = 0.5
_NOOP_COMMAND = ["true"]


@dataclass
class Snapshot:
    """Result of evaluating a container: its final image and last exec output."""

    image: str
    stdout: str = ""
    stderr: str = ""


class DockerEngine:
    """
    Evaluates descriptors with the docker SDK.

    Parameters
    ----------
    client : docker.DockerClient | None
        Client to use. Defaults to ``docker.from_env()`` on first use.
    max_workers : int
        Thread pool size for fan-out evaluation of scratch directories.
    service_start_timeout : float
        Seconds a service may take to reach the "running" state.
    network_prefix : str
        Prefix of the per-session bridge network name.
    """

    def __init__(
        self,
        client: Optional[docker.DockerClient] = None,
        max_workers: int = MAX_WORKERS,
        service_start_timeout: float = SERVICE_START_TIMEOUT,
        network_prefix: str = NETWORK_PREFIX,
    ) -> None:
        self._client = client
        self._max_workers = max_workers
        self._service_start_timeout = service_start_timeout
        self.session_id = uuid.uuid4().hex[:12]
        self.network_name = f"{network_prefix}-{self.session_id}"

        self._network = None
        self._services: dict = {}
        self._private_volumes: dict[str, str] = {}
        self._images: list[str] = []
        self._published: set[str] = set()
        self._tmpdirs: list[str] = []
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            try:
                self._client = docker.from_env()
            except DockerException as e:
                raise EngineError(f"Docker is not available: {e}") from e
        return self._client

    def __enter__(self) -> "DockerEngine":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        """Tear down everything this session created."""
        with self._lock:
            services = list(self._services.items())
            self._services.clear()
            self._private_volumes.clear()

        for hostname, ctr in services:
            try:
                ctr.remove(force=True)
                logger.info("[ENGINE] Service %s stopped", hostname)
            except DockerException:
                logger.warning("Failed to remove service %s", hostname, exc_info=True)

        if self._network is not None:
            try:
                self._network.remove()
            except DockerException:
                logger.warning("Failed to remove network %s", self.network_name, exc_info=True)
            self._network = None

        for image in reversed(self._images):
            if image in self._published:
                continue
            try:
                self.client.images.remove(image, force=True)
            except DockerException as e:
                logger.debug("Intermediate image %s kept: %s", image, e)
        self._images.clear()

        for path in self._tmpdirs:
            shutil.rmtree(path, ignore_errors=True)
        self._tmpdirs.clear()

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------
    def evaluate(self, container: Container) -> Snapshot:
        """
        Run every step of ``container`` and return the final snapshot.

        Raises
        ------
        ExecError
            An Exec step exited non-zero.
        EngineError
            The daemon could not pull, create, copy or commit.
        """
        if not container.image:
            raise EngineError("container has no base image")

        snapshot = Snapshot(image=self._ensure_image(container.image))
        pending: list = []
        for step in container.steps:
            if isinstance(step, Exec):
                snapshot = self._run_exec(snapshot.image, pending, step)
                pending = []
            else:
                pending.append(step)

        if pending:
            snapshot = replace(snapshot, image=self._commit_steps(snapshot.image, pending))
        return snapshot

    def entries(self, directory: Directory) -> list[str]:
        """Top-level entry names of ``directory`` once it is fully evaluated."""
        return sorted(os.listdir(self._materialize(directory)))

    def export(self, directory: Directory, host_path: str) -> str:
        """Write the contents of ``directory`` to ``host_path`` on the host."""
        host_path = os.path.abspath(host_path)

        if isinstance(directory, HostDirectory):
            if not os.path.isdir(directory.path):
                raise EngineError(f"no such directory: {directory.path}")
            shutil.copytree(directory.path, host_path, dirs_exist_ok=True)

        elif isinstance(directory, ContainerDirectory):
            snapshot = self.evaluate(directory.container)
            ctr = self._create(
                snapshot.image,
                _NOOP_COMMAND,
                volumes=self._volumes(directory.container.cache_mounts,
                                      directory.container.directory_mounts),
            )
            try:
                chunks, _ = ctr.get_archive(directory.path)
                unpack_stream(chunks, host_path)
            except NotFound as e:
                raise EngineError(f"no such directory in container: {directory.path}") from e
            except APIError as e:
                raise EngineError(f"Docker API error: {e}") from e
            finally:
                self._remove(ctr)

        elif isinstance(directory, ScratchDirectory):
            os.makedirs(host_path, exist_ok=True)
            # Fan out: every file is evaluated concurrently; map() re-raises
            # the first failure once iterated.
            with ThreadPoolExecutor(max_workers=self._max_workers) as pool:
                blobs = list(pool.map(lambda item: self.contents(item[1]), directory.files))
            for (rel, _), data in zip(directory.files, blobs):
                target = os.path.join(host_path, rel)
                os.makedirs(os.path.dirname(target), exist_ok=True)
                with open(target, "wb") as f:
                    f.write(data)

        else:
            raise EngineError(f"unsupported directory type: {type(directory).__name__}")

        logger.info("[ENGINE] Exported directory to %s", host_path)
        return host_path

    def contents(self, file: ContainerFile) -> bytes:
        """Raw bytes of ``file``."""
        snapshot = self.evaluate(file.container)
        ctr = self._create(
            snapshot.image,
            _NOOP_COMMAND,
            volumes=self._volumes(file.container.cache_mounts, file.container.directory_mounts),
        )
        try:
            chunks, _ = ctr.get_archive(file.path)
            return read_single_file(chunks)
        except NotFound as e:
            raise EngineError(f"no such file in container: {file.path}") from e
        except APIError as e:
            raise EngineError(f"Docker API error: {e}") from e
        finally:
            self._remove(ctr)

    def export_file(self, file: ContainerFile, host_path: str) -> str:
        host_path = os.path.abspath(host_path)
        os.makedirs(os.path.dirname(host_path), exist_ok=True)
        with open(host_path, "wb") as f:
            f.write(self.contents(file))
        return host_path

    def publish_local(self, container: Container, reference: str) -> str:
        """Tag the evaluated ``container`` as a local image named ``reference``."""
        snapshot = self.evaluate(container)
        repository, _, tag = reference.rpartition(":")
        if not repository or "/" in tag:
            repository, tag = reference, "latest"
        try:
            self.client.images.get(snapshot.image).tag(repository, tag=tag)
        except (ImageNotFound, APIError) as e:
            raise EngineError(f"could not tag {reference}: {e}") from e
        self._published.add(snapshot.image)
        logger.info("[ENGINE] Published %s:%s", repository, tag)
        return f"{repository}:{tag}"

    # ------------------------------------------------------------------
    # Services
    # ------------------------------------------------------------------
    def endpoint(self, service: Service, scheme: str = "tcp", port: Optional[int] = None) -> str:
        """
        Start ``service`` (if needed) and return its address as seen from
        containers of this session, e.g. ``tcp://svc-1a2b3c4d5e6f:2375``.

        Raises
        ------
        EndpointResolutionFailed
            No port to address, or the service could not be started.
        """
        if port is None:
            if not service.ports:
                raise EndpointResolutionFailed(service.hostname, "service exposes no ports")
            port = service.ports[0]

        try:
            self.start_service(service)
        except EndpointResolutionFailed:
            raise
        except (GoBuildError, DockerException) as e:
            raise EndpointResolutionFailed(service.hostname, str(e)) from e

        address = f"{service.hostname}:{port}"
        return f"{scheme}://{address}" if scheme else address

    def start_service(self, service: Service):
        """Start ``service`` once per session and return its docker container."""
        hostname = service.hostname
        with self._lock:
            running = self._services.get(hostname)
            if running is not None:
                return running

            steps = service.container.steps
            if not steps or not isinstance(steps[-1], Exec):
                raise EndpointResolutionFailed(hostname, "service has no command")
            step = steps[-1]

            base = replace(service.container, steps=service.container.steps[:-1])
            snapshot = self.evaluate(base)

            logger.info("[ENGINE] Starting service %s (%s)", hostname, " ".join(step.args))
            ctr = self._create(
                snapshot.image,
                list(step.args),
                environment=dict(step.env),
                working_dir=step.workdir,
                volumes=self._volumes(step.cache_mounts, step.directory_mounts, owner=hostname),
                privileged=step.insecure_root_capabilities,
                extra_hosts=self._extra_hosts(step),
            )
            self._services[hostname] = ctr
            try:
                self._ensure_network().connect(ctr, aliases=[hostname])
                ctr.start()
                self._wait_running(hostname, ctr)
            except (GoBuildError, DockerException):
                self._services.pop(hostname, None)
                self._release_private_volumes(hostname)
                self._remove(ctr)
                raise
            return ctr

    def _wait_running(self, hostname: str, ctr) -> None:
        deadline = time.monotonic() + self._service_start_timeout
        while True:
            ctr.reload()
            if ctr.status == "running":
                logger.info("[ENGINE] Service %s is running", hostname)
                return
            if ctr.status in ("exited", "dead"):
                tail = ctr.logs(tail=20).decode("utf-8", errors="replace").strip()
                raise EndpointResolutionFailed(hostname, f"service exited: {tail}")
            if time.monotonic() >= deadline:
                raise EndpointResolutionFailed(
                    hostname, f"service not running after {self._service_start_timeout:.0f}s"
                )
            time.sleep(_POLL_INTERVAL)

    def _service_ip(self, service: Service) -> str:
        ctr = self.start_service(service)
        ctr.reload()
        networks = ctr.attrs.get("NetworkSettings", {}).get("Networks", {})
        ip = networks.get(self.network_name, {}).get("IPAddress")
        if not ip:
            raise EndpointResolutionFailed(service.hostname, "service has no address on session network")
        return ip

    def _ensure_network(self):
        with self._lock:
            if self._network is None:
                try:
                    self._network = self.client.networks.create(
                        self.network_name,
                        driver="bridge",
                        labels={"project": "gobuild", "session": self.session_id},
                    )
                except APIError as e:
                    raise EngineError(f"could not create network {self.network_name}: {e}") from e
                logger.info("[ENGINE] Created network %s", self.network_name)
            return self._network

    # ------------------------------------------------------------------
    # Step execution
    # ------------------------------------------------------------------
    def _run_exec(self, image: str, pending: Sequence, step: Exec) -> Snapshot:
        ctr = self._create(
            image,
            list(step.args),
            environment=dict(step.env),
            working_dir=step.workdir,
            volumes=self._volumes(step.cache_mounts, step.directory_mounts),
            privileged=step.insecure_root_capabilities,
            extra_hosts=self._extra_hosts(step),
        )
        try:
            self._write_steps(ctr, pending, masked=[m.path for m in step.directory_mounts])
            if step.service_bindings:
                self._ensure_network().connect(ctr)

            logger.info("[ENGINE] exec %s", " ".join(step.args))
            ctr.start()
            status = ctr.wait()
            exit_code = status.get("StatusCode", -1)
            stdout = ctr.logs(stdout=True, stderr=False).decode("utf-8", errors="replace")
            stderr = ctr.logs(stdout=False, stderr=True).decode("utf-8", errors="replace")

            if exit_code != 0:
                logger.error("[ENGINE] exec %s failed with exit %d", step.args[0], exit_code)
                raise ExecError(step.args, exit_code, stdout, stderr, image)

            committed = ctr.commit()
            self._images.append(committed.id)
            return Snapshot(committed.id, stdout, stderr)
        except APIError as e:
            raise EngineError(f"Docker API error: {e}") from e
        finally:
            self._remove(ctr)

    def _commit_steps(self, image: str, steps: Sequence) -> str:
        ctr = self._create(image, _NOOP_COMMAND)
        try:
            self._write_steps(ctr, steps)
            committed = ctr.commit()
            self._images.append(committed.id)
            return committed.id
        except APIError as e:
            raise EngineError(f"Docker API error: {e}") from e
        finally:
            self._remove(ctr)

    def _write_steps(self, ctr, steps: Sequence, masked: Sequence[str] = ()) -> None:
        """Write filesystem steps into ``ctr``, skipping paths under ``masked`` mounts."""
        for step in steps:
            if masked and is_masked(step.path, masked):
                logger.debug("[ENGINE] %s is shadowed by a mounted directory; skipped", step.path)
                continue
            if isinstance(step, CopyDirectory):
                data = pack_directory(self._materialize(step.source), step.path, masked)
            elif isinstance(step, CopyFile):
                data = pack_file(step.path, self.contents(step.source))
            elif isinstance(step, NewFile):
                data = pack_file(step.path, step.contents.encode("utf-8"), step.permissions)
            else:
                raise EngineError(f"unsupported step: {type(step).__name__}")
            if not ctr.put_archive("/", data):
                raise EngineError(f"could not write {step.path}")

    def _materialize(self, directory: Directory) -> str:
        """Host path holding the contents of ``directory``."""
        if isinstance(directory, HostDirectory):
            if not os.path.isdir(directory.path):
                raise EngineError(f"no such directory: {directory.path}")
            return directory.path
        return self.export(directory, self._tempdir())

    # ------------------------------------------------------------------
    # Docker helpers
    # ------------------------------------------------------------------
    def _ensure_image(self, reference: str) -> str:
        try:
            return self.client.images.get(reference).id
        except ImageNotFound:
            pass
        except APIError as e:
            raise EngineError(f"Docker API error: {e}") from e

        logger.info("[ENGINE] Pulling %s", reference)
        try:
            return self.client.images.pull(reference).id
        except (ImageNotFound, APIError) as e:
            raise EngineError(f"Docker image '{reference}' could not be pulled: {e}") from e

    def _create(
        self,
        image: str,
        command: list,
        environment: Optional[dict] = None,
        working_dir: Optional[str] = None,
        volumes: Optional[list] = None,
        privileged: bool = False,
        extra_hosts: Optional[dict] = None,
    ):
        try:
            return self.client.containers.create(
                image=image,
                command=command,
                entrypoint=[],
                environment=environment or {},
                working_dir=working_dir,
                volumes=volumes or [],
                privileged=privileged,
                extra_hosts=extra_hosts or None,
                labels={"project": "gobuild", "session": self.session_id},
            )
        except (ImageNotFound, APIError) as e:
            raise EngineError(f"could not create container from {image}: {e}") from e

    def _remove(self, ctr) -> None:
        try:
            ctr.remove(force=True)
        except DockerException:
            logger.warning("Failed to remove container", exc_info=True)

    def _volumes(self, cache_mounts: Sequence[CacheMount], directory_mounts: Sequence[DirectoryMount],
                 owner: Optional[str] = None) -> list[str]:
        volumes = [f"{self._volume_name(m, owner)}:{m.path}:rw" for m in cache_mounts]
        volumes += [f"{self._materialize(m.source)}:{m.path}:ro" for m in directory_mounts]
        return volumes

    def _volume_name(self, mount: CacheMount, owner: Optional[str]) -> str:
        key = mount.cache.key
        if mount.sharing is not CacheSharingMode.PRIVATE or owner is None:
            return key
        with self._lock:
            holder = self._private_volumes.setdefault(key, owner)
        if holder == owner:
            return key
        name = f"{key}-{owner}"
        logger.info("[ENGINE] Private cache %s held by %s; using %s", key, holder, name)
        return name

    def _release_private_volumes(self, owner: str) -> None:
        with self._lock:
            for key in [k for k, v in self._private_volumes.items() if v == owner]:
                del self._private_volumes[key]

    def _extra_hosts(self, step: Exec) -> dict:
        return {b.alias: self._service_ip(b.service) for b in step.service_bindings}

    def _tempdir(self) -> str:
        path = tempfile.mkdtemp(prefix="gobuild-")
        self._tmpdirs.append(path)
        return path
