"""
Golang Module
=============
Build, test, lint and vulnerability-scan Go projects in ephemeral containers.

Every operation follows the same template:
    1. rebind the project if a new source is given
    2. assemble a fixed command prefix + caller arguments (no shell)
    3. run the preparation pipeline (project at /src, dockerd attached)
    4. execute
    5. return stdout (test / lint / vulncheck) or an artifact (build)

Configuration methods (``with_project``, ``with_container``, ``base``)
return a new Golang; an instance is never modified after construction.

Usage:
    with DockerEngine() as engine:
        go = Golang(engine).with_project(host_directory("./myproj"))
        result = go.test(timeout="30s")
        engine.export(go.build(args=["./cmd/app"]), "dist/")
"""
import logging
import posixpath
import time
from typing import Callable, Optional, Sequence, Tuple

from docker.errors import DockerException

from gobuild.core.config import (
    DEFAULT_BASE_IMAGE,
    DEFAULT_DOCKER_VERSION,
    DEFAULT_GO_VERSION,
    LINT_IMAGE,
    REQUIRE_DOCKER,
)
from gobuild.core.constants import (
    INSTALL_DIR,
    OUT_DIR,
    PROJ_MOUNT,
    REMOTE_BUILD_DIR,
    VULNCHECK_PACKAGE,
)
from gobuild.core.errors import ExecError, GoBuildError
from gobuild.engine.container import Container, Directory, Service, from_image, git_tree
from gobuild.golang.attach import AttachResult, attach
from gobuild.golang.base import base_container
from gobuild.golang.pipeline import prepare
from gobuild.golang.platform import host_goarch, host_goos
from gobuild.golang.service import docker_service
from gobuild.golang.state import BuildState, resolve_project
from gobuild.models.command_result import CommandResult, create_log_excerpt

logger = logging.getLogger(__name__)


def split_component(component: str) -> Tuple[str, str]:
    """
    Split a Go package pattern into (directory, pattern).

    "./..."        → (".", "./...")
    "./pkg/..."    → ("./pkg", "./...")
    "./cmd/app"    → ("./cmd/app", "./...")
    """
    component = component or "./..."
    if component == "..." or component.endswith("/..."):
        directory = component[: -len("...")].rstrip("/") or "."
        return directory, "./..."
    return component, "./..."


class Golang:
    """
    Go build helper bound to an engine and a BuildState.

    Parameters
    ----------
    engine : DockerEngine
        Evaluates descriptors and resolves service endpoints.
    ctr : Container | None
        Build container. Defaults to the base container for DEFAULT_GO_VERSION.
    proj : Directory | None
        Project tree. When absent, operations use ``/src`` of the container.
    docker_version : str
        Version tag of the dockerd sidecar.
    require_docker : bool
        Raise instead of continuing when the sidecar cannot be attached.
    """

    def __init__(
        self,
        engine,
        ctr: Optional[Container] = None,
        proj: Optional[Directory] = None,
        docker_version: str = DEFAULT_DOCKER_VERSION,
        require_docker: bool = REQUIRE_DOCKER,
    ) -> None:
        if ctr is None:
            ctr, _ = base_container(DEFAULT_GO_VERSION)
        self.engine = engine
        self.state = BuildState(ctr, proj)
        self.docker_version = docker_version
        self.require_docker = require_docker

    def _with_state(self, state: BuildState) -> "Golang":
        return Golang(
            self.engine,
            ctr=state.container,
            proj=state.project,
            docker_version=self.docker_version,
            require_docker=self.require_docker,
        )

    def _bind(self, source: Optional[Directory]) -> "Golang":
        return self.with_project(source) if source is not None else self

    # ------------------------------------------------------------------
    # State accessors / mutators
    # ------------------------------------------------------------------
    def container(self) -> Container:
        """The go build container."""
        return self.state.container

    def project(self) -> Directory:
        """The go project directory."""
        return resolve_project(self.state, "project()")

    def with_project(self, directory: Directory) -> "Golang":
        return self._with_state(self.state.with_project(directory))

    def with_container(self, ctr: Container) -> "Golang":
        """Bring your own container."""
        return self._with_state(self.state.with_container(ctr))

    def base(self, version: str, vendor: bool = False) -> "Golang":
        """Replace the container with a golang image plus cache volumes."""
        ctr, project = base_container(version, self.state.project, vendor)
        return self._with_state(BuildState(ctr, project))

    # ------------------------------------------------------------------
    # Docker sidecar
    # ------------------------------------------------------------------
    def service(self, docker_version: Optional[str] = None) -> Service:
        """A Service running dockerd."""
        return docker_service(docker_version or self.docker_version)

    def attach(self, container: Container) -> AttachResult:
        return attach(self.engine, container, self.docker_version)

    def prepare(self) -> Container:
        return prepare(
            self.engine,
            self.state,
            docker_version=self.docker_version,
            require_docker=self.require_docker,
        ).container

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------
    def build(
        self,
        source: Optional[Directory] = None,
        args: Sequence[str] = (),
        arch: Optional[str] = None,
        target_os: Optional[str] = None,
    ) -> Directory:
        """
        Run ``go build -o /out/ <args...>`` and return the output directory.

        The result is lazy: build failures surface when it is evaluated.
        """
        g = self._bind(source)
        command = ["go", "build", "-o", OUT_DIR, *args]
        return (
            g.prepare()
            .with_env_variable("GOARCH", arch or host_goarch())
            .with_env_variable("GOOS", target_os or host_goos())
            .with_exec(command)
            .directory(OUT_DIR)
        )

    def build_container(
        self,
        source: Optional[Directory] = None,
        args: Sequence[str] = (),
        arch: Optional[str] = None,
        target_os: Optional[str] = None,
        base: Optional[Container] = None,
    ) -> Container:
        """Build and copy the binaries into /usr/local/bin/ of ``base``."""
        artifacts = self.build(source, args, arch, target_os)
        if base is None:
            base = from_image(DEFAULT_BASE_IMAGE)
        return base.with_directory(INSTALL_DIR, artifacts)

    def build_remote(
        self,
        remote: str,
        ref: str,
        module: str,
        arch: Optional[str] = None,
        platform: Optional[str] = None,
    ) -> Directory:
        """Clone ``https://<remote>`` at branch ``ref`` and build ``module``."""
        g = self.with_project(git_tree(f"https://{remote}", ref))
        command = ["go", "build", "-o", REMOTE_BUILD_DIR, module]
        return (
            g.prepare()
            .with_env_variable("GOARCH", arch or host_goarch())
            .with_env_variable("GOOS", platform or host_goos())
            .with_exec(command)
            .directory(posixpath.join(PROJ_MOUNT, REMOTE_BUILD_DIR))
        )

    # ------------------------------------------------------------------
    # Test / lint / vulncheck
    # ------------------------------------------------------------------
    def test(
        self,
        source: Optional[Directory] = None,
        component: str = "./...",
        coverage_location: str = "./",
        timeout: str = "180s",
    ) -> CommandResult:
        g = self._bind(source)
        command = ["go", "test", component, "-coverprofile", coverage_location, "-timeout", timeout, "-v"]
        return g._capture(command, lambda: g.prepare().with_exec(command))

    def install_vulncheck(self) -> "Golang":
        """Return a Golang whose container has govulncheck installed."""
        return self.with_container(self.prepare().with_exec(["go", "install", VULNCHECK_PACKAGE]))

    def vulncheck(self, source: Optional[Directory] = None, component: str = "./...") -> CommandResult:
        g = self._bind(source)
        directory, pattern = split_component(component)
        command = ["govulncheck", "-C", directory, pattern]
        return g._capture(command, lambda: g.install_vulncheck().prepare().with_exec(command))

    def golangci_lint(
        self,
        source: Optional[Directory] = None,
        component: str = "./...",
        timeout: str = "5m",
    ) -> CommandResult:
        """Lint a mounted copy of the project. No docker sidecar is attached."""
        g = self._bind(source)
        directory, _ = split_component(component)
        workdir = posixpath.normpath(posixpath.join(PROJ_MOUNT, directory))
        command = ["golangci-lint", "run", "-v", "--timeout", timeout]

        def lint() -> Container:
            return (
                from_image(LINT_IMAGE)
                .with_mounted_directory(PROJ_MOUNT, resolve_project(g.state, "golangci_lint"))
                .with_workdir(workdir)
                .with_exec(command)
            )

        return g._capture(command, lint)

    def _capture(self, command: Sequence[str], build: Callable[[], Container]) -> CommandResult:
        """
        Evaluate the container returned by ``build`` and collect its output.

        Always returns a result; command and engine failures land in
        ``result.error``.
        """
        result = CommandResult(command=list(command))
        start = time.monotonic()

        try:
            snapshot = self.engine.evaluate(build())
            result.output = snapshot.stdout
            result.stderr = snapshot.stderr
            result.exit_code = 0
        except ExecError as e:
            result.output = e.output
            result.stderr = e.stderr
            result.exit_code = e.exit_code
            result.error = str(e)
            logger.error("[GOLANG] %s failed: %s", command[0], result.error)
        except (GoBuildError, DockerException) as e:
            result.error = f"{type(e).__name__}: {e}"
            logger.error("[GOLANG] %s could not run: %s", command[0], result.error)

        result.execution_time_seconds = round(time.monotonic() - start, 3)
        result.log_excerpt = create_log_excerpt(result.output)

        logger.info(
            "[GOLANG] %s complete | exit=%d | time=%.2fs",
            " ".join(command[:2]), result.exit_code, result.execution_time_seconds,
        )
        return result
