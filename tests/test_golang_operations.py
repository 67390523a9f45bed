"""
Unit Tests — Golang Operations
==============================
Build, build-container, remote build, test, lint and vulncheck command
assembly and result capture. The engine is a MagicMock; evaluate() returns
canned snapshots or raises ExecError.

No real Docker daemon is required to run these tests.
"""
import pytest
from unittest.mock import MagicMock, patch

from gobuild.core.errors import EndpointResolutionFailed, EngineError, ExecError
from gobuild.engine.container import (
    ContainerDirectory,
    CopyDirectory,
    HostDirectory,
    from_image,
)
from gobuild.engine.docker_engine import Snapshot
from gobuild.golang.module import Golang, split_component
from gobuild.golang.platform import host_goarch, host_goos
from gobuild.golang.service import docker_service
from gobuild.models.command_result import CommandResult, create_log_excerpt

PROJECT = HostDirectory("/work/proj")

PASSING_OUTPUT = (
    "=== RUN   TestAdd\n"
    "--- PASS: TestAdd (0.00s)\n"
    "PASS\n"
    "coverage: 100.0% of statements\n"
    "ok  \texample.com/calc\t0.004s\n"
)


def _engine(snapshot=None, error=None):
    engine = MagicMock()
    engine.endpoint.return_value = "tcp://svc-abc:2375"
    if error is not None:
        engine.evaluate.side_effect = error
    else:
        engine.evaluate.return_value = snapshot or Snapshot("sha256:done")
    return engine


def _evaluated(engine):
    """Container passed to the last engine.evaluate call."""
    return engine.evaluate.call_args.args[0]


# ---------------------------------------------------------------------------
# 1. Component splitting
# ---------------------------------------------------------------------------
class TestSplitComponent:

    def test_all_packages(self):
        assert split_component("./...") == (".", "./...")

    def test_subtree(self):
        assert split_component("./pkg/...") == ("./pkg", "./...")

    def test_single_package(self):
        assert split_component("./cmd/app") == ("./cmd/app", "./...")

    def test_empty_defaults(self):
        assert split_component("") == (".", "./...")


# ---------------------------------------------------------------------------
# 2. State
# ---------------------------------------------------------------------------
class TestGolangState:

    def test_default_container_is_base(self):
        go = Golang(_engine())
        assert go.container().image.startswith("golang:")
        assert len(go.container().cache_mounts) == 2

    def test_with_project_returns_new_instance(self):
        go = Golang(_engine())
        bound = go.with_project(PROJECT)
        assert bound is not go
        assert bound.project() == PROJECT
        assert go.state.project is None

    def test_project_defaults_to_src(self):
        go = Golang(_engine())
        assert go.project() == ContainerDirectory(go.container(), "/src")

    def test_base_replaces_container_keeps_project(self):
        go = Golang(_engine()).with_project(PROJECT).base("1.21")
        assert go.container().image == "golang:1.21"
        assert go.project() == PROJECT

    def test_with_container(self):
        ctr = from_image("custom/go:dev")
        assert Golang(_engine()).with_container(ctr).container() is ctr

    def test_service_uses_configured_version(self):
        go = Golang(_engine(), docker_version="25.0")
        assert go.service() == docker_service("25.0")
        assert go.service("26.0") == docker_service("26.0")


# ---------------------------------------------------------------------------
# 3. Build
# ---------------------------------------------------------------------------
class TestBuild:

    def test_build_cross_compiles(self):
        engine = _engine()
        out = Golang(engine, proj=PROJECT).build(args=["./cmd/app"], arch="arm64", target_os="linux")

        assert isinstance(out, ContainerDirectory)
        assert out.path == "/out/"
        step = out.container.last_exec
        assert step.args == ("go", "build", "-o", "/out/", "./cmd/app")
        env = dict(step.env)
        assert env["GOARCH"] == "arm64"
        assert env["GOOS"] == "linux"
        assert env["DOCKER_HOST"] == "tcp://svc-abc:2375"
        assert step.workdir == "/src"

    def test_build_defaults_to_host_platform(self):
        out = Golang(_engine(), proj=PROJECT).build()
        env = dict(out.container.last_exec.env)
        assert env["GOARCH"] == host_goarch()
        assert env["GOOS"] == host_goos()

    def test_build_source_rebinds_project(self):
        other = HostDirectory("/work/other")
        out = Golang(_engine(), proj=PROJECT).build(source=other)
        assert CopyDirectory("/src", other) in out.container.steps

    def test_build_is_lazy(self):
        engine = _engine()
        Golang(engine, proj=PROJECT).build()
        engine.evaluate.assert_not_called()

    def test_build_runs_without_sidecar(self):
        engine = _engine()
        engine.endpoint.side_effect = EndpointResolutionFailed("svc-abc", "no dind")
        out = Golang(engine, proj=PROJECT).build(arch="amd64", target_os="linux")
        assert "DOCKER_HOST" not in dict(out.container.last_exec.env)
        assert out.container.service_bindings == ()

    def test_build_container_installs_binaries(self):
        ctr = Golang(_engine(), proj=PROJECT).build_container(args=["./cmd/app"])
        assert ctr.image == "ubuntu:latest"
        step = ctr.steps[-1]
        assert step.path == "/usr/local/bin/"
        assert isinstance(step.source, ContainerDirectory)
        assert step.source.path == "/out/"

    def test_build_container_custom_base(self):
        base = from_image("alpine:3.20")
        ctr = Golang(_engine(), proj=PROJECT).build_container(base=base)
        assert ctr.image == "alpine:3.20"

    def test_build_remote(self):
        out = Golang(_engine()).build_remote(
            "github.com/org/tool", "main", "./cmd/tool", arch="amd64", platform="linux"
        )
        assert out.path == "/src/build/"
        step = out.container.last_exec
        assert step.args == ("go", "build", "-o", "build/", "./cmd/tool")

        copy = [s for s in out.container.steps if isinstance(s, CopyDirectory)][-1]
        clone = copy.source.container.last_exec.args
        assert "https://github.com/org/tool" in clone
        assert "main" in clone


# ---------------------------------------------------------------------------
# 4. Test
# ---------------------------------------------------------------------------
class TestGoTest:

    def test_passing_tests(self):
        engine = _engine(Snapshot("sha256:done", stdout=PASSING_OUTPUT))
        result = Golang(engine, proj=PROJECT).test(component="./...", timeout="30s")

        assert isinstance(result, CommandResult)
        assert result.ok
        assert result.error is None
        assert "PASS" in result.output
        assert result.exit_code == 0
        assert _evaluated(engine).last_exec.args == (
            "go", "test", "./...", "-coverprofile", "./", "-timeout", "30s", "-v",
        )

    def test_compile_error_is_reported(self):
        error = ExecError(
            ["go", "test", "./..."], 1,
            stdout="FAIL\texample.com/calc [build failed]\n",
            stderr="# example.com/calc\n./calc.go:5:2: undefined: foo\n",
        )
        result = Golang(_engine(error=error), proj=PROJECT).test()

        assert not result.ok
        assert result.exit_code == 1
        assert "undefined: foo" in result.output
        assert "build failed" in result.output
        assert "exited with code 1" in result.error

    def test_engine_failure_is_reported(self):
        result = Golang(_engine(error=EngineError("daemon gone")), proj=PROJECT).test()
        assert result.exit_code == -1
        assert result.error == "EngineError: daemon gone"

    def test_required_docker_missing_is_reported(self):
        engine = _engine()
        engine.endpoint.side_effect = EndpointResolutionFailed("svc-abc", "no dind")
        result = Golang(engine, proj=PROJECT, require_docker=True).test()
        assert "EndpointResolutionFailed" in result.error
        engine.evaluate.assert_not_called()

    def test_custom_component(self):
        engine = _engine()
        Golang(engine, proj=PROJECT).test(component="./pkg/...", coverage_location="cover.out")
        args = _evaluated(engine).last_exec.args
        assert args[2] == "./pkg/..."
        assert args[4] == "cover.out"


# ---------------------------------------------------------------------------
# 5. Vulncheck
# ---------------------------------------------------------------------------
class TestVulncheck:

    def test_install_chain(self):
        go = Golang(_engine(), proj=PROJECT).install_vulncheck()
        step = go.container().last_exec
        assert step.args == ("go", "install", "golang.org/x/vuln/cmd/govulncheck@latest")

    def test_vulncheck_command(self):
        engine = _engine(Snapshot("sha256:done", stdout="No vulnerabilities found.\n"))
        result = Golang(engine, proj=PROJECT).vulncheck(component="./pkg/...")

        assert result.ok
        assert result.command == ["govulncheck", "-C", "./pkg", "./..."]
        ctr = _evaluated(engine)
        assert ctr.last_exec.args == ("govulncheck", "-C", "./pkg", "./...")
        installs = [s.args for s in ctr.execs if s.args[:2] == ("go", "install")]
        assert len(installs) == 1

    def test_vulncheck_does_not_alter_instance(self):
        go = Golang(_engine(), proj=PROJECT)
        before = go.container()
        go.vulncheck()
        assert go.container() is before


# ---------------------------------------------------------------------------
# 6. Lint
# ---------------------------------------------------------------------------
class TestLint:

    def test_lint_root(self):
        engine = _engine(Snapshot("sha256:done", stdout="0 issues.\n"))
        result = Golang(engine, proj=PROJECT).golangci_lint()

        assert result.ok
        ctr = _evaluated(engine)
        assert ctr.image == "golangci/golangci-lint:latest"
        assert ctr.workdir == "/src"
        assert ctr.directory_mounts[0].source == PROJECT
        assert ctr.last_exec.args == ("golangci-lint", "run", "-v", "--timeout", "5m")
        engine.endpoint.assert_not_called()

    def test_lint_subpackage(self):
        engine = _engine()
        Golang(engine, proj=PROJECT).golangci_lint(component="./pkg/...", timeout="2m")
        ctr = _evaluated(engine)
        assert ctr.workdir == "/src/pkg"
        assert ctr.last_exec.args[-1] == "2m"

    def test_lint_findings(self):
        error = ExecError(["golangci-lint", "run"], 1, stdout="main.go:3:1: unused (unused)\n")
        result = Golang(_engine(error=error), proj=PROJECT).golangci_lint()
        assert result.exit_code == 1
        assert "unused" in result.output


# ---------------------------------------------------------------------------
# 7. Results and platform helpers
# ---------------------------------------------------------------------------
class TestCommandResult:

    def test_short_log_unchanged(self):
        log = "\n".join(f"line {i}" for i in range(10))
        assert create_log_excerpt(log) == log

    def test_long_log_truncated(self):
        log = "\n".join(f"line {i}" for i in range(100))
        excerpt = create_log_excerpt(log, head=5, tail=5)
        assert "line 0" in excerpt
        assert "line 99" in excerpt
        assert "line 50" not in excerpt
        assert "(90 lines omitted)" in excerpt

    def test_default_not_ok(self):
        assert not CommandResult().ok


class TestPlatform:

    @patch("gobuild.golang.platform.platform.machine", return_value="x86_64")
    def test_amd64(self, _):
        assert host_goarch() == "amd64"

    @patch("gobuild.golang.platform.platform.machine", return_value="aarch64")
    def test_arm64(self, _):
        assert host_goarch() == "arm64"

    def test_goos_linux(self):
        with patch("gobuild.golang.platform.sys.platform", "linux"):
            assert host_goos() == "linux"

    def test_goos_windows(self):
        with patch("gobuild.golang.platform.sys.platform", "win32"):
            assert host_goos() == "windows"
