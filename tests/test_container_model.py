"""
Unit Tests — Container Descriptors
==================================
Immutability, step snapshots, directory references and service identity.
No Docker required.
"""
import pytest

from gobuild.engine.container import (
    CacheSharingMode,
    CacheVolume,
    Container,
    ContainerDirectory,
    ContainerFile,
    CopyDirectory,
    Exec,
    HostDirectory,
    NewFile,
    ScratchDirectory,
    from_image,
    git_tree,
    host_directory,
    scratch,
)


# ---------------------------------------------------------------------------
# 1. Immutability
# ---------------------------------------------------------------------------
class TestImmutability:

    def test_with_methods_return_new_objects(self):
        base = from_image("golang:1.23.4")
        derived = base.with_env_variable("A", "1").with_workdir("/src")
        assert base.env == ()
        assert base.workdir is None
        assert derived.env_variable("A") == "1"
        assert derived.workdir == "/src"

    def test_descriptor_is_frozen(self):
        ctr = from_image("alpine")
        with pytest.raises(AttributeError):
            ctr.image = "ubuntu"

    def test_env_variable_is_replaced_not_duplicated(self):
        ctr = from_image("x").with_env_variable("GOOS", "linux").with_env_variable("GOOS", "darwin")
        assert ctr.env == (("GOOS", "darwin"),)

    def test_same_construction_is_equal(self):
        a = from_image("x").with_mounted_cache("/c", CacheVolume("k"))
        b = from_image("x").with_mounted_cache("/c", CacheVolume("k"))
        assert a == b

    def test_cache_mount_same_path_replaced(self):
        ctr = (
            from_image("x")
            .with_mounted_cache("/c", CacheVolume("one"))
            .with_mounted_cache("/c", CacheVolume("two"), sharing=CacheSharingMode.PRIVATE)
        )
        assert len(ctr.cache_mounts) == 1
        assert ctr.cache_mounts[0].cache.key == "two"
        assert ctr.cache_mounts[0].sharing is CacheSharingMode.PRIVATE

    def test_exposed_port_not_duplicated(self):
        ctr = from_image("x").with_exposed_port(2375).with_exposed_port(2375)
        assert ctr.exposed_ports == (2375,)


# ---------------------------------------------------------------------------
# 2. Steps
# ---------------------------------------------------------------------------
class TestSteps:

    def test_exec_snapshots_config(self):
        ctr = (
            from_image("x")
            .with_env_variable("GOARCH", "arm64")
            .with_workdir("/src")
            .with_exec(["go", "build"])
            .with_env_variable("GOARCH", "amd64")
        )
        step = ctr.last_exec
        assert isinstance(step, Exec)
        assert step.args == ("go", "build")
        assert dict(step.env) == {"GOARCH": "arm64"}
        assert step.workdir == "/src"
        assert ctr.env_variable("GOARCH") == "amd64"

    def test_filesystem_steps_are_ordered(self):
        src = HostDirectory("/tmp/proj")
        ctr = from_image("x").with_directory("/src", src).with_new_file("/marker").with_exec(["true"])
        assert isinstance(ctr.steps[0], CopyDirectory)
        assert isinstance(ctr.steps[1], NewFile)
        assert isinstance(ctr.steps[2], Exec)

    def test_insecure_flag_recorded(self):
        ctr = from_image("x").with_exec(["dockerd"], insecure_root_capabilities=True)
        assert ctr.last_exec.insecure_root_capabilities is True

    def test_no_exec(self):
        assert from_image("x").last_exec is None
        assert from_image("x").execs == ()


# ---------------------------------------------------------------------------
# 3. Directories and files
# ---------------------------------------------------------------------------
class TestDirectories:

    def test_host_subdirectory(self, tmp_path):
        d = host_directory(str(tmp_path)).directory("vendor")
        assert d == HostDirectory(str(tmp_path / "vendor"))

    def test_container_subdirectory(self):
        ctr = from_image("x")
        d = ctr.directory("/src").directory("vendor")
        assert d == ContainerDirectory(ctr, "/src/vendor")

    def test_container_file(self):
        ctr = from_image("x")
        assert ctr.file("/out/app") == ContainerFile(ctr, "/out/app")

    def test_scratch_with_file_normalizes_paths(self):
        f = from_image("x").file("/f")
        d = scratch().with_file("/syncfile0", f).with_file("syncfile0", f)
        assert [p for p, _ in d.files] == ["syncfile0"]

    def test_scratch_subdirectory(self):
        f = from_image("x").file("/f")
        d = scratch().with_file("/a/b", f).with_file("/c", f)
        sub = d.directory("a")
        assert isinstance(sub, ScratchDirectory)
        assert [p for p, _ in sub.files] == ["b"]

    def test_git_tree(self):
        tree = git_tree("https://github.com/org/repo", "main")
        assert isinstance(tree, ContainerDirectory)
        assert tree.path == "/repo"
        args = tree.container.last_exec.args
        assert args[:2] == ("git", "clone")
        assert "--branch" in args and "main" in args
        assert "https://github.com/org/repo" in args


# ---------------------------------------------------------------------------
# 4. Services
# ---------------------------------------------------------------------------
class TestServices:

    def test_hostname_is_stable_for_identical_descriptors(self):
        a = from_image("redis").with_exposed_port(6379).with_exec(["redis-server"]).as_service()
        b = from_image("redis").with_exposed_port(6379).with_exec(["redis-server"]).as_service()
        assert a == b
        assert a.hostname == b.hostname
        assert a.hostname.startswith("svc-")

    def test_hostname_differs_for_different_descriptors(self):
        a = from_image("redis:6").with_exec(["redis-server"]).as_service()
        b = from_image("redis:7").with_exec(["redis-server"]).as_service()
        assert a.hostname != b.hostname

    def test_ports(self):
        svc = Container(image="x").with_exposed_port(80).as_service()
        assert svc.ports == (80,)
