"""
Unit Tests — Utils
==================
Tarball descriptor and multisync fan-out. Multisync runs through a real
DockerEngine wired to a mocked docker client.
"""
from unittest.mock import MagicMock

from gobuild.engine.archive import pack_file
from gobuild.engine.container import ContainerFile, NewFile, from_image, host_directory
from gobuild.engine.docker_engine import DockerEngine
from gobuild.utils.sync import Utils


def _client():
    ctr = MagicMock()
    ctr.put_archive.return_value = True
    ctr.commit.return_value.id = "sha256:marker"
    ctr.get_archive.return_value = ([pack_file("syncfile", b"")], {})

    client = MagicMock()
    client.images.get.return_value.id = "sha256:base"
    client.containers.create.return_value = ctr
    return client, ctr


# ---------------------------------------------------------------------------
# 1. tar
# ---------------------------------------------------------------------------
class TestTar:

    def test_descriptor(self, tmp_path):
        src = host_directory(str(tmp_path))
        out = Utils(MagicMock()).tar(src)

        assert isinstance(out, ContainerFile)
        assert out.path == "out.tar.gz"
        ctr = out.container
        assert ctr.image == "alpine:3.18"
        assert ctr.directory_mounts[0].path == "/assets"
        assert ctr.directory_mounts[0].source == src
        assert ctr.last_exec.args == ("tar", "czf", "out.tar.gz", "/assets")

    def test_lazy(self, tmp_path):
        engine = MagicMock()
        Utils(engine).tar(host_directory(str(tmp_path)))
        assert engine.method_calls == []


# ---------------------------------------------------------------------------
# 2. multisync
# ---------------------------------------------------------------------------
class TestMultisync:

    def test_five_containers(self):
        client, ctr = _client()
        with DockerEngine(client=client) as engine:
            entries = Utils(engine).multisync([from_image(f"alpine:{i}") for i in range(5)])

        assert entries == [f"syncfile{i}" for i in range(5)]
        assert ctr.put_archive.call_count == 5
        assert ctr.get_archive.call_count == 5
        ctr.get_archive.assert_called_with("/syncfile")

    def test_each_container_gets_marker(self):
        engine = MagicMock()
        engine.entries.return_value = ["syncfile0", "syncfile1"]
        containers = [from_image("alpine"), from_image("busybox")]

        Utils(engine).multisync(containers)

        aggregate = engine.entries.call_args.args[0]
        assert [p for p, _ in aggregate.files] == ["syncfile0", "syncfile1"]
        for (_, marker), ctr in zip(aggregate.files, containers):
            assert marker.path == "/syncfile"
            assert marker.container.image == ctr.image
            assert marker.container.steps[-1] == NewFile("/syncfile")

    def test_no_containers(self):
        engine = MagicMock()
        assert Utils(engine).multisync([]) == []
        engine.entries.assert_not_called()
