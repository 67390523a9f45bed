"""
Archive Helpers
===============
Tar packing/unpacking used to move files in and out of containers
(``put_archive`` / ``get_archive``).
"""
import io
import os
import posixpath
import tarfile
import time
from typing import Iterable, Optional

from gobuild.core.errors import EngineError


def _arcname(path: str) -> str:
    return posixpath.normpath(path).lstrip("/")


def _root_owned(info: tarfile.TarInfo) -> tarfile.TarInfo:
    info.uid = info.gid = 0
    info.uname = info.gname = "root"
    return info


def is_masked(path: str, masked: Iterable[str]) -> bool:
    """True if ``path`` is one of ``masked`` or lies beneath one of them."""
    name = _arcname(path)
    for prefix in masked:
        prefix = _arcname(prefix)
        if name == prefix or name.startswith(prefix + "/"):
            return True
    return False


def pack_directory(host_path: str, dest: str, masked: Iterable[str] = ()) -> bytes:
    """
    Tar the contents of ``host_path`` so that extracting at ``/`` places
    them under ``dest``.

    Members landing on a ``masked`` path are left out; those paths are
    bind mounts that the daemon refuses to write through.
    """
    if not os.path.isdir(host_path):
        raise EngineError(f"no such directory: {host_path}")

    masked = list(masked)

    def _filter(info: tarfile.TarInfo) -> Optional[tarfile.TarInfo]:
        if masked and is_masked(info.name, masked):
            return None
        return _root_owned(info)

    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w") as tar:
        tar.add(host_path, arcname=_arcname(dest), filter=_filter)
    return buf.getvalue()


def pack_file(dest: str, contents: bytes, mode: int = 0o644) -> bytes:
    """Tar a single file so that extracting at ``/`` writes it to ``dest``."""
    info = tarfile.TarInfo(name=_arcname(dest))
    info.size = len(contents)
    info.mode = mode
    info.mtime = int(time.time())
    _root_owned(info)

    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w") as tar:
        tar.addfile(info, io.BytesIO(contents))
    return buf.getvalue()


def unpack_stream(chunks: Iterable[bytes], dest: str, strip_components: int = 1) -> list[str]:
    """
    Extract a ``get_archive`` stream into ``dest``.

    ``get_archive`` wraps the requested path in a top-level entry named
    after its basename; ``strip_components=1`` drops it so the contents
    land directly in ``dest``.

    Returns
    -------
    list[str]
        Relative paths of the extracted members.
    """
    os.makedirs(dest, exist_ok=True)
    extracted: list[str] = []
    with tarfile.open(fileobj=io.BytesIO(b"".join(chunks)), mode="r:") as tar:
        for member in tar.getmembers():
            parts = member.name.split("/")[strip_components:]
            if not parts or parts == [""]:
                continue
            if ".." in parts:
                continue
            member.name = "/".join(parts)
            tar.extract(member, dest, filter="data")
            extracted.append(member.name)
    return extracted


def read_single_file(chunks: Iterable[bytes]) -> bytes:
    """Return the contents of the first regular file in a ``get_archive`` stream."""
    with tarfile.open(fileobj=io.BytesIO(b"".join(chunks)), mode="r:") as tar:
        for member in tar.getmembers():
            if member.isfile():
                handle = tar.extractfile(member)
                return handle.read() if handle is not None else b""
    raise EngineError("archive does not contain a regular file")
