"""Host platform in Go's GOARCH / GOOS vocabulary."""
import platform
import sys

_GOARCH = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "i386": "386",
    "i686": "386",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv6l": "arm",
    "armv7l": "arm",
    "ppc64le": "ppc64le",
    "s390x": "s390x",
    "riscv64": "riscv64",
}

_GOOS_PREFIXES = [
    ("linux", "linux"),
    ("darwin", "darwin"),
    ("win32", "windows"),
    ("cygwin", "windows"),
    ("freebsd", "freebsd"),
    ("openbsd", "openbsd"),
    ("netbsd", "netbsd"),
]


def host_goarch() -> str:
    machine = platform.machine().lower()
    return _GOARCH.get(machine, machine)


def host_goos() -> str:
    for prefix, goos in _GOOS_PREFIXES:
        if sys.platform.startswith(prefix):
            return goos
    return sys.platform
