"""
Errors
======
Exception taxonomy shared by the engine adapter and the Go module.

    GoBuildError
    ├── EngineError               — engine/infrastructure failure (pull, create, archive)
    │   └── EndpointResolutionFailed — a service could not be started or reached
    └── ExecError                 — a command ran and exited non-zero
"""
from typing import Optional, Sequence


class GoBuildError(Exception):
    """Base class for every error raised by gobuild."""

    pass


class EngineError(GoBuildError):
    """The container engine could not carry out a request."""

    pass


class EndpointResolutionFailed(EngineError):
    """A service endpoint could not be resolved."""

    def __init__(self, hostname: str, reason: str) -> None:
        self.hostname = hostname
        self.reason = reason
        super().__init__(f"endpoint resolution failed for {hostname}: {reason}")


class ExecError(GoBuildError):
    """
    A command exited with a non-zero status.

    Carries whatever output was captured so callers can report it.
    """

    def __init__(
        self,
        args: Sequence[str],
        exit_code: int,
        stdout: str = "",
        stderr: str = "",
        image: Optional[str] = None,
    ) -> None:
        self.cmd = list(args)
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        self.image = image
        message = f"process {self.cmd!r} exited with code {exit_code}"
        if stderr.strip():
            message += f": {stderr.strip().splitlines()[-1]}"
        super().__init__(message)

    @property
    def output(self) -> str:
        """Combined stdout + stderr."""
        if self.stdout and self.stderr:
            return self.stdout.rstrip("\n") + "\n" + self.stderr
        return self.stdout or self.stderr
