"""
Command Result
==============
Structured output of a test / lint / vulncheck run.

A failing command is not an exception here: the result is always returned
and carries the error next to whatever output was captured.

Fields
------
command : list[str]
    The command that was executed (last step of the chain).
output : str
    Captured stdout. On failure: stdout + stderr of the failing step.
stderr : str
    Captured stderr.
exit_code : int
    Process exit code (0 = success, -1 = never ran / infrastructure error).
error : str | None
    Error message if the command or the engine failed.
log_excerpt : str
    Abbreviated output (first + last N lines) for previews.
execution_time_seconds : float
    Wall clock duration including container preparation.
"""
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class CommandResult:
    command: list = field(default_factory=list)
    output: str = ""
    stderr: str = ""
    exit_code: int = -1
    error: Optional[str] = None
    log_excerpt: str = ""
    execution_time_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None and self.exit_code == 0


# ---------------------------------------------------------------------------
# Log Excerpt Helper
# ---------------------------------------------------------------------------
_EXCERPT_HEAD_LINES = 30
_EXCERPT_TAIL_LINES = 30


def create_log_excerpt(full_log: str,
                       head: int = _EXCERPT_HEAD_LINES,
                       tail: int = _EXCERPT_TAIL_LINES) -> str:
    """
    Create an abbreviated log showing the first and last N lines.

    Returns the log unchanged when it is short enough.
    """
    lines = full_log.splitlines()
    total = len(lines)

    if total <= head + tail:
        return full_log

    omitted = total - head - tail
    return "\n".join(
        lines[:head]
        + [f"\n... ({omitted} lines omitted) ...\n"]
        + lines[-tail:]
    )
