"""Shared utility functions for projgen.

Provides synchronous command execution, idempotent file writes, JSON loading,
Rich-based console output (including the verbose/warning channel used for
non-fatal conditions), and small formatting helpers.
"""

from __future__ import annotations

import json
import os
import stat
import subprocess
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.rule import Rule
from rich.table import Table

console = Console()

_verbose = False


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ProjgenError(Exception):
    """Base class for every error raised by projgen."""


class CommandError(ProjgenError):
    """Raised when an external command exits with a non-zero status."""

    def __init__(self, command: str, returncode: int, stderr: str = "") -> None:
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        message = f"Command failed with exit code {returncode}: {command}"
        if stderr:
            message += f"\n{stderr}"
        super().__init__(message)


# ---------------------------------------------------------------------------
# Command execution
# ---------------------------------------------------------------------------


def run_command(
    cmd: str | list[str],
    cwd: str | Path | None = None,
    timeout: int | None = None,
    capture: bool = True,
    env: dict[str, str] | None = None,
) -> tuple[int, str, str]:
    """Run a command synchronously.

    Args:
        cmd: Shell command string or list of arguments.
        cwd: Working directory for the child process.
        timeout: Maximum wall-clock seconds before the process is killed.
            ``None`` waits forever.
        capture: Whether to capture stdout/stderr (if ``False`` they inherit
            the parent's streams).
        env: Optional extra environment variables merged on top of ``os.environ``.

    Returns:
        A ``(returncode, stdout, stderr)`` tuple.  If *capture* is ``False``
        the stdout/stderr strings will be empty.
    """
    merged_env: dict[str, str] | None = None
    if env:
        merged_env = {**os.environ, **env}

    try:
        completed = subprocess.run(
            cmd,
            shell=isinstance(cmd, str),
            cwd=str(cwd) if cwd else None,
            env=merged_env,
            capture_output=capture,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        return (
            -1,
            "",
            f"Command timed out after {timeout}s: {cmd if isinstance(cmd, str) else ' '.join(cmd)}",
        )

    stdout_str = (completed.stdout or b"").decode("utf-8", errors="replace").strip()
    stderr_str = (completed.stderr or b"").decode("utf-8", errors="replace").strip()
    return (completed.returncode, stdout_str, stderr_str)


def exec_command(
    cmd: str,
    cwd: str | Path | None = None,
    env: dict[str, str] | None = None,
    capture: bool = False,
) -> str:
    """Run a shell command and raise ``CommandError`` if it fails.

    Output is streamed to the terminal unless *capture* is set, in which case
    the captured stdout is returned.
    """
    log_verbose(f"exec: {cmd} (cwd: {cwd or os.getcwd()})")
    returncode, stdout, stderr = run_command(cmd, cwd=cwd, capture=capture, env=env)
    if returncode != 0:
        raise CommandError(cmd, returncode, stderr)
    return stdout


# ---------------------------------------------------------------------------
# Environment helpers
# ---------------------------------------------------------------------------


def is_truthy(value: str | None) -> bool:
    """Interpret an environment variable value as a boolean flag."""
    if value is None:
        return False
    return value.strip().lower() in ("1", "true", "yes", "on")


# ---------------------------------------------------------------------------
# File I/O
# ---------------------------------------------------------------------------


def load_json(path: str | Path) -> dict[str, Any]:
    """Load and parse a JSON file.

    Raises:
        FileNotFoundError: If the file does not exist.
        json.JSONDecodeError: If the file is not valid JSON.
    """
    raw = Path(path).read_text(encoding="utf-8")
    data = json.loads(raw)
    if not isinstance(data, dict):
        return {"_root": data}
    return data


def write_file(path: str | Path, content: str, *, readonly: bool = False) -> bool:
    """Write *content* to *path* unless the file already holds exactly that.

    Parent directories are created automatically. A read-only file is made
    writable before being replaced, and the result is made read-only again
    when *readonly* is set.

    Returns:
        ``True`` if the file was (re)written, ``False`` if it was unchanged.
    """
    file_path = Path(path)
    data = content.encode("utf-8")

    if file_path.is_file() and file_path.read_bytes() == data:
        _set_readonly(file_path, readonly)
        return False

    file_path.parent.mkdir(parents=True, exist_ok=True)
    if file_path.exists():
        file_path.chmod(file_path.stat().st_mode | stat.S_IWUSR)
    file_path.write_bytes(data)
    _set_readonly(file_path, readonly)
    return True


def remove_file(path: str | Path) -> None:
    """Delete a (possibly read-only) file."""
    file_path = Path(path)
    file_path.chmod(file_path.stat().st_mode | stat.S_IWUSR)
    file_path.unlink()


def _set_readonly(path: Path, readonly: bool) -> None:
    mode = path.stat().st_mode
    if readonly:
        path.chmod(mode & ~(stat.S_IWUSR | stat.S_IWGRP | stat.S_IWOTH))
    else:
        path.chmod(mode | stat.S_IWUSR)


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


def format_duration(seconds: float) -> str:
    """Format a duration in seconds to a human-readable string.

    Examples::

        format_duration(0.42)   -> "0.4s"
        format_duration(65.2)   -> "1m 5s"
    """
    if seconds < 0:
        return "0.0s"

    minutes = int(seconds // 60)
    secs = seconds % 60
    if minutes > 0:
        return f"{minutes}m {int(secs)}s"
    return f"{secs:.1f}s"


# ---------------------------------------------------------------------------
# Rich output helpers
# ---------------------------------------------------------------------------


PHASE_COLORS: dict[int, str] = {
    1: "bright_cyan",
    2: "bright_green",
    3: "bright_magenta",
}


def set_verbose(enabled: bool) -> None:
    """Turn the verbose output channel on or off."""
    global _verbose
    _verbose = enabled


def is_verbose() -> bool:
    return _verbose


def log_verbose(message: str) -> None:
    """Print a dim informational message when verbose mode is on."""
    if _verbose:
        console.print(f"[dim]{message}[/dim]", highlight=False)


def log_warning(message: str) -> None:
    """Print a non-fatal warning."""
    console.print(f"[yellow]warning:[/yellow] {message}", highlight=False)


def print_phase_header(phase: int, name: str) -> None:
    """Print a synthesis phase header using Rich.

    Args:
        phase: Phase number (1-3).
        name: Phase display name.
    """
    color = PHASE_COLORS.get(phase, "white")
    console.print(
        Rule(
            f"[bold {color}] Phase {phase}: {name.upper()} [/bold {color}]",
            style=color,
        )
    )


def print_summary_table(data: dict[str, str], title: str = "Summary") -> None:
    """Print a two-column key/value summary table."""
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Item", style="dim", no_wrap=True)
    table.add_column("Value")

    for key, value in data.items():
        table.add_row(key, str(value))

    console.print(table)


def print_success(message: str) -> None:
    """Print a green success message."""
    console.print(f"[bold green]{message}[/bold green]")


def print_error(message: str) -> None:
    """Print a red error message."""
    console.print(f"[bold red]{message}[/bold red]")


def print_warning(message: str) -> None:
    """Print a yellow warning message."""
    console.print(f"[bold yellow]{message}[/bold yellow]")
