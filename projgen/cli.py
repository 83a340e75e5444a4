"""projgen command line.

Usage::

    projgen                 # run .projgenrc.py, which synthesizes the project
    projgen build           # run the "build" task from .projgen/tasks.json
    projgen --list          # list the available tasks
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional

from projgen.config import Config
from projgen.tasks import TaskRuntime
from projgen.utils import (
    ProjgenError,
    console,
    print_error,
    print_summary_table,
    run_command,
    set_verbose,
)

DEFAULT_RC = ".projgenrc.py"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="projgen",
        description="projgen -- declarative project scaffolding",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  projgen\n"
            "  projgen build\n"
            "  projgen --list\n"
        ),
    )
    parser.add_argument(
        "task",
        nargs="?",
        default=None,
        help="Task to run (omit to synthesize the project)",
    )
    parser.add_argument(
        "--list", "-l",
        action="store_true",
        help="List the tasks defined in the project",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Print verbose diagnostics",
    )
    parser.add_argument(
        "--rc",
        default=DEFAULT_RC,
        help=f"Project definition file (default: {DEFAULT_RC})",
    )
    parser.add_argument(
        "--cwd",
        default=".",
        help="Project directory (default: current directory)",
    )
    parser.add_argument(
        "--no-post",
        action="store_true",
        help="Skip post-synthesis steps such as package installation",
    )
    return parser


def _synthesize(workdir: Path, rc: str, verbose: bool, no_post: bool) -> int:
    rc_path = workdir / rc
    if not rc_path.is_file():
        print_error(f"Project definition not found: {rc_path}")
        return 1

    env: dict[str, str] = {}
    if verbose:
        env["PROJGEN_VERBOSE"] = "1"
    if no_post:
        env["PROJGEN_DISABLE_POST"] = "1"

    returncode, _, _ = run_command(
        [sys.executable, str(rc_path)], cwd=workdir, capture=False, env=env
    )
    if returncode != 0:
        print_error(f"{rc} exited with status {returncode}")
    return returncode


def _list_tasks(runtime: TaskRuntime) -> None:
    if not runtime.tasks:
        console.print("[dim]No tasks defined.[/dim]")
        return
    print_summary_table(
        {spec.name: spec.description or "" for spec in runtime.tasks},
        title="Tasks",
    )


def main(argv: Optional[list[str]] = None) -> None:
    """CLI entry point for ``projgen`` and ``python -m projgen``."""
    args = _build_parser().parse_args(argv)

    config = Config.from_env()
    if args.verbose or config.verbose:
        set_verbose(True)

    workdir = Path(args.cwd).resolve()
    try:
        if args.list:
            _list_tasks(TaskRuntime(workdir, config))
            return
        if args.task is None:
            returncode = _synthesize(workdir, args.rc, args.verbose, args.no_post)
            if returncode != 0:
                sys.exit(returncode)
            return
        TaskRuntime(workdir, config).run_task(args.task)
    except ProjgenError as exc:
        print_error(str(exc))
        sys.exit(1)


if __name__ == "__main__":
    main()
