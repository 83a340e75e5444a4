"""Projects and the synthesis orchestrator.

A :class:`Project` owns an ordered list of components (its dependency ledger,
task graph, ``.gitignore`` and any files added to it) and optionally nests
sub-projects. Calling :meth:`Project.synth` on the root project drives every
component of the tree through three phases:

Phase 1: PRE-SYNTHESIZE  -- finalize derived state (ledger snapshot, task validation).
Phase 2: SYNTHESIZE      -- emit files; stale generated files are cleaned up afterwards.
Phase 3: POST-SYNTHESIZE -- side effects such as package installation.

Within a phase, components are visited depth-first, parent project before
its sub-projects, in registration order.
"""

from __future__ import annotations

import fnmatch
import os
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Optional

from pydantic import BaseModel, Field

from projgen.config import Config, ConfigurationError
from projgen.deps import Dependencies
from projgen.files import MARKER
from projgen.ignore_file import IgnoreFile
from projgen.tasks import Task, Tasks
from projgen.utils import (
    format_duration,
    is_verbose,
    log_verbose,
    print_phase_header,
    print_success,
    print_summary_table,
    remove_file,
    set_verbose,
)

if TYPE_CHECKING:
    from projgen.component import Component
    from projgen.files import FileBase


_CLEANUP_SKIP_DIRS = {"node_modules", ".git"}


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class ProjectOptions(BaseModel):
    """Options shared by every project type."""

    name: str = Field(..., description="Project name")
    outdir: Optional[str] = Field(
        default=None,
        description="Output directory; relative to the parent's outdir for sub-projects",
    )
    gitignore: list[str] = Field(
        default_factory=list, description="Extra .gitignore patterns"
    )
    projgen_command: str = Field(
        default="projgen", description="Command that re-enters the projgen CLI"
    )


class SynthPhase(str, Enum):
    IDLE = "idle"
    PRE_SYNTHESIZING = "pre-synthesizing"
    SYNTHESIZING = "synthesizing"
    POST_SYNTHESIZING = "post-synthesizing"
    DONE = "done"


@dataclass
class SynthReport:
    """Outcome of one ``synth()`` run. Paths are relative to the root outdir."""

    written: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    elapsed: float = 0.0


# ---------------------------------------------------------------------------
# Project
# ---------------------------------------------------------------------------


class Project:
    """The composition root for a tree of components.

    Args:
        options: Project options. Keyword arguments are used to build a
            :class:`ProjectOptions` when omitted, or override its fields.
        parent: Parent project, making this a sub-project.
        config: Run configuration. Sub-projects share their parent's; a root
            project without one reads :meth:`Config.from_env`.
    """

    #: Patterns every .gitignore of this project type starts with.
    default_gitignore: list[str] = []

    def __init__(
        self,
        options: Optional[ProjectOptions] = None,
        *,
        parent: Optional[Project] = None,
        config: Optional[Config] = None,
        **kwargs,
    ) -> None:
        if options is None:
            options = ProjectOptions(**kwargs)
        elif kwargs:
            options = options.model_copy(update=kwargs)

        self.options = options
        self.name = options.name
        self.parent = parent
        self.config = config or (parent.config if parent else Config.from_env())
        self.projgen_command = options.projgen_command

        if parent is None:
            self.outdir = Path(options.outdir or ".").resolve()
        else:
            if not options.outdir:
                raise ConfigurationError(
                    f'sub-project "{options.name}" requires an "outdir"'
                )
            self.outdir = (parent.outdir / options.outdir).resolve()

        self._components: list[Component] = []
        self._files: dict[str, FileBase] = {}
        self._subprojects: list[Project] = []
        self._exclude_from_cleanup: list[str] = []
        self._emissions: dict[Path, bool] = {}
        self._phase = SynthPhase.IDLE

        if parent is not None:
            parent._add_subproject(self)

        self.tasks = Tasks(self)
        self.deps = Dependencies(self)
        self.gitignore = IgnoreFile(self, ".gitignore")
        self.gitignore.exclude(*self.default_gitignore)
        self.gitignore.exclude(*options.gitignore)

    # ------------------------------------------------------------------
    # Tree structure
    # ------------------------------------------------------------------

    def _register_component(self, component: Component) -> None:
        self._components.append(component)

    def _register_file(self, file: FileBase) -> None:
        if file.path in self._files:
            raise ConfigurationError(
                f'there is already a file under {file.path} in project "{self.name}"'
            )
        self._files[file.path] = file

    def _add_subproject(self, child: Project) -> None:
        if child.outdir == self.outdir:
            raise ConfigurationError(
                f'sub-project "{child.name}" cannot use the same outdir as its parent'
            )
        for existing in self._subprojects:
            if existing.outdir == child.outdir:
                raise ConfigurationError(
                    f'sub-projects "{existing.name}" and "{child.name}" share the '
                    f"outdir {child.outdir}"
                )
        self._subprojects.append(child)

    @property
    def components(self) -> list[Component]:
        return list(self._components)

    @property
    def files(self) -> list[FileBase]:
        return list(self._files.values())

    @property
    def subprojects(self) -> list[Project]:
        return list(self._subprojects)

    @property
    def root(self) -> Project:
        project = self
        while project.parent is not None:
            project = project.parent
        return project

    @property
    def all_projects(self) -> list[Project]:
        """This project followed by every descendant, depth-first."""
        result = [self]
        for child in self._subprojects:
            result.extend(child.all_projects)
        return result

    @property
    def phase(self) -> SynthPhase:
        return self._phase

    def try_find_file(self, file_path: str | Path) -> Optional[FileBase]:
        """Find a file by path relative to this project, searching sub-projects too."""
        target = (self.outdir / file_path).resolve()
        for project in self.all_projects:
            for file in project._files.values():
                if file.absolute_path.resolve() == target:
                    return file
        return None

    # ------------------------------------------------------------------
    # Convenience
    # ------------------------------------------------------------------

    def add_task(self, name: str, **kwargs) -> Task:
        return self.tasks.add_task(name, **kwargs)

    def add_git_ignore(self, pattern: str) -> None:
        self.gitignore.exclude(pattern)

    def add_exclude_from_cleanup(self, *globs: str) -> None:
        """Keep generated files matching *globs* (relative to ``outdir``) during cleanup."""
        self._exclude_from_cleanup.extend(globs)

    def _record_emission(self, path: Path, changed: bool) -> None:
        path = Path(path).resolve()
        self._emissions[path] = self._emissions.get(path, False) or changed

    # ------------------------------------------------------------------
    # Synthesis
    # ------------------------------------------------------------------

    def synth(self) -> SynthReport:
        """Synthesize every project of the tree into its output directory.

        Any exception aborts the run and propagates; files written before the
        failure are left in place and :attr:`phase` keeps the failing phase.

        Raises:
            ConfigurationError: If called on a sub-project.
        """
        if self.parent is not None:
            raise ConfigurationError(
                f'synth() must be called on the root project, not "{self.name}"'
            )
        if self.config.verbose:
            set_verbose(True)

        start = time.monotonic()
        projects = self.all_projects
        for project in projects:
            project._emissions = {}

        self._run_phase(SynthPhase.PRE_SYNTHESIZING, 1, "pre-synthesize",
                        lambda c: c.pre_synthesize())
        self._run_phase(SynthPhase.SYNTHESIZING, 2, "synthesize",
                        lambda c: c.synthesize())

        removed: list[Path] = []
        for project in projects:
            removed.extend(project._cleanup())

        if self.config.post_synthesis:
            self._run_phase(SynthPhase.POST_SYNTHESIZING, 3, "post-synthesize",
                            lambda c: c.post_synthesize())
        else:
            log_verbose("post-synthesis disabled")

        for project in projects:
            project._phase = SynthPhase.DONE

        report = self._build_report(removed, time.monotonic() - start)
        if self.config.show_summary:
            self._print_summary(report)
        return report

    def _run_phase(
        self,
        phase: SynthPhase,
        number: int,
        name: str,
        hook: Callable[[Component], None],
    ) -> None:
        projects = self.all_projects
        for project in projects:
            project._phase = phase
        if is_verbose():
            print_phase_header(number, name)
        for project in projects:
            for component in project.components:
                hook(component)

    def _cleanup(self) -> list[Path]:
        """Delete marker-stamped files under ``outdir`` that were not emitted this run."""
        nested = {p.outdir for p in self.root.all_projects if p is not self}
        removed: list[Path] = []

        for dirpath, dirnames, filenames in os.walk(self.outdir):
            current = Path(dirpath)
            dirnames[:] = sorted(
                d for d in dirnames
                if d not in _CLEANUP_SKIP_DIRS and (current / d).resolve() not in nested
            )
            for filename in sorted(filenames):
                # outdir is already resolved; links are never followed
                path = current / filename
                if path.is_symlink() or path in self._emissions:
                    continue
                relative = path.relative_to(self.outdir).as_posix()
                if any(fnmatch.fnmatch(relative, g) for g in self._exclude_from_cleanup):
                    continue
                try:
                    if MARKER.encode("utf-8") not in path.read_bytes():
                        continue
                    remove_file(path)
                except OSError as exc:
                    log_verbose(f"unable to clean up {relative}: {exc}")
                    continue
                log_verbose(f"removed stale file {relative}")
                removed.append(path)
        return removed

    def _build_report(self, removed: list[Path], elapsed: float) -> SynthReport:
        report = SynthReport(elapsed=elapsed)
        for project in self.all_projects:
            for path, changed in project._emissions.items():
                bucket = report.written if changed else report.unchanged
                bucket.append(self._relative(path))
        report.written.sort()
        report.unchanged.sort()
        report.removed = sorted(self._relative(path) for path in removed)
        return report

    def _relative(self, path: Path) -> str:
        try:
            return path.relative_to(self.outdir).as_posix()
        except ValueError:
            return path.as_posix()

    def _print_summary(self, report: SynthReport) -> None:
        print_summary_table(
            {
                "Project": self.name,
                "Output": str(self.outdir),
                "Sub-projects": str(len(self.all_projects) - 1),
                "Files written": str(len(report.written)),
                "Files unchanged": str(len(report.unchanged)),
                "Files removed": str(len(report.removed)),
                "Duration": format_duration(report.elapsed),
            },
            title="Synthesis Summary",
        )
        print_success(f"Synthesized {self.name}")

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r}, outdir={str(self.outdir)!r})"
