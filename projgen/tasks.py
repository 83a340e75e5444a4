"""The task graph.

Tasks are named units of shell work made of ordered steps. A step either runs
a literal command or *spawns* another task by name; spawned tasks are looked
up lazily so a task may spawn one defined later. A task renders to a single
invocation string, either re-entering the projgen CLI (``INDIRECT``) or as the
flattened shell command line (``DIRECT``).

The graph is persisted to ``<metadata_dir>/tasks.json`` during synthesis, and
:class:`TaskRuntime` executes tasks from that file.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from pydantic import BaseModel, Field

from projgen.component import Component
from projgen.config import Config, ConfigurationError
from projgen.files import JsonFile
from projgen.utils import ProjgenError, console, exec_command, load_json, log_verbose, run_command

if TYPE_CHECKING:
    from projgen.project import Project


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class DuplicateTaskError(ProjgenError):
    """Raised when a task name is already taken."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f'duplicate task "{name}"')


class CycleError(ProjgenError):
    """Raised when tasks spawn each other in a cycle."""

    def __init__(self, path: list[str]) -> None:
        self.path = path
        super().__init__(f"task cycle detected: {' -> '.join(path)}")


class TaskFailedError(ProjgenError):
    """Raised when a task step exits with a non-zero status."""

    def __init__(self, task: str, command: str, returncode: int) -> None:
        self.task = task
        self.command = command
        self.returncode = returncode
        super().__init__(f'task "{task}" failed (exit {returncode}) running: {command}')


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class TaskCategory(str, Enum):
    BUILD = "00.build"
    TEST = "10.test"
    RELEASE = "20.release"
    MAINTAIN = "30.maintain"
    MISC = "99.misc"


class TaskExecution(str, Enum):
    """How a task is invoked from a script or workflow step."""
    INDIRECT = "projgen"
    DIRECT = "shell"


class TaskStep(BaseModel):
    """One step: a literal command (``exec``) or a task reference (``spawn``)."""

    exec: Optional[str] = None
    spawn: Optional[str] = None


class TaskSpec(BaseModel):
    """Serialised form of a task inside ``tasks.json``."""

    name: str
    description: Optional[str] = None
    category: Optional[TaskCategory] = None
    env: Optional[dict[str, str]] = None
    cwd: Optional[str] = None
    steps: Optional[list[TaskStep]] = None


class TaskManifest(BaseModel):
    """The ``tasks.json`` document."""

    tasks: dict[str, TaskSpec] = Field(default_factory=dict)
    env: Optional[dict[str, str]] = None


# ---------------------------------------------------------------------------
# Task
# ---------------------------------------------------------------------------


class Task:
    """A named task. Create tasks with :meth:`Tasks.add_task`."""

    def __init__(
        self,
        name: str,
        *,
        description: Optional[str] = None,
        category: TaskCategory | str | None = None,
        exec: Optional[str] = None,
        env: Optional[dict[str, str]] = None,
        cwd: Optional[str] = None,
    ) -> None:
        self.name = name
        self.description = description
        self.category = TaskCategory(category) if category is not None else None
        self.cwd = cwd
        self._env: dict[str, str] = dict(env or {})
        self._steps: list[TaskStep] = []
        if exec:
            self.exec(exec)

    def exec(self, command: str) -> None:
        """Append a shell command step."""
        self._steps.append(TaskStep(exec=command))

    def spawn(self, task: Task | str) -> None:
        """Append a step that runs *task* in place."""
        name = task.name if isinstance(task, Task) else task
        self._steps.append(TaskStep(spawn=name))

    def reset(self, command: Optional[str] = None) -> None:
        """Remove every step, optionally leaving a single *command*."""
        self._steps.clear()
        if command:
            self.exec(command)

    def env(self, name: str, value: str) -> None:
        self._env[name] = value

    @property
    def steps(self) -> list[TaskStep]:
        return list(self._steps)

    @property
    def environment(self) -> dict[str, str]:
        return dict(self._env)

    def to_spec(self) -> TaskSpec:
        return TaskSpec(
            name=self.name,
            description=self.description,
            category=self.category,
            env=dict(self._env) or None,
            cwd=self.cwd,
            steps=[step.model_copy() for step in self._steps] or None,
        )

    def __repr__(self) -> str:
        return f"Task({self.name!r}, steps={len(self._steps)})"


# ---------------------------------------------------------------------------
# Task graph
# ---------------------------------------------------------------------------


class Tasks(Component):
    """All tasks of a project, plus the environment shared by every task."""

    def __init__(self, project: Project) -> None:
        super().__init__(project)
        self._tasks: dict[str, Task] = {}
        self._env: dict[str, str] = {}
        self._file = JsonFile(
            project,
            project.config.tasks_path(),
            omit_empty=True,
        )

    # -- Definition --------------------------------------------------------

    def add_task(
        self,
        name: str,
        *,
        description: Optional[str] = None,
        category: TaskCategory | str | None = None,
        exec: Optional[str] = None,
        env: Optional[dict[str, str]] = None,
        cwd: Optional[str] = None,
    ) -> Task:
        """Define a new task.

        Raises:
            DuplicateTaskError: If a task with this name already exists.
        """
        if name in self._tasks:
            raise DuplicateTaskError(name)
        task = Task(
            name,
            description=description,
            category=category,
            exec=exec,
            env=env,
            cwd=cwd,
        )
        self._tasks[name] = task
        return task

    def remove_task(self, name: str) -> Optional[Task]:
        """Remove a task and return it, or ``None`` if it does not exist."""
        return self._tasks.pop(name, None)

    def try_find(self, name: str) -> Optional[Task]:
        return self._tasks.get(name)

    @property
    def all(self) -> list[Task]:
        return list(self._tasks.values())

    def add_environment(self, name: str, value: str) -> None:
        """Set an environment variable for every task."""
        self._env[name] = value

    @property
    def env(self) -> dict[str, str]:
        return dict(self._env)

    # -- Graph walking -----------------------------------------------------

    def validate(self, task: Task | str | None = None) -> None:
        """Check spawn references and cycles below *task*, or the whole graph.

        Raises:
            CycleError: If tasks spawn each other in a cycle.
            ConfigurationError: If a task spawns an unknown task.
        """
        roots = [self._lookup(task)] if task is not None else self.all
        done: set[str] = set()
        for root in roots:
            self._visit(root, {}, done)

    def _visit(self, task: Task, visiting: dict[str, None], done: set[str]) -> None:
        if task.name in done:
            return
        if task.name in visiting:
            path = list(visiting)
            raise CycleError(path[path.index(task.name) :] + [task.name])

        visiting[task.name] = None
        for step in task.steps:
            if step.spawn is not None:
                self._visit(self._resolve_spawn(task, step.spawn), visiting, done)
        del visiting[task.name]
        done.add(task.name)

    def flatten(self, task: Task | str) -> list[str]:
        """Return the literal commands of *task* with every spawn inlined."""
        task = self._lookup(task)
        self.validate(task)
        return self._flatten(task)

    def _flatten(self, task: Task) -> list[str]:
        commands: list[str] = []
        for step in task.steps:
            if step.spawn is not None:
                commands.extend(self._flatten(self._resolve_spawn(task, step.spawn)))
            elif step.exec:
                commands.append(step.exec)
        return commands

    # -- Rendering ---------------------------------------------------------

    def render(self, task: Task | str, mode: TaskExecution | str) -> str:
        """Return the single command line that invokes *task* under *mode*.

        Raises:
            ConfigurationError: If *mode* is not a :class:`TaskExecution`.
            CycleError: If the task takes part in a spawn cycle.
        """
        try:
            execution = TaskExecution(mode)
        except ValueError:
            raise ConfigurationError(f"unsupported task execution mode: {mode!r}") from None

        task = self._lookup(task)
        if execution is TaskExecution.INDIRECT:
            return f"{self.project.projgen_command} {task.name}"

        self.validate(task)
        return self._render_direct(task, outermost=True)

    def _render_direct(self, task: Task, outermost: bool) -> str:
        parts: list[str] = []
        for step in task.steps:
            if step.spawn is not None:
                rendered = self._render_direct(self._resolve_spawn(task, step.spawn), False)
            else:
                rendered = step.exec or ""
            if rendered:
                parts.append(rendered)

        if not parts:
            return ""

        env = {**self._env, **task.environment} if outermost else task.environment
        prefix = [f'export {name}="{value}"' for name, value in env.items()]
        if task.cwd:
            prefix.append(f"cd {task.cwd}")

        if not prefix:
            return " && ".join(parts)
        return "(" + " && ".join(prefix + parts) + ")"

    def render_manifest(self) -> TaskManifest:
        return TaskManifest(
            tasks={task.name: task.to_spec() for task in self.all},
            env=dict(self._env) or None,
        )

    # -- Lifecycle ---------------------------------------------------------

    def pre_synthesize(self) -> None:
        self.validate()

    def synthesize(self) -> None:
        if not self._tasks:
            self._file.obj = None
            return
        self._file.obj = self.render_manifest().model_dump(mode="json", exclude_none=True)

    # -- Helpers -----------------------------------------------------------

    def _lookup(self, task: Task | str) -> Task:
        name = task.name if isinstance(task, Task) else task
        found = self._tasks.get(name)
        if found is None:
            raise ConfigurationError(f'unknown task "{name}"')
        return found

    def _resolve_spawn(self, parent: Task, name: str) -> Task:
        found = self._tasks.get(name)
        if found is None:
            raise ConfigurationError(f'task "{parent.name}" spawns unknown task "{name}"')
        return found


# ---------------------------------------------------------------------------
# Runtime
# ---------------------------------------------------------------------------


class TaskRuntime:
    """Runs tasks from a persisted ``tasks.json``.

    Steps run one at a time through the shell. Each step sees the process
    environment, the graph-wide environment and the environment of every
    enclosing task. Values of the form ``$(command)`` are replaced by the
    command's output.
    """

    def __init__(self, workdir: str | Path, config: Optional[Config] = None) -> None:
        self.workdir = Path(workdir).resolve()
        self.manifest_path = (config or Config()).tasks_path(self.workdir)
        if self.manifest_path.is_file():
            self.manifest = TaskManifest.model_validate(load_json(self.manifest_path))
        else:
            self.manifest = TaskManifest()

    @property
    def tasks(self) -> list[TaskSpec]:
        return list(self.manifest.tasks.values())

    def try_find(self, name: str) -> Optional[TaskSpec]:
        return self.manifest.tasks.get(name)

    def run_task(
        self,
        name: str,
        parents: Optional[list[str]] = None,
        env: Optional[dict[str, str]] = None,
    ) -> None:
        """Run *name* and everything it spawns, in order.

        Raises:
            ConfigurationError: If the task does not exist.
            CycleError: If the task spawns itself through any chain.
            TaskFailedError: If a step exits with a non-zero status.
        """
        parents = list(parents or [])
        if name in parents:
            raise CycleError(parents[parents.index(name) :] + [name])

        spec = self.try_find(name)
        if spec is None:
            raise ConfigurationError(f'cannot find task "{name}"')

        cwd = self.workdir / spec.cwd if spec.cwd else self.workdir
        if env is None:
            env = self._evaluate(self.manifest.env or {}, self.workdir)
        merged = {**env, **self._evaluate(spec.env or {}, cwd)}

        log_verbose(f"{name}: running in {cwd}")
        for step in spec.steps or []:
            if step.spawn is not None:
                self.run_task(step.spawn, parents + [name], merged)
                continue
            if not step.exec:
                continue
            console.print(f"[bold cyan]{name}[/bold cyan] | {step.exec}", highlight=False)
            returncode, _, _ = run_command(step.exec, cwd=cwd, capture=False, env=merged)
            if returncode != 0:
                raise TaskFailedError(name, step.exec, returncode)

    def _evaluate(self, env: dict[str, str], cwd: Path) -> dict[str, str]:
        result: dict[str, str] = {}
        for key, value in env.items():
            if value.startswith("$(") and value.endswith(")"):
                value = exec_command(value[2:-1], cwd=cwd, env=result or None, capture=True)
            result[key] = value
        return result
