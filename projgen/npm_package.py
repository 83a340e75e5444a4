"""The ``package.json`` manifest component.

``NpmPackage`` collects manifest fields, declares dependencies on the
project's ledger, exposes every task as an npm script, and after synthesis
installs packages and pins wildcard versions to what was installed.
"""

from __future__ import annotations

import os
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from pydantic import BaseModel, Field

from projgen.component import Component
from projgen.config import ConfigurationError
from projgen.deps import DependencyType, InstalledPackageResolver, ResolvedDependencies
from projgen.files import JsonFile
from projgen.license import License
from projgen.tasks import Task, TaskExecution
from projgen.utils import exec_command, load_json

if TYPE_CHECKING:
    from projgen.project import Project


# ---------------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------------


class NodePackageManager(str, Enum):
    YARN = "yarn"
    NPM = "npm"


class PeerDependencyOptions(BaseModel):
    pinned_dev_dependency: bool = Field(
        default=True,
        description="Add a dev dependency pinned to the minimum version of each peer range",
    )


class NpmPackageOptions(BaseModel):
    """Options for :class:`NpmPackage`."""

    name: str
    description: Optional[str] = None

    deps: list[str] = Field(default_factory=list, description="Runtime dependencies")
    dev_deps: list[str] = Field(default_factory=list, description="Build dependencies")
    peer_deps: list[str] = Field(default_factory=list)
    bundled_deps: list[str] = Field(default_factory=list)

    keywords: list[str] = Field(default_factory=list)
    entrypoint: str = Field(
        default="lib/index.js", description='Module entrypoint ("main"); empty to omit'
    )
    bin: dict[str, str] = Field(default_factory=dict)
    auto_detect_bin: bool = Field(
        default=True, description="Add every executable file under bin/ as a binary"
    )
    scripts: dict[str, str] = Field(
        default_factory=dict, description="Commands registered as tasks"
    )

    author_name: Optional[str] = None
    author_email: Optional[str] = None
    author_url: Optional[str] = None
    author_organization: Optional[bool] = None
    homepage: Optional[str] = None
    repository: Optional[str] = None
    repository_directory: Optional[str] = None

    license: str = Field(default="Apache-2.0", description="SPDX license identifier")
    licensed: bool = Field(
        default=True, description='False marks the package "UNLICENSED" and writes no LICENSE'
    )
    copyright_owner: Optional[str] = None
    copyright_period: Optional[str] = None

    npm_task_execution: TaskExecution = TaskExecution.INDIRECT
    projgen_command: str = "npx projgen"
    package_manager: NodePackageManager = NodePackageManager.YARN
    peer_dependency_options: PeerDependencyOptions = Field(
        default_factory=PeerDependencyOptions
    )
    allow_library_dependencies: bool = Field(
        default=True, description="False forbids peer and bundled dependencies"
    )


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, (dict, list)) and not value)


# ---------------------------------------------------------------------------
# NpmPackage
# ---------------------------------------------------------------------------


class NpmPackage(Component):
    """Represents the npm ``package.json`` of a project.

    ``package.json`` is written without the read-only bit so package manager
    commands such as ``yarn add`` keep working.
    """

    def __init__(
        self,
        project: Project,
        options: Optional[NpmPackageOptions] = None,
        **kwargs,
    ) -> None:
        super().__init__(project)
        if options is None:
            options = NpmPackageOptions(**kwargs)

        self.options = options
        self.npm_task_execution = options.npm_task_execution
        self.projgen_command = options.projgen_command
        self.package_manager = options.package_manager
        self.allow_library_dependencies = options.allow_library_dependencies
        self.peer_dependency_options = options.peer_dependency_options
        self.entrypoint = options.entrypoint
        self.resolver: Optional[InstalledPackageResolver] = None

        self._keywords: set[str] = set()
        self._bin: dict[str, str] = {}
        self._scripts: dict[str, list[str]] = {}
        self._engines: dict[str, str] = {}
        self._fields: dict[str, Any] = {}
        self._snapshot: Optional[ResolvedDependencies] = None

        self._author = self._render_author(options)
        self._license = self._render_license(options)
        self._process_deps(options)

        for name, command in options.scripts.items():
            project.add_task(name, exec=command)

        self.file = JsonFile(project, "package.json", readonly=False, marker=True)

        self.add_keywords(*options.keywords)
        self.add_bin(options.bin)
        if options.auto_detect_bin:
            self._auto_discover_binaries()

    # ------------------------------------------------------------------
    # Dependencies
    # ------------------------------------------------------------------

    def add_deps(self, *deps: str) -> None:
        """Add runtime dependencies, e.g. ``add_deps("express@^4")``."""
        for dep in deps:
            self.project.deps.add_dependency(dep, DependencyType.RUNTIME)

    def add_dev_deps(self, *deps: str) -> None:
        for dep in deps:
            self.project.deps.add_dependency(dep, DependencyType.BUILD)

    def add_peer_deps(self, *deps: str) -> None:
        """Add peer dependencies.

        Raises:
            ConfigurationError: If library dependencies are not allowed.
        """
        if deps and not self.allow_library_dependencies:
            raise ConfigurationError(
                f"cannot add peer dependencies to an application: {', '.join(deps)}"
            )
        for dep in deps:
            self.project.deps.add_dependency(dep, DependencyType.PEER)

    def add_bundled_deps(self, *deps: str) -> None:
        """Add dependencies bundled into the package tarball.

        Raises:
            ConfigurationError: If library dependencies are not allowed.
        """
        if deps and not self.allow_library_dependencies:
            raise ConfigurationError(
                f"cannot add bundled dependencies to an application: {', '.join(deps)}"
            )
        for dep in deps:
            self.project.deps.add_dependency(dep, DependencyType.BUNDLED)

    def _process_deps(self, options: NpmPackageOptions) -> None:
        self.add_deps(*options.deps)
        self.add_dev_deps(*options.dev_deps)
        self.add_peer_deps(*options.peer_deps)
        self.add_bundled_deps(*options.bundled_deps)

    # ------------------------------------------------------------------
    # Manifest fields
    # ------------------------------------------------------------------

    def add_engine(self, engine: str, version: str) -> None:
        self._engines[engine] = version

    def add_keywords(self, *keywords: str) -> None:
        self._keywords.update(keywords)

    def add_bin(self, bins: dict[str, str]) -> None:
        self._bin.update(bins)

    def set_script(self, name: str, command: str) -> None:
        """Replace the contents of a package.json script."""
        self._scripts[name] = [command]

    def remove_script(self, name: str) -> None:
        self._scripts.pop(name, None)

    def has_script(self, name: str) -> bool:
        return name in self._scripts

    def add_field(self, name: str, value: Any) -> None:
        """Set a top-level field directly. Later writes win; ``None`` removes the field."""
        self._fields[name] = value

    def add_version(self, version: str) -> None:
        self.add_field("version", version)

    @property
    def install_command(self) -> str:
        """The command that installs all dependencies (always frozen)."""
        return self._render_install_command(frozen=True)

    def _render_install_command(self, frozen: bool) -> str:
        if self.package_manager is NodePackageManager.YARN:
            parts = ["yarn install", "--check-files"]
            if frozen:
                parts.append("--frozen-lockfile")
            return " ".join(parts)
        if self.package_manager is NodePackageManager.NPM:
            return "npm ci" if frozen else "npm install"
        raise ConfigurationError(f"unexpected package manager {self.package_manager}")

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render_manifest(self, snapshot: Optional[ResolvedDependencies] = None) -> dict[str, Any]:
        """Return the ``package.json`` content (without the marker)."""
        if snapshot is None:
            snapshot = self._snapshot or self._render_dependencies(previous=None)

        repository = None
        if self.options.repository:
            repository = {
                "type": "git",
                "url": self.options.repository,
                "directory": self.options.repository_directory,
            }

        manifest: dict[str, Any] = {
            "name": self.options.name,
            "description": self.options.description,
            "repository": repository,
            "bin": dict(self._bin),
            "scripts": self._render_scripts(),
            "author": self._author,
            "homepage": self.options.homepage,
            **snapshot.to_manifest(),
            "keywords": sorted(self._keywords),
            "engines": dict(self._engines),
            "license": self._license,
            "main": self.entrypoint or None,
        }
        manifest.update(self._fields)

        result: dict[str, Any] = {}
        for key, value in manifest.items():
            if isinstance(value, dict):
                value = {k: v for k, v in value.items() if v is not None}
            if not _is_empty(value):
                result[key] = value
        return result

    def _render_dependencies(self, previous: Optional[dict[str, Any]]) -> ResolvedDependencies:
        return self.project.deps.render(
            peer_pinning=self.peer_dependency_options.pinned_dev_dependency,
            previous=previous,
        )

    def _render_scripts(self) -> dict[str, str]:
        result: dict[str, str] = {}
        for name, commands in self._scripts.items():
            result[name] = " && ".join(commands or ['echo "n/a"'])
        for task in self.project.tasks.all:
            result[task.name] = self._npm_script_for_task(task)
        return result

    def _npm_script_for_task(self, task: Task) -> str:
        try:
            mode = TaskExecution(self.npm_task_execution)
        except ValueError:
            raise ConfigurationError(
                f"invalid npm task execution mode: {self.npm_task_execution!r}"
            ) from None
        if mode is TaskExecution.INDIRECT:
            return f"{self.projgen_command} {task.name}"
        return self.project.tasks.render(task, mode) or 'echo "n/a"'

    def _render_author(self, options: NpmPackageOptions) -> Optional[dict[str, Any]]:
        if options.author_name:
            return {
                "name": options.author_name,
                "email": options.author_email,
                "url": options.author_url,
                "organization": bool(options.author_organization),
            }
        if options.author_email or options.author_url or options.author_organization is not None:
            raise ConfigurationError(
                '"author_name" is required if specifying "author_email" or "author_url"'
            )
        return None

    def _render_license(self, options: NpmPackageOptions) -> str:
        if not options.licensed:
            return "UNLICENSED"
        License(
            self.project,
            options.license,
            copyright_owner=options.copyright_owner or options.author_name,
            copyright_period=options.copyright_period,
        )
        return options.license

    def _auto_discover_binaries(self) -> None:
        bindir = self.project.outdir / "bin"
        if not bindir.is_dir():
            return
        for path in sorted(bindir.iterdir()):
            if path.is_file() and os.access(path, os.X_OK):
                self._bin[path.name] = f"bin/{path.name}"

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def pre_synthesize(self) -> None:
        manifest_path = self.project.outdir / "package.json"
        previous = load_json(manifest_path) if manifest_path.is_file() else None
        self._snapshot = self._render_dependencies(previous)

    def synthesize(self) -> None:
        self.file.obj = self.render_manifest()

    def post_synthesize(self) -> None:
        """Install packages, then pin wildcard versions to the installed ones."""
        outdir = self.project.outdir
        exec_command(self._render_install_command(frozen=self.project.config.ci), cwd=outdir)

        self._snapshot = self.project.deps.resolve_installed(
            outdir, self._snapshot or self._render_dependencies(previous=None), self.resolver
        )
        self.file.obj = self.render_manifest()
        self.file.synthesize()
