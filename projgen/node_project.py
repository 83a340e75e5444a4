"""The Node.js project type.

``NodeProject`` wires an :class:`NpmPackage`, the standard build and test
tasks, default ignore files and a ``Build`` GitHub workflow onto a
:class:`Project`.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import Field

from projgen import __version__
from projgen.config import Config, ConfigurationError
from projgen.github import GithubWorkflow
from projgen.ignore_file import IgnoreFile
from projgen.npm_package import NodePackageManager, NpmPackage, NpmPackageOptions
from projgen.project import Project, ProjectOptions
from projgen.tasks import Task, TaskCategory, TaskExecution

RC_FILE = ".projgenrc.py"

DEFAULT_GITIGNORE = [
    "# Logs",
    "logs",
    "*.log",
    "npm-debug.log*",
    "yarn-debug.log*",
    "yarn-error.log*",
    "lerna-debug.log*",
    "# Diagnostic reports (https://nodejs.org/api/report.html)",
    "report.[0-9]*.[0-9]*.[0-9]*.[0-9]*.json",
    "# Runtime data",
    "pids",
    "*.pid",
    "*.seed",
    "*.pid.lock",
    "# Directory for instrumented libs generated by jscoverage/JSCover",
    "lib-cov",
    "# Coverage directory used by tools like istanbul",
    "coverage",
    "*.lcov",
    "# nyc test coverage",
    ".nyc_output",
    "# Compiled binary addons (https://nodejs.org/api/addons.html)",
    "build/Release",
    "# Dependency directories",
    "node_modules/",
    "jspm_packages/",
    "# TypeScript cache",
    "*.tsbuildinfo",
    "# Optional eslint cache",
    ".eslintcache",
    "# Output of 'npm pack'",
    "*.tgz",
    "# Yarn Integrity file",
    ".yarn-integrity",
    "# parcel-bundler cache (https://parceljs.org/)",
    ".cache",
]

_NPM_BIN_PATH = "$(npx -c 'node -e \"console.log(process.env.PATH)\"')"


class NodeProjectOptions(ProjectOptions, NpmPackageOptions):
    """Options for :class:`NodeProject`."""

    projgen_command: str = "npx projgen"

    min_node_version: Optional[str] = None
    max_node_version: Optional[str] = None
    workflow_node_version: Optional[str] = Field(
        default=None, description="Node.js version for workflows (defaults to min_node_version)"
    )

    npmignore_enabled: bool = True
    npmignore: list[str] = Field(default_factory=list)
    testdir: str = "test"

    projgen_dev_dependency: bool = True
    projgen_version: Optional[str] = None

    build_workflow: Optional[bool] = Field(
        default=None, description="Create the Build workflow (default: root projects only)"
    )
    antitamper: bool = True
    workflow_container_image: Optional[str] = None


class NodeProject(Project):
    """A Node.js project with an npm manifest, standard tasks and CI."""

    default_gitignore = DEFAULT_GITIGNORE

    def __init__(
        self,
        options: Optional[NodeProjectOptions] = None,
        *,
        parent: Optional[Project] = None,
        config: Optional[Config] = None,
        **kwargs,
    ) -> None:
        if options is None:
            options = NodeProjectOptions(**kwargs)
        elif kwargs:
            options = options.model_copy(update=kwargs)
        super().__init__(options, parent=parent, config=config)

        self.package = NpmPackage(self, NpmPackageOptions.model_validate(options.model_dump()))
        self.projgen_command = self.package.projgen_command

        if self.package.package_manager is NodePackageManager.NPM:
            self.run_script_command = "npm run"
        else:
            self.run_script_command = "yarn run"

        self.min_node_version = options.min_node_version
        self.max_node_version = options.max_node_version
        self.node_version = options.workflow_node_version or options.min_node_version
        self.testdir = options.testdir

        self.tasks.add_environment("PATH", _NPM_BIN_PATH)

        self.compile_task = self.add_task(
            "compile", description="Only compile", category=TaskCategory.BUILD
        )
        self.test_compile_task = self.add_task(
            "test:compile", description="compiles the test code", category=TaskCategory.TEST
        )
        self.test_task = self.add_task(
            "test", description="Run tests", category=TaskCategory.TEST
        )
        self.test_task.spawn(self.test_compile_task)
        self.build_task = self.add_task(
            "build",
            description="Full release build (test+compile)",
            category=TaskCategory.BUILD,
        )

        self._add_node_engine()

        self.npmignore: Optional[IgnoreFile] = None
        if options.npmignore_enabled:
            self.npmignore = IgnoreFile(self, ".npmignore")

        if options.npmignore:
            if self.npmignore is None:
                raise ConfigurationError(
                    '.npmignore is disabled; set "npmignore_enabled" to add patterns'
                )
            self.npmignore.exclude(*options.npmignore)

        self.package.set_script("projgen", self.package.projgen_command)
        self.package.set_script("start", f"{self.package.projgen_command} start")
        if self.npmignore is not None:
            self.npmignore.exclude(f"/{RC_FILE}", f"/{options.testdir}")
        self.gitignore.include(f"/{RC_FILE}", f"/{options.testdir}")

        if options.projgen_dev_dependency:
            version = options.projgen_version or f"^{__version__}"
            self.add_dev_deps(f"projgen@{version}")

        build_workflow = options.build_workflow
        if build_workflow is None:
            build_workflow = parent is None
        self.antitamper = build_workflow and options.antitamper

        self.build_workflow: Optional[GithubWorkflow] = None
        if build_workflow:
            self.build_workflow = self._create_build_workflow(
                "Build",
                trigger={"pull_request": {}},
                image=options.workflow_container_image,
            )

    # ------------------------------------------------------------------
    # Delegates
    # ------------------------------------------------------------------

    def add_deps(self, *deps: str) -> None:
        self.package.add_deps(*deps)

    def add_dev_deps(self, *deps: str) -> None:
        self.package.add_dev_deps(*deps)

    def add_peer_deps(self, *deps: str) -> None:
        self.package.add_peer_deps(*deps)

    def add_bundled_deps(self, *deps: str) -> None:
        self.package.add_bundled_deps(*deps)

    def add_fields(self, fields: dict[str, Any]) -> None:
        for name, value in fields.items():
            self.package.add_field(name, value)

    def add_keywords(self, *keywords: str) -> None:
        self.package.add_keywords(*keywords)

    def add_bins(self, bins: dict[str, str]) -> None:
        self.package.add_bin(bins)

    def set_script(self, name: str, command: str) -> None:
        self.package.set_script(name, command)

    def remove_script(self, name: str) -> None:
        self.package.remove_script(name)

    def has_script(self, name: str) -> bool:
        return self.package.has_script(name)

    def add_compile_command(self, *commands: str) -> None:
        for command in commands:
            self.compile_task.exec(command)

    def add_test_command(self, *commands: str) -> None:
        for command in commands:
            self.test_task.exec(command)

    @property
    def package_manager(self) -> NodePackageManager:
        return self.package.package_manager

    @property
    def manifest(self) -> dict[str, Any]:
        return self.package.render_manifest()

    # ------------------------------------------------------------------
    # Workflows
    # ------------------------------------------------------------------

    def run_task_command(self, task: Task) -> str:
        """The command a workflow step uses to run *task*."""
        mode = TaskExecution(self.package.npm_task_execution)
        if mode is TaskExecution.INDIRECT:
            return f"{self.package.projgen_command} {task.name}"
        return f"{self.run_script_command} {task.name}"

    @property
    def install_workflow_steps(self) -> list[dict[str, Any]]:
        steps: list[dict[str, Any]] = []
        if self.node_version:
            steps.append(
                {
                    "name": "Setup Node.js",
                    "uses": "actions/setup-node@v1",
                    "with": {"node-version": self.node_version},
                }
            )
        steps.append({"name": "Install dependencies", "run": self.package.install_command})
        steps.append({"name": "Synthesize project files", "run": self.package.projgen_command})
        return steps

    def _create_build_workflow(
        self,
        name: str,
        trigger: dict[str, Any],
        image: Optional[str] = None,
    ) -> GithubWorkflow:
        workflow = GithubWorkflow(self, name)
        workflow.on(**trigger)
        workflow.on(workflow_dispatch={})

        job: dict[str, Any] = {
            "runs-on": "ubuntu-latest",
            # CI makes the install step use the frozen lockfile
            "env": {"CI": "true"},
            "steps": [
                {"name": "Checkout", "uses": "actions/checkout@v2"},
                *self.install_workflow_steps,
                *self._antitamper_steps(),
                {"name": "Build", "run": self.run_task_command(self.build_task)},
                *self._antitamper_steps(),
            ],
        }
        if image:
            job["container"] = {"image": image}

        workflow.add_jobs({"build": job})
        return workflow

    def _antitamper_steps(self) -> list[dict[str, Any]]:
        if not self.antitamper:
            return []
        return [{"name": "Anti-tamper check", "run": "git diff --exit-code"}]

    def _add_node_engine(self) -> None:
        parts = []
        if self.min_node_version:
            parts.append(f">= {self.min_node_version}")
        if self.max_node_version:
            parts.append(f"<= {self.max_node_version}")
        if parts:
            self.package.add_engine("node", " ".join(parts))
