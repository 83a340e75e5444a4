"""projgen -- declarative project scaffolding.

Build a tree of components describing a project's generated files, then call
``synth()`` once to write them out.

Quick usage (``.projgenrc.py``)::

    from projgen import NodeProject

    project = NodeProject(name="my-lib", min_node_version="14.0.0")
    project.add_deps("left-pad")
    project.add_peer_deps("react@^16")
    project.synth()
"""

__version__ = "0.1.0"

from projgen.component import Component
from projgen.config import Config, ConfigurationError
from projgen.deps import (
    ConflictError,
    Dependencies,
    Dependency,
    DependencyNotFoundError,
    DependencyType,
    ResolutionError,
    ResolvedDependencies,
)
from projgen.files import FileBase, JsonFile, TextFile, YamlFile
from projgen.github import GithubWorkflow
from projgen.ignore_file import IgnoreFile
from projgen.license import License
from projgen.node_project import NodeProject, NodeProjectOptions
from projgen.npm_package import NodePackageManager, NpmPackage, NpmPackageOptions
from projgen.project import Project, ProjectOptions, SynthPhase, SynthReport
from projgen.tasks import (
    CycleError,
    DuplicateTaskError,
    Task,
    TaskCategory,
    TaskExecution,
    TaskFailedError,
    TaskRuntime,
    Tasks,
)
from projgen.utils import CommandError, ProjgenError

__all__ = [
    "CommandError",
    "Component",
    "Config",
    "ConfigurationError",
    "ConflictError",
    "CycleError",
    "Dependencies",
    "Dependency",
    "DependencyNotFoundError",
    "DependencyType",
    "DuplicateTaskError",
    "FileBase",
    "GithubWorkflow",
    "IgnoreFile",
    "JsonFile",
    "License",
    "NodePackageManager",
    "NodeProject",
    "NodeProjectOptions",
    "NpmPackage",
    "NpmPackageOptions",
    "Project",
    "ProjectOptions",
    "ProjgenError",
    "ResolutionError",
    "ResolvedDependencies",
    "SynthPhase",
    "SynthReport",
    "Task",
    "TaskCategory",
    "TaskExecution",
    "TaskFailedError",
    "TaskRuntime",
    "Tasks",
    "TextFile",
    "YamlFile",
    "__version__",
]
