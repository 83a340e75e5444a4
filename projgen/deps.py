"""The dependency ledger.

Keeps the set of package dependencies declared by a project, keyed by
``(name, type)``, and turns it into a role-partitioned snapshot that the
manifest writer serialises. Rendering reconciles wildcard declarations with
the versions recorded in a previously generated manifest; after an install
step, :meth:`Dependencies.resolve_installed` pins the remaining wildcards to
the versions actually found on disk.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field

from projgen.component import Component
from projgen.files import JsonFile
from projgen.semver import ResolutionError, min_version
from projgen.utils import ProjgenError, load_json, log_verbose, log_warning

if TYPE_CHECKING:
    from projgen.project import Project

__all__ = [
    "ConflictError",
    "Dependencies",
    "Dependency",
    "DependencyNotFoundError",
    "DependencyType",
    "InstalledPackageResolver",
    "NodeModulesResolver",
    "ResolutionError",
    "ResolvedDependencies",
    "parse_dependency",
]

WILDCARD = "*"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConflictError(ProjgenError):
    """Raised when one package is declared under mutually exclusive roles."""


class DependencyNotFoundError(ProjgenError, KeyError):
    """Raised when a dependency lookup finds no entry."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class DependencyType(str, Enum):
    """The declared purpose of a dependency."""
    RUNTIME = "runtime"
    BUILD = "build"
    PEER = "peer"
    BUNDLED = "bundled"
    TEST = "test"
    DEVENV = "devenv"


class Dependency(BaseModel):
    """A single declared dependency. ``version`` is ``None`` when unpinned."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Package name, e.g. 'express' or '@scope/pkg'")
    version: Optional[str] = Field(default=None, description="Version range, e.g. '^2'")
    type: DependencyType = Field(..., description="Dependency role")


class ResolvedDependencies(BaseModel):
    """Role-partitioned snapshot of the ledger, sorted by package name."""

    model_config = ConfigDict(frozen=True)

    dependencies: dict[str, str] = Field(default_factory=dict)
    dev_dependencies: dict[str, str] = Field(default_factory=dict)
    peer_dependencies: dict[str, str] = Field(default_factory=dict)
    bundled_dependencies: list[str] = Field(default_factory=list)
    removed: list[str] = Field(
        default_factory=list,
        description="Names recorded in the previous manifest that are no longer declared",
    )

    def to_manifest(self) -> dict[str, Any]:
        """Return the ``package.json`` sections for this snapshot."""
        return {
            "devDependencies": dict(self.dev_dependencies),
            "peerDependencies": dict(self.peer_dependencies),
            "dependencies": dict(self.dependencies),
            "bundledDependencies": list(self.bundled_dependencies),
        }


def parse_dependency(spec: str) -> tuple[str, Optional[str]]:
    """Split ``<name>@<range>`` into its name and optional range.

    Only the last ``@`` that is not the first character separates the two, so
    scoped names such as ``@types/node`` are never mis-split.

    Examples::

        parse_dependency("express")           -> ("express", None)
        parse_dependency("express@^4")        -> ("express", "^4")
        parse_dependency("@types/node@^16")   -> ("@types/node", "^16")
    """
    spec = spec.strip()
    index = spec.rfind("@")
    if index <= 0:
        return spec, None
    name, version = spec[:index], spec[index + 1 :]
    return name, version or None


# ---------------------------------------------------------------------------
# Installed package lookup
# ---------------------------------------------------------------------------


class InstalledPackageResolver(Protocol):
    """Looks up the version of an installed package.

    Implementations return ``None`` (or raise ``LookupError``) when the
    package cannot be found.
    """

    def resolve(self, name: str) -> Optional[str]: ...


class NodeModulesResolver:
    """Reads ``node_modules/<name>/package.json`` from *outdir* or any parent."""

    def __init__(self, outdir: str | Path) -> None:
        self.outdir = Path(outdir)

    def resolve(self, name: str) -> Optional[str]:
        for directory in (self.outdir, *self.outdir.parents):
            manifest = directory / "node_modules" / name / "package.json"
            if not manifest.is_file():
                continue
            try:
                version = load_json(manifest).get("version")
            except (OSError, ValueError):
                return None
            return version if isinstance(version, str) and version else None
        return None


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------

_EXCLUSIVE = {
    DependencyType.BUNDLED: DependencyType.PEER,
    DependencyType.PEER: DependencyType.BUNDLED,
}

_PREVIOUS_SECTIONS = (
    ("dependencies", "dependencies"),
    ("dev_dependencies", "devDependencies"),
    ("peer_dependencies", "peerDependencies"),
)


class Dependencies(Component):
    """The project's dependency ledger.

    Entries are unique per ``(name, type)`` and kept in insertion order. The
    ledger is persisted to ``<metadata_dir>/deps.json`` during synthesis.
    """

    def __init__(self, project: Project) -> None:
        super().__init__(project)
        self._deps: dict[tuple[str, DependencyType], Dependency] = {}
        self._file = JsonFile(
            project,
            project.config.deps_path(),
            omit_empty=True,
        )

    # -- Declaration -------------------------------------------------------

    def add_dependency(self, spec: str, type: DependencyType | str) -> Dependency:
        """Declare a dependency from a ``name[@range]`` spec.

        Re-declaring the same name and type replaces the entry in place; a
        declaration without a range keeps the range declared earlier.

        Raises:
            ConflictError: If the name is already declared as PEER and
                BUNDLED is requested, or vice versa.
        """
        dep_type = DependencyType(type)
        name, version = parse_dependency(spec)

        exclusive = _EXCLUSIVE.get(dep_type)
        if exclusive is not None and (name, exclusive) in self._deps:
            raise ConflictError(
                f'unable to declare "{name}" as a {dep_type.value} dependency: '
                f"it is already a {exclusive.value} dependency"
            )

        existing = self._deps.get((name, dep_type))
        if version is None and existing is not None:
            version = existing.version

        dep = Dependency(name=name, version=version, type=dep_type)
        self._deps[(name, dep_type)] = dep
        return dep

    def remove_dependency(self, name: str, type: DependencyType | str | None = None) -> None:
        """Remove a dependency. Without *type*, every role for *name* is removed."""
        if type is not None:
            self._deps.pop((name, DependencyType(type)), None)
            return
        for key in [key for key in self._deps if key[0] == name]:
            del self._deps[key]

    def try_get_dependency(
        self, name: str, type: DependencyType | str | None = None
    ) -> Optional[Dependency]:
        if type is not None:
            return self._deps.get((name, DependencyType(type)))
        matches = [dep for (dep_name, _), dep in self._deps.items() if dep_name == name]
        if len(matches) > 1:
            roles = ", ".join(dep.type.value for dep in matches)
            raise DependencyNotFoundError(
                f'"{name}" is declared with several types ({roles}); specify a type'
            )
        return matches[0] if matches else None

    def get_dependency(self, name: str, type: DependencyType | str | None = None) -> Dependency:
        dep = self.try_get_dependency(name, type)
        if dep is None:
            suffix = f" of type {DependencyType(type).value}" if type is not None else ""
            raise DependencyNotFoundError(f'there is no dependency "{name}"{suffix}')
        return dep

    @property
    def all(self) -> list[Dependency]:
        """All declared dependencies in insertion order."""
        return list(self._deps.values())

    # -- Rendering ---------------------------------------------------------

    def render(
        self,
        peer_pinning: bool = True,
        previous: Optional[dict[str, Any]] = None,
    ) -> ResolvedDependencies:
        """Produce the resolved-dependency snapshot.

        Args:
            peer_pinning: Add a dev dependency pinned to the minimum version
                of every peer dependency's range.
            previous: A previously generated manifest (``package.json``
                content). Wildcard declarations keep the concrete versions it
                records.

        Raises:
            ResolutionError: If a peer range has no resolvable minimum.
            ConflictError: If a name is both PEER and BUNDLED.
        """
        dependencies: dict[str, str] = {}
        dev_dependencies: dict[str, str] = {}
        peer_dependencies: dict[str, str] = {}
        bundled: list[str] = []

        for dep in self.all:
            version = dep.version or WILDCARD

            if dep.type is DependencyType.BUNDLED:
                if (dep.name, DependencyType.PEER) in self._deps:
                    raise ConflictError(
                        f'unable to bundle "{dep.name}": it cannot appear as a peer dependency'
                    )
                bundled.append(dep.name)
                dependencies[dep.name] = version
            elif dep.type is DependencyType.PEER:
                peer_dependencies[dep.name] = version
            elif dep.type is DependencyType.RUNTIME:
                dependencies[dep.name] = version
            else:
                dev_dependencies[dep.name] = version

        # test against the lowest version consumers are allowed to bring
        if peer_pinning:
            for dep in self.all:
                if dep.type is not DependencyType.PEER:
                    continue
                if dep.version is None:
                    dev_dependencies[dep.name] = WILDCARD
                    continue
                try:
                    dev_dependencies[dep.name] = min_version(dep.version)
                except ResolutionError as exc:
                    raise ResolutionError(
                        f"unable to determine minimum semver for peer dependency "
                        f"{dep.name}@{dep.version}: {exc}"
                    ) from exc

        sections = {
            "dependencies": dependencies,
            "dev_dependencies": dev_dependencies,
            "peer_dependencies": peer_dependencies,
        }

        removed: list[str] = []
        if previous is not None:
            for attr, key in _PREVIOUS_SECTIONS:
                removed.extend(_reconcile(sections[attr], previous.get(key) or {}))

        return ResolvedDependencies(
            dependencies=_sorted(dependencies),
            dev_dependencies=_sorted(dev_dependencies),
            peer_dependencies=_sorted(peer_dependencies),
            bundled_dependencies=sorted(bundled),
            removed=sorted(set(removed)),
        )

    def resolve_installed(
        self,
        outdir: str | Path,
        snapshot: ResolvedDependencies,
        resolver: Optional[InstalledPackageResolver] = None,
    ) -> ResolvedDependencies:
        """Pin wildcard versions to ``^<installed version>``.

        Must run after packages have been installed into *outdir*. A package
        whose installed version cannot be found keeps its wildcard and a
        warning is printed.
        """
        resolver = resolver or NodeModulesResolver(outdir)
        return snapshot.model_copy(
            update={
                "dependencies": _resolve_section(snapshot.dependencies, resolver),
                "dev_dependencies": _resolve_section(snapshot.dev_dependencies, resolver),
                "peer_dependencies": _resolve_section(snapshot.peer_dependencies, resolver),
            }
        )

    # -- Persistence -------------------------------------------------------

    def render_manifest(self) -> dict[str, Any]:
        """Return the ``deps.json`` content, sorted by name then type."""
        ordered = sorted(self.all, key=lambda d: (d.name, d.type.value))
        return {
            "dependencies": [
                dep.model_dump(mode="json", exclude_none=True) for dep in ordered
            ]
        }

    def synthesize(self) -> None:
        self._file.obj = self.render_manifest() if self._deps else None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _sorted(section: dict[str, str]) -> dict[str, str]:
    return dict(sorted(section.items()))


def _reconcile(section: dict[str, str], previous: dict[str, str]) -> list[str]:
    """Keep previously recorded concrete versions for wildcard entries.

    Returns the names recorded in *previous* that are absent from *section*.
    """
    for name, version in section.items():
        current = previous.get(name)
        if version != WILDCARD or not current or current == WILDCARD:
            continue
        section[name] = current

    removed = []
    for name in previous:
        if name not in section:
            log_verbose(f"{name}: removed")
            removed.append(name)
    return removed


def _resolve_section(
    section: dict[str, str], resolver: InstalledPackageResolver
) -> dict[str, str]:
    result: dict[str, str] = {}
    for name, current in section.items():
        desired = current
        if current == WILDCARD:
            try:
                installed = resolver.resolve(name)
            except LookupError:
                installed = None
            if installed:
                desired = f"^{installed}"
            else:
                log_warning(f"unable to resolve version for {name} from installed modules")

        if desired != current:
            log_verbose(f"{name}: {current} => {desired}")
        result[name] = desired
    return _sorted(result)
