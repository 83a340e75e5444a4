"""projgen run configuration.

Centralised, typed configuration for a synthesis run. Settings use Pydantic v2
models so they can be validated at construction time and serialised to/from
JSON or environment variables without boiler-plate.

The process environment is only consulted by :meth:`Config.from_env`; the
resulting ``Config`` is then passed explicitly to the project tree.
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, Field

from projgen.utils import ProjgenError, is_truthy


class ConfigurationError(ProjgenError):
    """Raised for invalid options, unsupported modes or missing collaborators."""


class Config(BaseModel):
    """Global projgen configuration for one ``synth()`` run.

    Instances are typically created once by the CLI entry point (or by the
    project's rc file) and handed to the root ``Project``, which shares it with
    every sub-project.
    """

    ci: bool = Field(
        default=False,
        description="Running under CI: package installs use the frozen lockfile",
    )
    verbose: bool = Field(default=False, description="Print verbose diagnostics")
    post_synthesis: bool = Field(
        default=True,
        description="Run post-synthesis side effects (package install, version resolution)",
    )
    show_summary: bool = Field(
        default=True, description="Print a summary table after synthesis"
    )
    metadata_dir: str = Field(
        default=".projgen",
        description="Directory (relative to each project outdir) for deps.json/tasks.json",
    )

    # ------------------------------------------------------------------
    # Derived paths
    # ------------------------------------------------------------------

    def metadata_path(self, outdir: str | Path = "") -> Path:
        """Root of the metadata directory inside *outdir* (relative when omitted)."""
        return Path(outdir) / self.metadata_dir

    def tasks_path(self, outdir: str | Path = "") -> Path:
        """Path to the persisted ``tasks.json`` inside *outdir*."""
        return self.metadata_path(outdir) / "tasks.json"

    def deps_path(self, outdir: str | Path = "") -> Path:
        """Path to the persisted ``deps.json`` inside *outdir*."""
        return self.metadata_path(outdir) / "deps.json"

    # ------------------------------------------------------------------
    # Serialisation helpers
    # ------------------------------------------------------------------

    def save(self, path: Path) -> Path:
        """Persist the configuration to a JSON file and return its path."""
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.model_dump_json(indent=2), encoding="utf-8")
        return target

    @classmethod
    def load(cls, path: Path) -> "Config":
        """Load a previously-saved configuration from JSON."""
        raw = Path(path).read_text(encoding="utf-8")
        return cls.model_validate_json(raw)

    @classmethod
    def from_env(cls) -> "Config":
        """Build a ``Config`` from environment variables.

        Recognised variables (all optional):
            CI, PROJGEN_VERBOSE, PROJGEN_DISABLE_POST, PROJGEN_NO_SUMMARY.
        """
        return cls(
            ci=is_truthy(os.environ.get("CI")),
            verbose=is_truthy(os.environ.get("PROJGEN_VERBOSE")),
            post_synthesis=not is_truthy(os.environ.get("PROJGEN_DISABLE_POST")),
            show_summary=not is_truthy(os.environ.get("PROJGEN_NO_SUMMARY")),
        )
