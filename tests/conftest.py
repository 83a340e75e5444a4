"""Shared pytest fixtures for the projgen test suite.

Provides reusable fixtures for:
- Temporary output directories
- A run configuration with summaries and post-synthesis disabled
- Plain and Node projects rooted in the temporary directory
- A fake installed-package resolver
- A mocked install command runner
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional
from unittest.mock import patch

import pytest

from projgen.config import Config
from projgen.node_project import NodeProject
from projgen.project import Project
from projgen.utils import set_verbose


# ---------------------------------------------------------------------------
# Global state
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_verbose():
    """Verbose output is process-wide; never leak it between tests."""
    set_verbose(False)
    yield
    set_verbose(False)


# ---------------------------------------------------------------------------
# Paths & configuration
# ---------------------------------------------------------------------------


@pytest.fixture
def tmp_outdir(tmp_path: Path) -> Path:
    """Temporary project output directory (auto-cleanup)."""
    outdir = tmp_path / "test-project"
    outdir.mkdir()
    yield outdir


@pytest.fixture
def config() -> Config:
    """Quiet configuration: no summary table and no package installation."""
    return Config(show_summary=False, post_synthesis=False)


@pytest.fixture
def project(tmp_outdir: Path, config: Config) -> Project:
    return Project(name="test-project", outdir=str(tmp_outdir), config=config)


@pytest.fixture
def node_project(tmp_outdir: Path, config: Config) -> NodeProject:
    return NodeProject(name="test-lib", outdir=str(tmp_outdir), config=config)


# ---------------------------------------------------------------------------
# Installed packages & commands
# ---------------------------------------------------------------------------


class FakeResolver:
    """Installed-package resolver backed by a plain mapping."""

    def __init__(self, versions: Optional[dict[str, str]] = None) -> None:
        self.versions = dict(versions or {})
        self.calls: list[str] = []

    def resolve(self, name: str) -> Optional[str]:
        self.calls.append(name)
        return self.versions.get(name)


@pytest.fixture
def fake_resolver() -> FakeResolver:
    return FakeResolver({"left-pad": "1.3.0", "express": "4.18.2"})


@pytest.fixture
def mock_install():
    """Patch the install command runner used by ``NpmPackage``."""
    with patch("projgen.npm_package.exec_command", return_value="") as mock:
        yield mock


def _write_installed_package(outdir: Path, name: str, version: str) -> Path:
    package_dir = outdir / "node_modules" / name
    package_dir.mkdir(parents=True, exist_ok=True)
    manifest = package_dir / "package.json"
    manifest.write_text(json.dumps({"name": name, "version": version}), encoding="utf-8")
    return manifest


@pytest.fixture
def make_resolver():
    """Factory for resolvers backed by a given mapping."""
    return FakeResolver


@pytest.fixture
def install_package():
    """Create ``node_modules/<name>/package.json`` under an output directory."""
    return _write_installed_package
