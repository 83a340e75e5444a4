"""Unit tests for the package.json component (projgen.npm_package).

Tests cover:
- Manifest field rendering, ordering and omission of empty fields
- Author, repository, license and entrypoint options
- The ordered field bag (add_field / add_version)
- Scripts from tasks in both execution modes
- Library-dependency restrictions and install commands
- Binary auto-detection
- Reconciliation with an existing package.json and post-synthesis install
"""

from __future__ import annotations

import json
import stat
from pathlib import Path

import pytest

from projgen.config import Config, ConfigurationError
from projgen.deps import ConflictError
from projgen.npm_package import NodePackageManager, NpmPackage
from projgen.project import Project
from projgen.tasks import TaskExecution


def _read_manifest(outdir: Path) -> dict:
    return json.loads((outdir / "package.json").read_text(encoding="utf-8"))


# ---------------------------------------------------------------------------
# Manifest fields
# ---------------------------------------------------------------------------


class TestManifestFields:
    @pytest.mark.unit
    def test_defaults(self, project: Project):
        package = NpmPackage(project, name="my-pkg")
        manifest = package.render_manifest()

        assert manifest == {
            "name": "my-pkg",
            "license": "Apache-2.0",
            "main": "lib/index.js",
        }
        assert project.try_find_file("LICENSE") is not None

    @pytest.mark.unit
    def test_field_order(self, project: Project):
        package = NpmPackage(
            project,
            name="my-pkg",
            description="demo",
            repository="https://github.com/acme/my-pkg",
            author_name="Acme",
            homepage="https://acme.dev",
            keywords=["b", "a"],
            deps=["left-pad"],
        )
        package.add_engine("node", ">= 14")

        assert list(package.render_manifest()) == [
            "name",
            "description",
            "repository",
            "author",
            "homepage",
            "dependencies",
            "keywords",
            "engines",
            "license",
            "main",
        ]

    @pytest.mark.unit
    def test_entrypoint_empty_omits_main(self, project: Project):
        package = NpmPackage(project, name="my-pkg", entrypoint="")
        assert "main" not in package.render_manifest()

    @pytest.mark.unit
    def test_unlicensed(self, project: Project):
        package = NpmPackage(project, name="my-pkg", licensed=False)
        assert package.render_manifest()["license"] == "UNLICENSED"
        assert project.try_find_file("LICENSE") is None

    @pytest.mark.unit
    def test_license_owner_defaults_to_author(self, project: Project):
        NpmPackage(project, name="my-pkg", license="MIT", author_name="Jane Doe",
                   copyright_period="2021")
        content = project.try_find_file("LICENSE").synthesize_content()
        assert "Copyright (c) 2021 Jane Doe" in content

    @pytest.mark.unit
    def test_author(self, project: Project):
        package = NpmPackage(
            project, name="my-pkg", author_name="Jane", author_email="jane@example.com"
        )
        assert package.render_manifest()["author"] == {
            "name": "Jane",
            "email": "jane@example.com",
            "organization": False,
        }

    @pytest.mark.unit
    def test_author_email_requires_name(self, project: Project):
        with pytest.raises(ConfigurationError):
            NpmPackage(project, name="my-pkg", author_email="jane@example.com")

    @pytest.mark.unit
    def test_repository_with_directory(self, project: Project):
        package = NpmPackage(
            project,
            name="my-pkg",
            repository="https://github.com/acme/mono",
            repository_directory="packages/my-pkg",
        )
        assert package.render_manifest()["repository"] == {
            "type": "git",
            "url": "https://github.com/acme/mono",
            "directory": "packages/my-pkg",
        }

    @pytest.mark.unit
    def test_keywords_deduped_and_sorted(self, project: Project):
        package = NpmPackage(project, name="my-pkg", keywords=["zeta", "alpha"])
        package.add_keywords("alpha", "mid")
        assert package.render_manifest()["keywords"] == ["alpha", "mid", "zeta"]


class TestFieldBag:
    @pytest.mark.unit
    def test_later_writes_win(self, project: Project):
        package = NpmPackage(project, name="my-pkg")
        package.add_field("private", True)
        package.add_field("private", False)
        assert package.render_manifest()["private"] is False

    @pytest.mark.unit
    def test_overrides_computed_field_in_place(self, project: Project):
        package = NpmPackage(project, name="my-pkg")
        package.add_field("license", "MIT")
        package.add_field("extra", {"a": 1})
        manifest = package.render_manifest()
        assert manifest["license"] == "MIT"
        assert list(manifest)[-1] == "extra"

    @pytest.mark.unit
    def test_none_removes_field(self, project: Project):
        package = NpmPackage(project, name="my-pkg")
        package.add_field("main", None)
        assert "main" not in package.render_manifest()

    @pytest.mark.unit
    def test_add_version(self, project: Project):
        package = NpmPackage(project, name="my-pkg")
        package.add_version("1.2.3")
        assert package.render_manifest()["version"] == "1.2.3"


# ---------------------------------------------------------------------------
# Scripts
# ---------------------------------------------------------------------------


class TestScripts:
    @pytest.mark.unit
    def test_options_scripts_become_tasks(self, project: Project):
        package = NpmPackage(project, name="my-pkg", scripts={"lint": "eslint ."})
        assert project.tasks.try_find("lint") is not None
        assert package.render_manifest()["scripts"] == {"lint": "npx projgen lint"}

    @pytest.mark.unit
    def test_explicit_scripts(self, project: Project):
        package = NpmPackage(project, name="my-pkg")
        package.set_script("start", "node .")
        assert package.has_script("start")
        assert package.render_manifest()["scripts"] == {"start": "node ."}
        package.remove_script("start")
        assert not package.has_script("start")
        assert "scripts" not in package.render_manifest()

    @pytest.mark.unit
    def test_direct_execution(self, project: Project):
        package = NpmPackage(project, name="my-pkg", npm_task_execution=TaskExecution.DIRECT)
        compile_task = project.add_task("compile", exec="tsc")
        build = project.add_task("build")
        build.spawn(compile_task)
        build.exec("jest")
        project.add_task("noop")

        assert package.render_manifest()["scripts"] == {
            "compile": "tsc",
            "build": "tsc && jest",
            "noop": 'echo "n/a"',
        }

    @pytest.mark.unit
    def test_task_overrides_explicit_script(self, project: Project):
        package = NpmPackage(project, name="my-pkg")
        package.set_script("build", "make")
        project.add_task("build")
        assert package.render_manifest()["scripts"] == {"build": "npx projgen build"}


# ---------------------------------------------------------------------------
# Dependencies & install
# ---------------------------------------------------------------------------


class TestDependencies:
    @pytest.mark.unit
    def test_options_deps(self, project: Project):
        package = NpmPackage(
            project,
            name="my-pkg",
            deps=["left-pad"],
            dev_deps=["test-lib@^3"],
            peer_deps=["react@^16"],
            bundled_deps=["tiny@^1"],
        )
        manifest = package.render_manifest()
        assert manifest["dependencies"] == {"left-pad": "*", "tiny": "^1"}
        assert manifest["devDependencies"] == {"react": "16.0.0", "test-lib": "^3"}
        assert manifest["peerDependencies"] == {"react": "^16"}
        assert manifest["bundledDependencies"] == ["tiny"]

    @pytest.mark.unit
    def test_peer_pinning_disabled(self, project: Project):
        package = NpmPackage(
            project,
            name="my-pkg",
            peer_deps=["react@^16"],
            peer_dependency_options={"pinned_dev_dependency": False},
        )
        assert "devDependencies" not in package.render_manifest()

    @pytest.mark.unit
    def test_role_conflict(self, project: Project):
        package = NpmPackage(project, name="my-pkg")
        package.add_peer_deps("baz")
        with pytest.raises(ConflictError):
            package.add_bundled_deps("baz")

    @pytest.mark.unit
    def test_library_dependencies_forbidden(self, project: Project):
        package = NpmPackage(project, name="my-app", allow_library_dependencies=False)
        with pytest.raises(ConfigurationError):
            package.add_peer_deps("react")
        with pytest.raises(ConfigurationError):
            package.add_bundled_deps("tiny")

    @pytest.mark.unit
    def test_install_command(self, project: Project):
        yarn = NpmPackage(project, name="a")
        assert yarn.install_command == "yarn install --check-files --frozen-lockfile"

    @pytest.mark.unit
    def test_npm_install_command(self, project: Project):
        npm = NpmPackage(project, name="a", package_manager=NodePackageManager.NPM)
        assert npm.install_command == "npm ci"


class TestBinaries:
    @pytest.mark.unit
    def test_auto_detect(self, tmp_outdir: Path, config: Config):
        bindir = tmp_outdir / "bin"
        bindir.mkdir()
        tool = bindir / "my-tool"
        tool.write_text("#!/usr/bin/env node\n")
        tool.chmod(tool.stat().st_mode | stat.S_IXUSR)
        notes = bindir / "README.md"
        notes.write_text("docs\n")
        notes.chmod(0o644)

        project = Project(name="p", outdir=str(tmp_outdir), config=config)
        package = NpmPackage(project, name="p")

        assert package.render_manifest()["bin"] == {"my-tool": "bin/my-tool"}

    @pytest.mark.unit
    def test_auto_detect_disabled(self, tmp_outdir: Path, config: Config):
        bindir = tmp_outdir / "bin"
        bindir.mkdir()
        tool = bindir / "my-tool"
        tool.write_text("#!/bin/sh\n")
        tool.chmod(0o755)

        project = Project(name="p", outdir=str(tmp_outdir), config=config)
        package = NpmPackage(project, name="p", auto_detect_bin=False, bin={"x": "lib/x.js"})

        assert package.render_manifest()["bin"] == {"x": "lib/x.js"}


# ---------------------------------------------------------------------------
# Synthesis
# ---------------------------------------------------------------------------


class TestPackageSynthesis:
    @pytest.mark.integration
    def test_package_json_written_writable(self, project: Project):
        NpmPackage(project, name="my-pkg", deps=["left-pad"])
        project.synth()

        path = project.outdir / "package.json"
        manifest = _read_manifest(project.outdir)
        assert list(manifest)[0] == "//"
        assert manifest["dependencies"] == {"left-pad": "*"}
        assert path.stat().st_mode & stat.S_IWUSR

    @pytest.mark.integration
    def test_previous_versions_kept(self, project: Project):
        (project.outdir / "package.json").write_text(
            json.dumps({"dependencies": {"foo": "^1.2.0", "gone": "^3.0.0"}})
        )
        NpmPackage(project, name="my-pkg", deps=["foo"])
        project.synth()

        assert _read_manifest(project.outdir)["dependencies"] == {"foo": "^1.2.0"}

    @pytest.mark.integration
    def test_resynthesis_is_byte_identical(self, tmp_outdir: Path, config: Config):
        def build() -> Project:
            project = Project(name="p", outdir=str(tmp_outdir), config=config)
            package = NpmPackage(project, name="p", deps=["zeta", "alpha"], peer_deps=["react@^16"])
            project.add_task("build", exec="tsc")
            package.add_keywords("x")
            return project

        build().synth()
        first = (tmp_outdir / "package.json").read_bytes()
        report = build().synth()

        assert (tmp_outdir / "package.json").read_bytes() == first
        assert "package.json" in report.unchanged

    @pytest.mark.integration
    def test_post_synthesis_installs_and_resolves(
        self, tmp_outdir: Path, mock_install, fake_resolver
    ):
        config = Config(show_summary=False, post_synthesis=True)
        project = Project(name="p", outdir=str(tmp_outdir), config=config)
        package = NpmPackage(project, name="p", deps=["left-pad", "express@^4"])
        package.resolver = fake_resolver

        project.synth()

        mock_install.assert_called_once_with(
            "yarn install --check-files", cwd=project.outdir
        )
        assert _read_manifest(tmp_outdir)["dependencies"] == {
            "express": "^4",
            "left-pad": "^1.3.0",
        }

    @pytest.mark.integration
    def test_ci_installs_frozen(self, tmp_outdir: Path, mock_install, make_resolver):
        config = Config(show_summary=False, post_synthesis=True, ci=True)
        project = Project(name="p", outdir=str(tmp_outdir), config=config)
        package = NpmPackage(project, name="p", package_manager="npm")
        package.resolver = make_resolver()

        project.synth()

        mock_install.assert_called_once_with("npm ci", cwd=project.outdir)
