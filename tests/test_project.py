"""Unit tests for projects and the synthesis orchestrator (projgen.project).

Tests cover:
- Component registration and the read-only project back-reference
- Sub-project outdir resolution and conflicts
- Phase order across nested projects and the phase state machine
- Post-synthesis toggle, summary and verbose phase headers
- Idempotent re-synthesis and the SynthReport
- Stale generated file cleanup and exclusions
- Failure semantics (no rollback, phase left at the failing state)
"""

from __future__ import annotations

import stat
from pathlib import Path
from unittest.mock import patch

import pytest

from projgen.component import Component
from projgen.config import Config, ConfigurationError
from projgen.files import MARKER, TextFile
from projgen.project import Project, ProjectOptions, SynthPhase


class Recorder(Component):
    """Appends ``(hook, label, phase)`` to a shared log from every hook."""

    def __init__(self, project: Project, label: str, log: list) -> None:
        super().__init__(project)
        self.label = label
        self.log = log

    def pre_synthesize(self) -> None:
        self.log.append(("pre", self.label, self.project.phase))

    def synthesize(self) -> None:
        self.log.append(("synth", self.label, self.project.phase))

    def post_synthesize(self) -> None:
        self.log.append(("post", self.label, self.project.phase))


class Exploding(Component):
    def synthesize(self) -> None:
        raise RuntimeError("boom")


# ---------------------------------------------------------------------------
# Tree structure
# ---------------------------------------------------------------------------


class TestProjectTree:
    @pytest.mark.unit
    def test_options_from_kwargs(self, tmp_outdir: Path, config: Config):
        project = Project(name="p", outdir=str(tmp_outdir), config=config)
        assert project.name == "p"
        assert project.outdir == tmp_outdir.resolve()
        assert project.projgen_command == "projgen"

    @pytest.mark.unit
    def test_options_object_with_override(self, tmp_outdir: Path, config: Config):
        options = ProjectOptions(name="p", outdir=str(tmp_outdir))
        project = Project(options, config=config, name="renamed")
        assert project.name == "renamed"

    @pytest.mark.unit
    def test_standard_components(self, project: Project):
        paths = [f.path for f in project.files]
        assert paths == [".projgen/tasks.json", ".projgen/deps.json", ".gitignore"]
        assert project.components[0] is project.tasks

    @pytest.mark.unit
    def test_component_project_is_read_only(self, project: Project):
        component = Component(project)
        assert component.project is project
        with pytest.raises(AttributeError):
            component.project = project  # type: ignore[misc]

    @pytest.mark.unit
    def test_duplicate_file_path_rejected(self, project: Project):
        TextFile(project, "README.md")
        with pytest.raises(ConfigurationError):
            TextFile(project, "README.md")

    @pytest.mark.unit
    def test_try_find_file(self, project: Project):
        readme = TextFile(project, "README.md")
        assert project.try_find_file("README.md") is readme
        assert project.try_find_file("missing.txt") is None

    @pytest.mark.unit
    def test_gitignore_option(self, tmp_outdir: Path, config: Config):
        project = Project(name="p", outdir=str(tmp_outdir), config=config, gitignore=["dist/"])
        assert project.gitignore.patterns == ["dist/"]


class TestSubprojects:
    @pytest.mark.unit
    def test_outdir_relative_to_parent(self, project: Project):
        child = Project(name="child", outdir="packages/child", parent=project)
        assert child.outdir == project.outdir / "packages" / "child"
        assert child.parent is project
        assert child.root is project
        assert project.subprojects == [child]

    @pytest.mark.unit
    def test_config_shared_with_parent(self, project: Project):
        child = Project(name="child", outdir="child", parent=project)
        assert child.config is project.config

    @pytest.mark.unit
    def test_all_projects_depth_first(self, project: Project):
        a = Project(name="a", outdir="a", parent=project)
        a1 = Project(name="a1", outdir="a1", parent=a)
        b = Project(name="b", outdir="b", parent=project)
        assert project.all_projects == [project, a, a1, b]

    @pytest.mark.unit
    def test_outdir_required(self, project: Project):
        with pytest.raises(ConfigurationError):
            Project(name="child", parent=project)

    @pytest.mark.unit
    def test_outdir_equal_to_parent_rejected(self, project: Project):
        with pytest.raises(ConfigurationError):
            Project(name="child", outdir=".", parent=project)

    @pytest.mark.unit
    def test_duplicate_outdir_rejected(self, project: Project):
        Project(name="one", outdir="pkg", parent=project)
        with pytest.raises(ConfigurationError):
            Project(name="two", outdir="pkg", parent=project)

    @pytest.mark.unit
    def test_synth_on_subproject_rejected(self, project: Project):
        child = Project(name="child", outdir="child", parent=project)
        with pytest.raises(ConfigurationError):
            child.synth()


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------


class TestSynthOrder:
    @pytest.mark.unit
    def test_phase_order_across_nested_projects(self, tmp_outdir: Path):
        config = Config(show_summary=False, post_synthesis=True)
        root = Project(name="root", outdir=str(tmp_outdir), config=config)
        log: list = []
        Recorder(root, "root-1", log)
        child = Project(name="child", outdir="child", parent=root)
        Recorder(child, "child-1", log)
        Recorder(root, "root-2", log)
        grandchild = Project(name="gc", outdir="gc", parent=child)
        Recorder(grandchild, "gc-1", log)

        root.synth()

        order = ["root-1", "root-2", "child-1", "gc-1"]
        assert [(hook, label) for hook, label, _ in log] == (
            [("pre", label) for label in order]
            + [("synth", label) for label in order]
            + [("post", label) for label in order]
        )

    @pytest.mark.unit
    def test_phase_state_visible_to_hooks(self, tmp_outdir: Path):
        config = Config(show_summary=False, post_synthesis=True)
        root = Project(name="root", outdir=str(tmp_outdir), config=config)
        child = Project(name="child", outdir="child", parent=root)
        log: list = []
        Recorder(child, "c", log)

        assert root.phase is SynthPhase.IDLE
        root.synth()

        assert [phase for _, _, phase in log] == [
            SynthPhase.PRE_SYNTHESIZING,
            SynthPhase.SYNTHESIZING,
            SynthPhase.POST_SYNTHESIZING,
        ]
        assert root.phase is SynthPhase.DONE
        assert child.phase is SynthPhase.DONE

    @pytest.mark.unit
    def test_post_synthesis_disabled(self, project: Project):
        log: list = []
        Recorder(project, "r", log)
        project.synth()
        assert [hook for hook, _, _ in log] == ["pre", "synth"]
        assert project.phase is SynthPhase.DONE

    @pytest.mark.unit
    def test_failure_propagates_and_keeps_phase(self, project: Project):
        TextFile(project, "before.txt", ["written"])
        Exploding(project)
        TextFile(project, "after.txt", ["never"])

        with pytest.raises(RuntimeError, match="boom"):
            project.synth()

        assert project.phase is SynthPhase.SYNTHESIZING
        assert (project.outdir / "before.txt").exists()
        assert not (project.outdir / "after.txt").exists()

    @pytest.mark.unit
    def test_verbose_prints_phase_headers(self, tmp_outdir: Path):
        config = Config(show_summary=False, post_synthesis=True, verbose=True)
        project = Project(name="p", outdir=str(tmp_outdir), config=config)
        with patch("projgen.project.print_phase_header") as header:
            project.synth()
        assert [c.args for c in header.call_args_list] == [
            (1, "pre-synthesize"),
            (2, "synthesize"),
            (3, "post-synthesize"),
        ]

    @pytest.mark.unit
    def test_quiet_run_prints_no_headers(self, project: Project):
        with patch("projgen.project.print_phase_header") as header:
            project.synth()
        header.assert_not_called()

    @pytest.mark.unit
    def test_summary_table(self, tmp_outdir: Path):
        config = Config(show_summary=True, post_synthesis=False)
        project = Project(name="p", outdir=str(tmp_outdir), config=config)
        with patch("projgen.project.print_summary_table") as table, \
                patch("projgen.project.print_success"):
            project.synth()
        data = table.call_args.args[0]
        assert data["Project"] == "p"
        assert data["Files written"] == "1"


# ---------------------------------------------------------------------------
# Emission & idempotence
# ---------------------------------------------------------------------------


class TestSynthOutput:
    @pytest.mark.integration
    def test_report_and_idempotence(self, project: Project):
        project.add_task("build", exec="make")
        project.add_git_ignore("dist/")
        TextFile(project, "notes.txt", ["hello"])

        first = project.synth()
        snapshot = {
            p: p.read_bytes() for p in project.outdir.rglob("*") if p.is_file()
        }
        second = project.synth()

        assert first.written == [".gitignore", ".projgen/tasks.json", "notes.txt"]
        assert second.written == []
        assert second.unchanged == first.written
        assert second.removed == []
        assert {p: p.read_bytes() for p in snapshot} == snapshot

    @pytest.mark.integration
    def test_readonly_emission(self, project: Project):
        TextFile(project, "locked.txt", ["x"])
        TextFile(project, "open.txt", ["y"], readonly=False)
        project.synth()

        locked = (project.outdir / "locked.txt").stat().st_mode
        opened = (project.outdir / "open.txt").stat().st_mode
        assert not locked & stat.S_IWUSR
        assert opened & stat.S_IWUSR

    @pytest.mark.integration
    def test_readonly_file_rewritten_on_change(self, tmp_outdir: Path, config: Config):
        first = Project(name="p", outdir=str(tmp_outdir), config=config)
        TextFile(first, "locked.txt", ["v1"])
        first.synth()

        second = Project(name="p", outdir=str(tmp_outdir), config=config)
        TextFile(second, "locked.txt", ["v2"])
        report = second.synth()

        assert (tmp_outdir / "locked.txt").read_text() == "v2\n"
        assert "locked.txt" in report.written

    @pytest.mark.integration
    def test_subproject_files_in_own_outdir(self, project: Project):
        child = Project(name="child", outdir="packages/child", parent=project)
        child.add_task("hello", exec="echo hello")
        report = project.synth()

        assert (project.outdir / "packages" / "child" / ".projgen" / "tasks.json").exists()
        assert "packages/child/.gitignore" in report.written


class TestCleanup:
    @pytest.mark.integration
    def test_stale_generated_file_removed(self, tmp_outdir: Path, config: Config):
        first = Project(name="p", outdir=str(tmp_outdir), config=config)
        TextFile(first, "old.txt", ["content"], marker=True)
        first.synth()
        assert (tmp_outdir / "old.txt").exists()

        second = Project(name="p", outdir=str(tmp_outdir), config=config)
        report = second.synth()

        assert not (tmp_outdir / "old.txt").exists()
        assert report.removed == ["old.txt"]

    @pytest.mark.integration
    def test_stale_tasks_json_removed(self, tmp_outdir: Path, config: Config):
        first = Project(name="p", outdir=str(tmp_outdir), config=config)
        first.add_task("t", exec="true")
        first.synth()

        Project(name="p", outdir=str(tmp_outdir), config=config).synth()
        assert not (tmp_outdir / ".projgen" / "tasks.json").exists()

    @pytest.mark.integration
    def test_user_files_kept(self, project: Project):
        (project.outdir / "src").mkdir()
        (project.outdir / "src" / "index.js").write_text("console.log(1)\n")
        project.synth()
        assert (project.outdir / "src" / "index.js").exists()

    @pytest.mark.integration
    def test_symlink_to_outside_file_kept(self, tmp_path: Path, project: Project):
        target = tmp_path / "elsewhere.txt"
        target.write_text(f"# {MARKER}\n")
        link = project.outdir / "link.txt"
        link.symlink_to(target)

        report = project.synth()

        assert link.is_symlink()
        assert target.read_text() == f"# {MARKER}\n"
        assert report.removed == []

    @pytest.mark.integration
    def test_symlink_inside_outdir_kept(self, project: Project):
        stale = project.outdir / "stale.txt"
        stale.write_text(f"# {MARKER}\n")
        link = project.outdir / "alias.txt"
        link.symlink_to(stale)

        report = project.synth()

        assert report.removed == ["stale.txt"]
        assert link.is_symlink()

    @pytest.mark.integration
    def test_exclusions_respected(self, project: Project):
        (project.outdir / "keep").mkdir()
        kept = project.outdir / "keep" / "generated.txt"
        kept.write_text(f"# {MARKER}\n")
        project.add_exclude_from_cleanup("keep/*")

        report = project.synth()

        assert kept.exists()
        assert report.removed == []

    @pytest.mark.integration
    def test_node_modules_ignored(self, project: Project):
        vendored = project.outdir / "node_modules" / "pkg" / "file.txt"
        vendored.parent.mkdir(parents=True)
        vendored.write_text(f"# {MARKER}\n")
        project.synth()
        assert vendored.exists()

    @pytest.mark.integration
    def test_subproject_outputs_not_removed_by_parent(self, project: Project):
        child = Project(name="child", outdir="child", parent=project)
        TextFile(child, "gen.txt", ["x"], marker=True)
        project.synth()
        assert (project.outdir / "child" / "gen.txt").exists()

    @pytest.mark.integration
    def test_cleanup_skipped_when_synthesis_fails(self, project: Project):
        stale = project.outdir / "stale.txt"
        stale.write_text(f"# {MARKER}\n")
        Exploding(project)

        with pytest.raises(RuntimeError):
            project.synth()
        assert stale.exists()
