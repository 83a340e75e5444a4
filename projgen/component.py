"""The Component base class.

Every generated artifact is a ``Component`` owned by exactly one ``Project``.
Components participate in synthesis by overriding any of the three phase
hooks; the orchestrator in :mod:`projgen.project` calls them in a fixed order.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from projgen.project import Project


class Component:
    """A unit of generated project state with a three-phase lifecycle.

    The owning project is assigned at construction and cannot be changed.
    Hooks are no-ops by default:

    * ``pre_synthesize`` -- finalize derived state other components will read.
    * ``synthesize`` -- emit output through the emission boundary.
    * ``post_synthesize`` -- side effects that depend on emitted output.
    """

    def __init__(self, project: Project) -> None:
        self._project = project
        project._register_component(self)

    @property
    def project(self) -> Project:
        return self._project

    def pre_synthesize(self) -> None:
        """Called before synthesis."""

    def synthesize(self) -> None:
        """Synthesizes files to the project output directory."""

    def post_synthesize(self) -> None:
        """Called after synthesis. Order is determined by component order."""
