"""Bundled Jinja2 templates for text artifacts.

Templates live under ``projgen/templates/`` grouped by artifact kind, e.g.
``licenses/MIT.j2``. A template's *name* is its file stem inside a group.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape

_DEFAULT_TEMPLATE_DIR = Path(__file__).parent / "templates"
_SUFFIX = ".j2"


class TemplateRenderer:
    """Loads ``.j2`` templates from a directory and renders them.

    Rendering is strict: a variable missing from the context raises
    ``jinja2.UndefinedError`` instead of producing an empty string.
    """

    def __init__(self, template_dir: str | Path | None = None) -> None:
        self.template_dir = Path(template_dir or _DEFAULT_TEMPLATE_DIR)
        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=select_autoescape([]),
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
            undefined=StrictUndefined,
        )

    def render(self, template_path: str, context: dict[str, Any]) -> str:
        """Render *template_path* (relative to the template directory)."""
        return self.env.get_template(template_path).render(**context)

    def render_named(self, group: str, name: str, context: dict[str, Any]) -> str:
        """Render the template *name* of *group*, e.g. ``("licenses", "MIT")``."""
        return self.render(f"{group}/{name}{_SUFFIX}", context)

    def list_templates(self, prefix: str = "") -> list[str]:
        """Sorted template paths under *prefix*, relative to the template directory."""
        search_dir = self.template_dir / prefix if prefix else self.template_dir
        if not search_dir.is_dir():
            return []
        return sorted(
            p.relative_to(self.template_dir).as_posix()
            for p in search_dir.rglob(f"*{_SUFFIX}")
        )

    def names(self, group: str) -> list[str]:
        """Template names directly inside *group*."""
        return [
            path[len(group) + 1 : -len(_SUFFIX)]
            for path in self.list_templates(group)
            if "/" not in path[len(group) + 1 :]
        ]
