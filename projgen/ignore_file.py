"""Ignore files (``.gitignore``, ``.npmignore``)."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Optional

from projgen.files import MARKER, FileBase

if TYPE_CHECKING:
    from projgen.project import Project


class IgnoreFile(FileBase):
    """An ignore file made of ordered, de-duplicated patterns.

    ``exclude`` adds a pattern and ``include`` adds its ``!`` negation. Adding
    one cancels an earlier occurrence of the other for the same path, so the
    last call wins; ``exclude("!x")`` is the same as ``include("x")``. Lines
    starting with ``#`` are kept verbatim as comments.
    """

    def __init__(self, project: Project, file_path: str | Path) -> None:
        super().__init__(project, file_path, readonly=True, marker=True)
        self._patterns: list[str] = []

    @property
    def patterns(self) -> list[str]:
        return list(self._patterns)

    def exclude(self, *patterns: str) -> None:
        for pattern in patterns:
            if pattern.startswith("#"):
                self._patterns.append(pattern)
                continue
            if pattern.startswith("!"):
                self.include(pattern)
                continue
            self._remove(f"!{pattern}")
            self._add(pattern)

    def include(self, *patterns: str) -> None:
        for pattern in patterns:
            negated = pattern if pattern.startswith("!") else f"!{pattern}"
            self._remove(negated[1:])
            self._add(negated)

    def _add(self, pattern: str) -> None:
        if pattern not in self._patterns:
            self._patterns.append(pattern)

    def _remove(self, pattern: str) -> None:
        if pattern in self._patterns:
            self._patterns.remove(pattern)

    def synthesize_content(self) -> Optional[str]:
        lines = [f"# {MARKER}", *self._patterns]
        return "\n".join(lines) + "\n"
