"""Generated file components.

``FileBase`` is the "write this file" side of the emission boundary: a
component that renders its content during the ``synthesize`` phase and hands
it to :func:`projgen.utils.write_file`, which leaves byte-identical files
untouched. Concrete variants serialise JSON, YAML or plain text lines.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

import yaml

from projgen.component import Component
from projgen.utils import write_file

if TYPE_CHECKING:
    from projgen.project import Project


MARKER = '~~ Generated by projgen. To modify, edit .projgenrc.py and run "npx projgen".'


class _NoAliasDumper(yaml.SafeDumper):
    """Writes repeated objects in full instead of as anchors and aliases."""

    def ignore_aliases(self, data: Any) -> bool:
        return True


class FileBase(Component):
    """Base class for components that emit a single file.

    Args:
        project: The owning project.
        file_path: Path relative to the project's ``outdir``.
        readonly: Make the file read-only after writing it.
        marker: Stamp the file with :data:`MARKER` so stale copies can be
            cleaned up and readers know not to edit it by hand.
    """

    def __init__(
        self,
        project: Project,
        file_path: str | Path,
        *,
        readonly: bool = True,
        marker: bool = True,
    ) -> None:
        super().__init__(project)
        self.path = Path(file_path).as_posix()
        self.readonly = readonly
        self.marker = marker
        project._register_file(self)

    @property
    def absolute_path(self) -> Path:
        return self.project.outdir / self.path

    def synthesize_content(self) -> Optional[str]:
        """Return the file content, or ``None`` to emit no file."""
        raise NotImplementedError

    def synthesize(self) -> None:
        content = self.synthesize_content()
        if content is None:
            return
        changed = write_file(self.absolute_path, content, readonly=self.readonly)
        self.project._record_emission(self.absolute_path, changed)


class JsonFile(FileBase):
    """A JSON file built from a plain mapping.

    ``obj`` may be replaced or mutated at any time before synthesis. The
    marker, when enabled, is stored under the ``"//"`` key.
    """

    def __init__(
        self,
        project: Project,
        file_path: str | Path,
        obj: Optional[dict[str, Any]] = None,
        *,
        readonly: bool = True,
        marker: bool = True,
        omit_empty: bool = False,
    ) -> None:
        super().__init__(project, file_path, readonly=readonly, marker=marker)
        self.obj = obj
        self.omit_empty = omit_empty

    def synthesize_content(self) -> Optional[str]:
        if self.obj is None or (self.omit_empty and not self.obj):
            return None
        data = dict(self.obj)
        if self.marker:
            data = {"//": MARKER, **data}
        return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


class YamlFile(FileBase):
    """A YAML file built from a plain mapping. Key order is preserved."""

    def __init__(
        self,
        project: Project,
        file_path: str | Path,
        obj: Optional[dict[str, Any]] = None,
        *,
        readonly: bool = True,
        marker: bool = True,
    ) -> None:
        super().__init__(project, file_path, readonly=readonly, marker=marker)
        self.obj = obj

    def synthesize_content(self) -> Optional[str]:
        if self.obj is None:
            return None
        body = yaml.dump(
            self.obj,
            Dumper=_NoAliasDumper,
            sort_keys=False,
            default_flow_style=False,
            width=1000,
        )
        if self.marker:
            return f"# {MARKER}\n\n{body}"
        return body


class TextFile(FileBase):
    """A plain text file assembled from lines."""

    def __init__(
        self,
        project: Project,
        file_path: str | Path,
        lines: Optional[list[str]] = None,
        *,
        readonly: bool = True,
        marker: bool = False,
    ) -> None:
        super().__init__(project, file_path, readonly=readonly, marker=marker)
        self._lines: list[str] = list(lines or [])

    def add_line(self, line: str) -> None:
        self._lines.append(line)

    def synthesize_content(self) -> Optional[str]:
        lines = list(self._lines)
        if self.marker:
            lines.insert(0, f"# {MARKER}")
        return "\n".join(lines) + "\n"
