"""GitHub Actions workflow files."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any, Optional

from projgen.files import YamlFile

if TYPE_CHECKING:
    from projgen.project import Project


def _slugify(text: str) -> str:
    """Convert text to a filename-safe slug (hyphenated)."""
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower().strip())
    return slug.strip("-")


class GithubWorkflow(YamlFile):
    """A workflow under ``.github/workflows/<name>.yml``.

    Triggers and jobs are accumulated with :meth:`on` and :meth:`add_jobs`;
    the job bodies are emitted as given.
    """

    def __init__(self, project: Project, name: str) -> None:
        super().__init__(project, f".github/workflows/{_slugify(name)}.yml")
        self.name = name
        self._events: dict[str, Any] = {}
        self._jobs: dict[str, Any] = {}

    def on(self, **events: Any) -> None:
        """Add trigger events, e.g. ``on(pull_request={})``."""
        self._events.update(events)

    def add_jobs(self, jobs: dict[str, Any]) -> None:
        for job_id, job in jobs.items():
            self._jobs[job_id] = job

    @property
    def jobs(self) -> dict[str, Any]:
        return dict(self._jobs)

    def synthesize_content(self) -> Optional[str]:
        self.obj = {
            "name": self.name,
            "on": dict(self._events),
            "jobs": dict(self._jobs),
        }
        return super().synthesize_content()
