"""The LICENSE file component."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from projgen.config import ConfigurationError
from projgen.files import FileBase
from projgen.templates import TemplateRenderer

if TYPE_CHECKING:
    from projgen.project import Project


_LICENSE_PREFIX = "licenses"


def supported_licenses(renderer: TemplateRenderer | None = None) -> list[str]:
    """Return the SPDX identifiers that have a bundled license template."""
    return (renderer or TemplateRenderer()).names(_LICENSE_PREFIX)


class License(FileBase):
    """Renders ``LICENSE`` for an SPDX identifier from a bundled template."""

    def __init__(
        self,
        project: Project,
        spdx: str,
        *,
        copyright_owner: Optional[str] = None,
        copyright_period: Optional[str] = None,
    ) -> None:
        super().__init__(project, "LICENSE", readonly=True, marker=False)
        self.renderer = TemplateRenderer()
        if spdx not in supported_licenses(self.renderer):
            raise ConfigurationError(f"unsupported license: {spdx}")
        self.spdx = spdx
        self.copyright_owner = copyright_owner or ""
        self.copyright_period = copyright_period or str(datetime.now(timezone.utc).year)

    def synthesize_content(self) -> Optional[str]:
        return self.renderer.render_named(
            _LICENSE_PREFIX,
            self.spdx,
            {
                "copyright_owner": self.copyright_owner,
                "copyright_period": self.copyright_period,
            },
        )
