"""
Local importer — packages whose sources already live in the workspace.

Handles the ``none`` and ``local`` VCS types. There is nothing to fetch:
the source directory either exists or the package cannot be imported.
"""

from __future__ import annotations

from orchard.adapters.base import ImportContext, Importer
from orchard.core.errors import ImporterError
from orchard.core.models.import_result import VCSStatus


class LocalImporter(Importer):
    @property
    def name(self) -> str:
        return self.vcs.type if self.vcs.type in ("none", "local") else "local"

    def is_available(self) -> bool:
        return True

    def is_checked_out(self) -> bool:
        return self.importdir.is_dir()

    def fetch(self, context: ImportContext) -> None:
        if not self.is_checked_out():
            raise ImporterError(
                f"{self.package.name}: source directory {self.importdir} does not exist",
                retryable=False,
            )

    def update(self, context: ImportContext) -> VCSStatus:
        return self.status(context)

    def status(self, context: ImportContext) -> VCSStatus:
        if not self.is_checked_out():
            return VCSStatus(status="needs_checkout")
        return VCSStatus(status="up_to_date")

    def snapshot(self, context: ImportContext) -> dict[str, str]:
        return {"type": self.vcs.type}
