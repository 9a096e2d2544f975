"""
Importer base — the contract between the import orchestrator and VCS tools.

The orchestrator only talks to version control through this interface,
never directly to git or any other binary. One importer instance is
created per package per run and is never shared between workers.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from orchard.core.models.import_result import ImportOptions, VCSStatus
from orchard.core.models.package import PackageNode, VCSDefinition


class ImportContext(BaseModel):
    """Everything an importer needs for one call.

    ``cancel_event`` is shared by every unit of a run. Importers may poll
    ``cancelled`` between steps to give up early.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    package: PackageNode
    options: ImportOptions = Field(default_factory=ImportOptions)
    cancel_event: threading.Event = Field(default_factory=threading.Event)
    attempt: int = 1

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    @property
    def working_dir(self) -> Path:
        """Directory the package is checked out into."""
        return Path(self.package.effective_importdir)


class Importer(ABC):
    """Abstract base class for VCS importers.

    Importers raise ``ImporterError`` on failure, with ``retryable`` set
    when repeating the call may help. The orchestrator turns those into
    failed results.

    To create a new importer:
        1. Subclass Importer
        2. Implement name, is_available, is_checked_out, fetch, update,
           status, snapshot
        3. Register a factory in the ImporterRegistry under the VCS type
    """

    def __init__(self, package: PackageNode):
        self.package = package
        self.vcs: VCSDefinition = package.vcs

    @property
    @abstractmethod
    def name(self) -> str:
        """The VCS type this importer handles (e.g. 'git', 'local')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the underlying tool exists. Should be fast and never raise."""

    @property
    def importdir(self) -> Path:
        return Path(self.package.effective_importdir)

    @abstractmethod
    def is_checked_out(self) -> bool:
        """Whether the package's sources are already present."""

    @abstractmethod
    def fetch(self, context: ImportContext) -> None:
        """Create the initial checkout."""

    @abstractmethod
    def update(self, context: ImportContext) -> VCSStatus:
        """Bring an existing checkout up to date.

        Returns:
            The status the checkout was in before the update.
        """

    @abstractmethod
    def status(self, context: ImportContext) -> VCSStatus:
        """Compare the checkout with its remote.

        With ``context.options.only_local``, no network access is made and
        the last known state of the remote is used.
        """

    @abstractmethod
    def snapshot(self, context: ImportContext) -> dict[str, str]:
        """VCS-specific pinning information (commit, tag, branch...)."""

    def relocate(self, vcs: VCSDefinition) -> None:
        """Point the importer, and the checkout if any, at a new source."""
        self.vcs = vcs

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r} package={self.package.name!r}>"
