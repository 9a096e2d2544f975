"""
Error taxonomy — every exception the engine raises on purpose.

Resolution errors (config, not-found, missing osdep, recursive reference,
excluded selection) are raised synchronously by the resolver and the
selection engine. Import errors are collected per package and raised in
aggregate at the end of a run. Interrupts are never converted into
import failures.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from orchard.core.engine.vcs_ops import VCSReport
    from orchard.core.models.import_result import ImportReport, ImportResult


class OrchardError(Exception):
    """Base class for all orchard errors."""


class ConfigError(OrchardError):
    """Bad declarative input. Fatal, never retried."""

    def __init__(self, message: str = "", file: str | None = None):
        super().__init__(message)
        self.file = file


class PackageNotFound(ConfigError):
    """A name resolves to neither a source package nor an OS package."""


class PackageUnavailable(PackageNotFound):
    """A name is a known osdep, but it cannot be installed on this OS."""


class MissingOSDep(ConfigError):
    """An OS dependency has no resolvable package manager entry."""


class InvalidRecursiveReference(ConfigError):
    """An ``osdep`` indirection points nowhere, loops, or nests too deep."""


class ExcludedSelection(ConfigError):
    """A selection expands to a package that is excluded from the build."""

    def __init__(self, selection: str, message: str, excluded: dict[str, str] | None = None):
        super().__init__(message)
        self.selection = selection
        self.excluded = dict(excluded or {})


class InstallError(OrchardError):
    """A package manager could not install the requested OS packages."""

    def __init__(self, manager: str, packages: list[str], message: str):
        super().__init__(f"{manager}: failed to install {', '.join(packages)}: {message}")
        self.manager = manager
        self.packages = list(packages)


class ImporterError(OrchardError):
    """Raised by importers when a fetch/update/status call fails.

    ``retryable`` tells the orchestrator whether repeating the same call
    may succeed (network hiccup) or is pointless (bad URL, local commits
    that a soft reset refuses to discard).
    """

    def __init__(self, message: str, retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable


class ImportFailed(OrchardError):
    """Aggregate of one or more per-package import failures."""

    def __init__(self, failures: list[ImportResult], report: ImportReport | None = None):
        self.failures = list(failures)
        self.report = report
        names = ", ".join(f.package for f in self.failures)
        super().__init__(f"import failed for {len(self.failures)} package(s): {names}")


class PackageImportFailed(ImportFailed):
    """Import failure carrying the partial success set.

    ``source_packages`` and ``osdep_packages`` are what can still be built
    from the packages that did import.
    """

    @property
    def source_packages(self) -> list[str]:
        if self.report is None:
            return []
        return [pkg.name for pkg in self.report.succeeded]

    @property
    def osdep_packages(self) -> set[str]:
        if self.report is None:
            return set()
        return set(self.report.osdeps_needed)


class ImportInterrupted(KeyboardInterrupt):
    """User cancellation during an import, status or snapshot run.

    Raised after in-flight work drained. Carries the partial report so that
    already-completed work is not lost.
    """

    def __init__(self, report: ImportReport | VCSReport | None = None):
        super().__init__("import interrupted")
        self.report = report
