"""
Mock importer — test double for the import orchestrator.

A ``MockImporterFactory`` is registered in place of real importers. It
hands out one ``MockImporter`` per package and keeps the shared script:
which packages are already checked out, which ones fail (and how many
times), and an optional delay to make units overlap. It also records
every call and the peak number of concurrent calls.
"""

from __future__ import annotations

import threading
import time

from orchard.adapters.base import ImportContext, Importer
from orchard.core.errors import ImporterError
from orchard.core.models.import_result import VCSStatus
from orchard.core.models.package import PackageNode


class MockImporterFactory:
    """Shared configuration and call log for MockImporters."""

    def __init__(self, checked_out: set[str] | None = None, delay: float = 0.0):
        self.checked_out: set[str] = set(checked_out or ())
        self.delay = delay
        self._failures: dict[str, tuple[str, bool, int | None]] = {}
        self._lock = threading.Lock()
        self.calls: list[tuple[str, str]] = []      # (package, operation)
        self._active = 0
        self.max_concurrency = 0
        self.created: list[str] = []

    def __call__(self, package: PackageNode) -> MockImporter:
        with self._lock:
            self.created.append(package.name)
        return MockImporter(package, self)

    def set_failure(
        self,
        package: str,
        error: str = "Mock failure",
        retryable: bool = True,
        times: int | None = None,
    ) -> None:
        """Make ``package`` fail, always or only for its first ``times`` calls."""
        self._failures[package] = (error, retryable, times)

    def call_count(self, package: str | None = None, operation: str | None = None) -> int:
        with self._lock:
            return sum(
                1
                for pkg, op in self.calls
                if (package is None or pkg == package) and (operation is None or op == operation)
            )

    # ── Used by MockImporter ────────────────────────────────────

    def _enter(self, package: str, operation: str) -> None:
        with self._lock:
            self.calls.append((package, operation))
            self._active += 1
            self.max_concurrency = max(self.max_concurrency, self._active)

    def _leave(self) -> None:
        with self._lock:
            self._active -= 1

    def _maybe_fail(self, package: str) -> None:
        with self._lock:
            failure = self._failures.get(package)
            if failure is None:
                return
            error, retryable, times = failure
            if times is not None:
                if times <= 0:
                    return
                self._failures[package] = (error, retryable, times - 1)
        raise ImporterError(error, retryable=retryable)


class MockImporter(Importer):
    def __init__(self, package: PackageNode, factory: MockImporterFactory):
        super().__init__(package)
        self.factory = factory

    @property
    def name(self) -> str:
        return "mock"

    def is_available(self) -> bool:
        return True

    def is_checked_out(self) -> bool:
        return self.package.name in self.factory.checked_out

    def _run(self, operation: str, context: ImportContext) -> None:
        self.factory._enter(self.package.name, operation)
        try:
            if self.factory.delay:
                time.sleep(self.factory.delay)
            self.factory._maybe_fail(self.package.name)
        finally:
            self.factory._leave()

    def fetch(self, context: ImportContext) -> None:
        self._run("fetch", context)
        with self.factory._lock:
            self.factory.checked_out.add(self.package.name)

    def update(self, context: ImportContext) -> VCSStatus:
        self._run("update", context)
        return VCSStatus(status="up_to_date")

    def status(self, context: ImportContext) -> VCSStatus:
        self._run("status", context)
        if not self.is_checked_out():
            return VCSStatus(status="needs_checkout")
        return VCSStatus(status="up_to_date")

    def snapshot(self, context: ImportContext) -> dict[str, str]:
        self._run("snapshot", context)
        return {"type": "mock", "commit": f"{self.package.name}-head"}
