"""
Import orchestrator — checkout and update of the selected source packages.

Packages are independent import units: importing one never needs another
one's sources, so every selected package goes straight to a bounded
worker pool, without topological ordering.

Flow per unit:
    fresh importer → is_checked_out → (skip if checkout_only)
    → fetch or update → immediate retries → ImportResult

Failure policy:
    keep_going=False  first failure stops submission, running units
                      drain, then PackageImportFailed is raised
    keep_going=True   everything runs, failures raised together at the end
    auto_exclude      failures become exclusions instead of errors
"""

from __future__ import annotations

import logging
import threading
import time

from orchard.adapters.base import ImportContext
from orchard.adapters.registry import ImporterRegistry
from orchard.core.engine.pool import run_bounded
from orchard.core.errors import ImporterError, ImportInterrupted, PackageImportFailed
from orchard.core.graph.dependency_graph import DependencyGraph, Exclusions
from orchard.core.graph.selection import SelectionEngine, os_packages_of
from orchard.core.models.import_result import ImportOptions, ImportReport, ImportResult
from orchard.core.models.package import PackageNode
from orchard.core.models.selection import PackageSelection
from orchard.core.reliability.retry import RetryState, call_with_retry

logger = logging.getLogger(__name__)


def auto_exclusion_reason(name: str, error: str | None) -> str:
    return f"{name} failed to import with {error} and auto_exclude was true"


class ImportOrchestrator:
    """Runs imports for a selection.

    Args:
        graph: source packages, read-only during the run.
        importers: creates one importer per package.
        exclusions: where auto-exclusions are recorded.
        selector: decides, for optional dependencies, between source
            packages and osdeps. Without it, optional dependencies that
            are source packages are imported and none are reported as
            osdeps.
    """

    def __init__(
        self,
        graph: DependencyGraph,
        importers: ImporterRegistry,
        exclusions: Exclusions | None = None,
        selector: SelectionEngine | None = None,
    ):
        self.graph = graph
        self.importers = importers
        self.exclusions = exclusions if exclusions is not None else Exclusions(graph)
        self.selector = selector
        self._cancel = threading.Event()

    def cancel(self) -> None:
        """Stop submitting new units. Running ones finish."""
        logger.info("import cancellation requested")
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def packages_for(self, selection: PackageSelection, options: ImportOptions) -> list[PackageNode]:
        """Source packages a run imports, sorted by name."""
        nodes = self.graph.closure(
            selection.source_names,
            self.exclusions,
            recursive=options.recursive,
            optional_sources=self.selector.optional_sources if self.selector is not None else None,
        )
        return sorted(nodes, key=lambda n: n.name)

    def run(self, selection: PackageSelection, options: ImportOptions | None = None) -> ImportReport:
        """Import every source package ``selection`` needs.

        Raises:
            PackageImportFailed: some packages failed (not raised under
                auto_exclude). Carries the full report.
            ImportInterrupted: cancel() or Ctrl-C. Carries the partial report.
        """
        options = options or ImportOptions()
        self._cancel.clear()
        nodes = self.packages_for(selection, options)
        report = ImportReport()
        logger.info("importing %d package(s) with %d worker(s)", len(nodes), options.parallelism)

        def on_result(node: PackageNode, result: ImportResult) -> bool:
            report.results[node.name] = result
            if result.ok:
                report.succeeded.append(node)
            else:
                report.failures.append(result)
            marker = "✓" if result.status in ("imported", "updated") else "✗" if result.failed else "⊘"
            logger.info("%s %s → %s", marker, node.name, result.status)
            if result.failed:
                logger.error("%s: %s", node.name, result.error)
            return result.failed and not options.keep_going and not options.auto_exclude

        interrupted = run_bounded(
            nodes,
            lambda node: self._import_one(node, options),
            options.parallelism,
            on_result,
            cancel_event=self._cancel,
            thread_name_prefix="orchard-import",
        )

        report.succeeded.sort(key=lambda n: n.name)
        if options.auto_exclude and report.failures:
            self._auto_exclude(report, {n.name for n in nodes})
        report.osdeps_needed = os_packages_of(
            report.succeeded,
            self.selector.optional_osdeps if self.selector is not None else None,
            selection.osdep_names,
            self.exclusions,
        )

        if interrupted:
            report.interrupted = True
            raise ImportInterrupted(report)
        if report.failures and not options.auto_exclude:
            raise PackageImportFailed(report.failures, report)
        return report

    def _auto_exclude(self, report: ImportReport, selected: set[str]) -> None:
        revdeps = self.graph.reverse_dependencies()
        for failure in report.failures:
            reason = auto_exclusion_reason(failure.package, failure.error)
            self.exclusions.exclude(failure.package, reason)
            report.excluded[failure.package] = reason
            logger.warning("excluding %s: %s", failure.package, reason)
            report.excluded.update(
                self.exclusions.mark_along_revdeps(failure.package, revdeps, restrict_to=selected)
            )
        report.succeeded = [n for n in report.succeeded if n.name not in report.excluded]

    def _import_one(self, node: PackageNode, options: ImportOptions) -> ImportResult:
        """Import one package. Runs in a worker thread, never raises Exception."""
        start = time.monotonic()
        state = RetryState.for_retry_count(node.name, options.retry_count)

        def elapsed() -> int:
            return int((time.monotonic() - start) * 1000)

        try:
            importer = self.importers.create(node)
            if importer.is_checked_out():
                if options.checkout_only:
                    return ImportResult.skip(node.name, "already checked out", duration_ms=elapsed(), attempts=0)
                operation = "update"
            else:
                operation = "fetch"

            def attempt(n: int):
                context = ImportContext(package=node, options=options, cancel_event=self._cancel, attempt=n)
                if operation == "update":
                    return importer.update(context)
                importer.fetch(context)
                return None

            vcs_status = call_with_retry(
                attempt,
                state,
                retryable=lambda e: isinstance(e, ImporterError) and e.retryable and not self._cancel.is_set(),
            )
        except Exception as e:
            return ImportResult.failure(
                node.name,
                str(e),
                retryable=isinstance(e, ImporterError) and e.retryable,
                attempts=max(state.attempt, 1),
                duration_ms=elapsed(),
            )

        return ImportResult.success(
            node.name,
            status="updated" if operation == "update" else "imported",
            attempts=state.attempt,
            vcs_status=vcs_status,
            duration_ms=elapsed(),
        )
