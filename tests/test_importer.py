"""
Tests for the import orchestrator, the bounded pool and VCS status runs.
"""

import threading

import pytest

from conftest import make_resolver, node
from orchard.adapters.mock import MockImporterFactory
from orchard.adapters.registry import ImporterRegistry
from orchard.core.engine.importer import ImportOrchestrator
from orchard.core.engine.pool import run_bounded
from orchard.core.engine.vcs_ops import collect_status, snapshot
from orchard.core.errors import ImportInterrupted, PackageImportFailed
from orchard.core.graph.dependency_graph import DependencyGraph, Exclusions
from orchard.core.graph.selection import SelectionEngine
from orchard.core.models.import_result import ImportOptions
from orchard.core.models.selection import PackageSelection


@pytest.fixture
def graph():
    return DependencyGraph([
        node("a", osdeps=["os-a"]),
        node("b", osdeps=["os-b"]),
        node("c", osdeps=["os-c"]),
    ])


@pytest.fixture
def factory():
    return MockImporterFactory()


@pytest.fixture
def orchestrator(graph, factory):
    return ImportOrchestrator(graph, ImporterRegistry(mock_factory=factory))


def _select(*names):
    return PackageSelection.from_names(names)


# ── Pool Tests ─────────────────────────────────────────────────────


class TestRunBounded:
    def test_all_results_on_calling_thread(self):
        seen = []
        caller = threading.current_thread()

        def on_result(item, result):
            assert threading.current_thread() is caller
            seen.append((item, result))
            return False

        interrupted = run_bounded(range(5), lambda i: i * 2, 3, on_result)
        assert not interrupted
        assert sorted(seen) == [(0, 0), (1, 2), (2, 4), (3, 6), (4, 8)]

    def test_stop_leaves_rest_unscheduled(self):
        started = []

        def func(i):
            started.append(i)
            return i

        run_bounded(range(10), func, 1, lambda item, result: item == 2)
        assert started == [0, 1, 2]

    def test_cancel_event(self):
        cancel = threading.Event()

        def on_result(item, result):
            cancel.set()
            return False

        assert run_bounded(range(4), lambda i: i, 1, on_result, cancel_event=cancel)

    def test_ctrl_c_drains_running_units(self):
        release = threading.Event()
        cancel = threading.Event()
        seen = []

        def func(i):
            if i == 1:
                assert release.wait(5)
            return i

        def on_result(item, result):
            seen.append(item)
            if item == 0:
                release.set()
                raise KeyboardInterrupt
            return False

        assert run_bounded(range(4), func, 2, on_result, cancel_event=cancel)
        assert seen == [0, 1]
        assert cancel.is_set()


# ── Import Run Tests ───────────────────────────────────────────────


class TestImportRun:
    def test_fresh_checkout(self, orchestrator, factory):
        report = orchestrator.run(_select("a", "b", "c"), ImportOptions(parallelism=2))
        assert report.succeeded_names() == ["a", "b", "c"]
        assert report.osdeps_needed == {"os-a", "os-b", "os-c"}
        assert all(r.status == "imported" for r in report.results.values())
        assert factory.call_count(operation="fetch") == 3
        assert report.status == "ok"

    def test_parallelism_bound(self, graph):
        factory = MockImporterFactory(delay=0.05)
        orchestrator = ImportOrchestrator(graph, ImporterRegistry(mock_factory=factory))
        orchestrator.run(_select("a", "b", "c"), ImportOptions(parallelism=2))
        assert 1 <= factory.max_concurrency <= 2

    def test_existing_checkout_is_updated(self, graph):
        factory = MockImporterFactory(checked_out={"a"})
        orchestrator = ImportOrchestrator(graph, ImporterRegistry(mock_factory=factory))
        report = orchestrator.run(_select("a", "b"), ImportOptions(parallelism=1))
        assert report.results["a"].status == "updated"
        assert report.results["a"].vcs_status.status == "up_to_date"
        assert report.results["b"].status == "imported"

    def test_checkout_only_skips_existing(self, graph):
        factory = MockImporterFactory(checked_out={"a"})
        orchestrator = ImportOrchestrator(graph, ImporterRegistry(mock_factory=factory))
        report = orchestrator.run(_select("a", "b"), ImportOptions(parallelism=1, checkout_only=True))
        assert report.results["a"].status == "skipped"
        assert report.results["a"].attempts == 0
        assert factory.call_count("a") == 0
        assert report.succeeded_names() == ["a", "b"]
        assert report.skipped == 1

    def test_dependencies_imported(self, factory):
        graph = DependencyGraph([node("app", deps=["lib"]), node("lib")])
        orchestrator = ImportOrchestrator(graph, ImporterRegistry(mock_factory=factory))
        report = orchestrator.run(_select("app"), ImportOptions(parallelism=1))
        assert report.succeeded_names() == ["app", "lib"]

    def test_non_recursive(self, factory):
        graph = DependencyGraph([node("app", deps=["lib"]), node("lib")])
        orchestrator = ImportOrchestrator(graph, ImporterRegistry(mock_factory=factory))
        report = orchestrator.run(_select("app"), ImportOptions(parallelism=1, recursive=False))
        assert report.succeeded_names() == ["app"]

    def test_optional_osdeps_of_succeeded(self, factory):
        graph = DependencyGraph([node("a", optional=["zlib"]), node("zlib")])
        selector = SelectionEngine(graph, make_resolver({"zlib": {"test": "libz-dev"}}))
        orchestrator = ImportOrchestrator(graph, ImporterRegistry(mock_factory=factory), selector=selector)
        report = orchestrator.run(_select("a"), ImportOptions(parallelism=1))
        assert report.succeeded_names() == ["a"]
        assert report.osdeps_needed == {"zlib"}
        assert factory.created == ["a"]

    def test_optional_source_imported_when_osdep_unavailable(self, factory):
        graph = DependencyGraph([node("a", optional=["zlib"]), node("zlib")])
        selector = SelectionEngine(graph, make_resolver({"zlib": {"otheros": "libz-dev"}}))
        orchestrator = ImportOrchestrator(graph, ImporterRegistry(mock_factory=factory), selector=selector)
        report = orchestrator.run(_select("a"), ImportOptions(parallelism=1))
        assert report.succeeded_names() == ["a", "zlib"]
        assert report.osdeps_needed == set()

    def test_selected_osdeps_reported(self, orchestrator):
        selection = PackageSelection.from_names(["a"], ["cmake"])
        report = orchestrator.run(selection, ImportOptions(parallelism=1))
        assert report.osdeps_needed == {"os-a", "cmake"}


# ── Failure Policy Tests ───────────────────────────────────────────


class TestFailures:
    def test_keep_going_reports_partial_success(self, orchestrator, factory):
        factory.set_failure("b", "connection refused")
        with pytest.raises(PackageImportFailed) as exc:
            orchestrator.run(_select("a", "b", "c"), ImportOptions(parallelism=2, keep_going=True))
        err = exc.value
        assert [f.package for f in err.failures] == ["b"]
        assert err.source_packages == ["a", "c"]
        assert err.osdep_packages == {"os-a", "os-c"}
        assert err.report.status == "partial"
        assert str(err) == "import failed for 1 package(s): b"

    def test_stop_on_first_failure(self, orchestrator, factory):
        factory.set_failure("b")
        with pytest.raises(PackageImportFailed) as exc:
            orchestrator.run(_select("a", "b", "c"), ImportOptions(parallelism=1))
        assert exc.value.source_packages == ["a"]
        assert factory.call_count("c") == 0
        assert "c" not in exc.value.report.results

    def test_retry_until_success(self, orchestrator, factory):
        factory.set_failure("a", times=2)
        report = orchestrator.run(_select("a"), ImportOptions(parallelism=1, retry_count=2))
        assert report.results["a"].status == "imported"
        assert report.results["a"].attempts == 3
        assert factory.call_count("a", "fetch") == 3

    def test_retries_exhausted(self, orchestrator, factory):
        factory.set_failure("a", times=5)
        with pytest.raises(PackageImportFailed) as exc:
            orchestrator.run(_select("a"), ImportOptions(parallelism=1, retry_count=1))
        failure = exc.value.failures[0]
        assert failure.attempts == 2
        assert failure.retryable

    def test_non_retryable_not_retried(self, orchestrator, factory):
        factory.set_failure("a", "bad url", retryable=False)
        with pytest.raises(PackageImportFailed):
            orchestrator.run(_select("a"), ImportOptions(parallelism=1, retry_count=3))
        assert factory.call_count("a") == 1

    def test_unknown_vcs_type_is_a_failure(self, graph):
        orchestrator = ImportOrchestrator(graph, ImporterRegistry())
        with pytest.raises(PackageImportFailed) as exc:
            orchestrator.run(_select("a"), ImportOptions(parallelism=1))
        assert "no importer registered" in exc.value.failures[0].error


# ── Auto-exclusion Tests ───────────────────────────────────────────


class TestAutoExclude:
    def test_failures_become_exclusions(self, factory):
        graph = DependencyGraph([node("app", deps=["lib"], osdeps=["os-app"]), node("lib"), node("other")])
        exclusions = Exclusions(graph)
        orchestrator = ImportOrchestrator(graph, ImporterRegistry(mock_factory=factory), exclusions)
        factory.set_failure("lib")

        report = orchestrator.run(_select("app", "other"), ImportOptions(parallelism=1, auto_exclude=True))

        assert report.succeeded_names() == ["other"]
        assert report.excluded["lib"] == "lib failed to import with Mock failure and auto_exclude was true"
        assert report.excluded["app"].startswith("its dependency lib is excluded")
        assert exclusions.is_excluded("lib")
        assert exclusions.is_excluded("app")
        assert report.osdeps_needed == set()


# ── Cancellation Tests ─────────────────────────────────────────────


class _CancellingFactory(MockImporterFactory):
    """Cancels the run while the first package imports."""

    orchestrator = None

    def __call__(self, package):
        if package.name == "a":
            self.orchestrator.cancel()
        return super().__call__(package)


class _InterruptingFactory(MockImporterFactory):
    """Raises KeyboardInterrupt when asked for an importer for b."""

    def __call__(self, package):
        if package.name == "b":
            raise KeyboardInterrupt
        return super().__call__(package)


class TestCancel:
    def test_cancel_keeps_completed_results(self, graph):
        factory = _CancellingFactory()
        orchestrator = ImportOrchestrator(graph, ImporterRegistry(mock_factory=factory))
        factory.orchestrator = orchestrator

        with pytest.raises(ImportInterrupted) as exc:
            orchestrator.run(_select("a", "b", "c"), ImportOptions(parallelism=1))
        report = exc.value.report
        assert report.interrupted
        assert report.succeeded_names() == ["a"]
        assert factory.created == ["a"]
        assert orchestrator.cancelled

    def test_ctrl_c_keeps_running_and_completed_units(self, graph):
        factory = _InterruptingFactory(delay=0.1)
        orchestrator = ImportOrchestrator(graph, ImporterRegistry(mock_factory=factory))

        with pytest.raises(ImportInterrupted) as exc:
            orchestrator.run(_select("a", "b", "c"), ImportOptions(parallelism=2))
        report = exc.value.report
        assert report.interrupted
        assert report.succeeded_names() == ["a"]
        assert report.results["a"].status == "imported"
        assert "c" not in factory.created
        assert orchestrator.cancelled

    def test_interrupt_is_a_keyboard_interrupt(self):
        assert issubclass(ImportInterrupted, KeyboardInterrupt)


# ── Status and Snapshot Tests ──────────────────────────────────────


class TestVCSOps:
    def test_status(self, graph):
        factory = MockImporterFactory(checked_out={"a"})
        report = collect_status(graph, ImporterRegistry(mock_factory=factory), parallelism=2)
        assert report.statuses["a"].status == "up_to_date"
        assert report.needing_update() == ["b", "c"]
        assert report.all_ok

    def test_status_error_collected(self, graph):
        factory = MockImporterFactory()
        factory.set_failure("b", "unreachable")
        report = collect_status(graph, ImporterRegistry(mock_factory=factory))
        assert report.errors == {"b": "unreachable"}
        assert set(report.statuses) == {"a", "c"}

    def test_snapshot(self, graph):
        factory = MockImporterFactory(checked_out={"a", "b"})
        report = snapshot(graph, ImporterRegistry(mock_factory=factory))
        assert report.snapshots["a"] == {"type": "mock", "commit": "a-head"}
        assert report.errors == {"c": "c is not checked out"}
        assert report.to_dict()["errors"] == {"c": "c is not checked out"}

    def test_interrupted_status_run_keeps_partial_report(self, graph):
        factory = _InterruptingFactory(checked_out={"a"})
        with pytest.raises(ImportInterrupted) as exc:
            collect_status(graph, ImporterRegistry(mock_factory=factory))
        assert exc.value.report.statuses["a"].status == "up_to_date"
        assert "c" not in exc.value.report.statuses
