"""
VCS operations over many packages — status and snapshot.

Same bounded pool as imports. Per-package failures are collected, never
raised: a status or snapshot run always reports on every package.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from orchard.adapters.base import ImportContext
from orchard.adapters.registry import ImporterRegistry
from orchard.core.engine.pool import run_bounded
from orchard.core.errors import ImportInterrupted
from orchard.core.models.import_result import ImportOptions, VCSStatus
from orchard.core.models.package import PackageNode

logger = logging.getLogger(__name__)


@dataclass
class VCSReport:
    """Per-package outcome of a status or snapshot run."""

    statuses: dict[str, VCSStatus] = field(default_factory=dict)
    snapshots: dict[str, dict[str, str]] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def all_ok(self) -> bool:
        return not self.errors

    def needing_update(self) -> list[str]:
        return sorted(name for name, s in self.statuses.items() if s.needs_update)

    def to_dict(self) -> dict[str, Any]:
        return {
            "statuses": {n: s.model_dump(mode="json") for n, s in sorted(self.statuses.items())},
            "snapshots": dict(sorted(self.snapshots.items())),
            "errors": dict(sorted(self.errors.items())),
        }


def _run(
    nodes: Iterable[PackageNode],
    importers: ImporterRegistry,
    options: ImportOptions,
    operation: str,
) -> VCSReport:
    report = VCSReport()

    def unit(node: PackageNode) -> tuple[str, Any]:
        try:
            importer = importers.create(node)
            context = ImportContext(package=node, options=options)
            if operation == "status":
                return "ok", importer.status(context)
            if not importer.is_checked_out():
                return "error", f"{node.name} is not checked out"
            return "ok", importer.snapshot(context)
        except Exception as e:
            return "error", str(e)

    def on_result(node: PackageNode, outcome: tuple[str, Any]) -> bool:
        kind, value = outcome
        if kind == "error":
            report.errors[node.name] = value
            logger.error("✗ %s: %s", node.name, value)
        elif operation == "status":
            report.statuses[node.name] = value
            logger.debug("%s: %s", node.name, value.status)
        else:
            report.snapshots[node.name] = value
        return False

    ordered = sorted(nodes, key=lambda n: n.name)
    if run_bounded(ordered, unit, options.parallelism, on_result, thread_name_prefix=f"orchard-{operation}"):
        raise ImportInterrupted(report)
    return report


def collect_status(
    nodes: Iterable[PackageNode],
    importers: ImporterRegistry,
    only_local: bool = False,
    parallelism: int = 1,
) -> VCSReport:
    """Status of every package against its remote."""
    options = ImportOptions(parallelism=parallelism, only_local=only_local)
    return _run(nodes, importers, options, "status")


def snapshot(
    nodes: Iterable[PackageNode],
    importers: ImporterRegistry,
    parallelism: int = 1,
) -> VCSReport:
    """Pinning information of every checked-out package."""
    options = ImportOptions(parallelism=parallelism, only_local=True)
    return _run(nodes, importers, options, "snapshot")
