"""
Import options, results and reports — the import contract.

Options describe how a run behaves. Results describe what happened to
one package. The report is what the orchestrator hands back: successes,
failures and the OS packages still needed, never one without the others.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, Field, field_validator

from orchard.core.models.package import PackageNode

if TYPE_CHECKING:
    from orchard.core.config.loader import WorkspaceConfig


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


ResetMode = Literal["none", "soft", "force"]


class ImportOptions(BaseModel):
    """Knobs for one import run."""

    parallelism: int = Field(default_factory=lambda: os.cpu_count() or 1)
    checkout_only: bool = False     # leave already-present packages alone
    only_local: bool = False        # never touch the network
    reset: ResetMode = "none"
    retry_count: int = 0
    keep_going: bool = False
    auto_exclude: bool = False      # failures become exclusions
    recursive: bool = True          # import dependencies too

    @field_validator("parallelism")
    @classmethod
    def _check_parallelism(cls, v: int) -> int:
        if v < 1:
            raise ValueError("parallelism must be at least 1")
        return v

    @field_validator("retry_count")
    @classmethod
    def _check_retry_count(cls, v: int) -> int:
        if v < 0:
            raise ValueError("retry_count cannot be negative")
        return v

    @classmethod
    def from_config(cls, config: WorkspaceConfig, **overrides: Any) -> ImportOptions:
        """Defaults taken from the workspace configuration."""
        values: dict[str, Any] = {
            "parallelism": config.parallel_import_level,
            "retry_count": config.retry_count,
        }
        values.update(overrides)
        return cls(**values)


class VCSStatus(BaseModel):
    """Relationship between a checkout and its remote."""

    status: Literal["up_to_date", "ahead", "behind", "diverged", "needs_checkout"] = "up_to_date"
    local_commits: list[str] = Field(default_factory=list)
    remote_commits: list[str] = Field(default_factory=list)
    uncommitted: bool = False
    branch: str | None = None
    head: str | None = None

    @property
    def needs_update(self) -> bool:
        return self.status in ("behind", "needs_checkout")


class ImportResult(BaseModel):
    """Outcome of importing one package.

    Failures are data here. The orchestrator decides, from the whole set,
    whether they become an exception.
    """

    package: str
    status: Literal["imported", "updated", "skipped", "failed"] = "imported"

    started_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0
    attempts: int = 1

    error: str | None = None
    retryable: bool = False
    vcs_status: VCSStatus | None = None

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """Whether the package is usable afterwards."""
        return self.status != "failed"

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @classmethod
    def success(
        cls,
        package: str,
        status: Literal["imported", "updated"] = "imported",
        **kwargs: Any,
    ) -> ImportResult:
        return cls(package=package, status=status, **kwargs)

    @classmethod
    def failure(
        cls,
        package: str,
        error: str,
        retryable: bool = False,
        **kwargs: Any,
    ) -> ImportResult:
        return cls(package=package, status="failed", error=error, retryable=retryable, **kwargs)

    @classmethod
    def skip(cls, package: str, reason: str = "", **kwargs: Any) -> ImportResult:
        metadata = kwargs.pop("metadata", {})
        if reason:
            metadata["reason"] = reason
        return cls(package=package, status="skipped", metadata=metadata, **kwargs)


@dataclass
class ImportReport:
    """Everything an import run produced."""

    succeeded: list[PackageNode] = field(default_factory=list)
    osdeps_needed: set[str] = field(default_factory=set)
    failures: list[ImportResult] = field(default_factory=list)
    results: dict[str, ImportResult] = field(default_factory=dict)
    excluded: dict[str, str] = field(default_factory=dict)     # auto-exclusions
    interrupted: bool = False

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results.values() if r.status == "skipped")

    @property
    def all_ok(self) -> bool:
        return not self.failures

    @property
    def status(self) -> str:
        if not self.failures:
            return "ok"
        if self.succeeded:
            return "partial"
        return "failed"

    def succeeded_names(self) -> list[str]:
        return [pkg.name for pkg in self.succeeded]

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "total": self.total,
            "succeeded": self.succeeded_names(),
            "failed": [r.package for r in self.failures],
            "skipped": self.skipped,
            "osdeps_needed": sorted(self.osdeps_needed),
            "excluded": dict(self.excluded),
            "interrupted": self.interrupted,
            "results": [r.model_dump(mode="json") for r in self.results.values()],
        }
