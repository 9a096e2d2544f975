"""
Package model — a source package node in the dependency graph.

Nodes are created by the manifest loader before resolution starts and are
treated as read-only afterwards. The installation fields (type, vcs,
directories) are what importers and the installation manifest need.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class VCSDefinition(BaseModel):
    """Where a package's sources come from.

    ``type`` selects the importer (``git``, ``local``, ``none``, ...).
    Importer-specific keys not modelled here end up in ``options``.
    """

    type: str = "none"
    url: str = ""
    branch: str | None = None
    tag: str | None = None
    commit: str | None = None
    options: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_local(self) -> bool:
        """Whether there is nothing to fetch (sources live in the workspace)."""
        return self.type in ("none", "local")

    def to_raw(self) -> dict[str, Any]:
        """Compact dict form, as written in manifests."""
        raw: dict[str, Any] = {"type": self.type}
        if self.url:
            raw["url"] = self.url
        for key in ("branch", "tag", "commit"):
            value = getattr(self, key)
            if value:
                raw[key] = value
        raw.update(self.options)
        return raw

    @classmethod
    def from_raw(cls, raw: dict[str, Any]) -> VCSDefinition:
        known = {"type", "url", "branch", "tag", "commit"}
        return cls(
            **{k: v for k, v in raw.items() if k in known},
            options={k: v for k, v in raw.items() if k not in known},
        )


class PackageNode(BaseModel):
    """A source package and its declared dependencies."""

    model_config = ConfigDict(frozen=True)

    name: str
    dependencies: tuple[str, ...] = ()              # ordered, strong
    optional_dependencies: frozenset[str] = frozenset()
    os_dependencies: frozenset[str] = frozenset()

    # ── Installation ─────────────────────────────────────────────
    type: str = ""                  # build system kind, informational
    vcs: VCSDefinition = Field(default_factory=VCSDefinition)
    srcdir: str = ""
    importdir: str = ""
    prefix: str = ""
    builddir: str = ""
    logdir: str = ""
    package_set: str = ""           # package set that declared it

    @property
    def effective_importdir(self) -> str:
        """Directory the importer checks out into."""
        return self.importdir or self.srcdir

    def all_dependencies(self) -> list[str]:
        """Strong then optional dependencies, each once."""
        ordered = list(self.dependencies)
        ordered.extend(sorted(d for d in self.optional_dependencies if d not in ordered))
        return ordered
