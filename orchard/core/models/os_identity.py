"""
OS identity — which operating system the resolver is targeting.

An explicit value passed into every resolution call. Names and versions
are ordered most-specific-first, e.g. ``(["ubuntu", "debian"],
["22.04", "jammy", "default"])``.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class OSIdentity(BaseModel):
    """Operating system names and versions, most specific first."""

    model_config = ConfigDict(frozen=True)

    names: tuple[str, ...] = Field(default_factory=tuple)
    versions: tuple[str, ...] = Field(default_factory=tuple)

    @property
    def known(self) -> bool:
        """Whether the workspace could determine its own OS at all."""
        return bool(self.names)

    def normalized(self) -> OSIdentity:
        """Lowercase everything and make sure 'default' closes the versions."""
        names = tuple(n.lower() for n in self.names)
        versions = tuple(v.lower() for v in self.versions)
        if "default" not in versions:
            versions = (*versions, "default")
        return OSIdentity(names=names, versions=versions)

    @classmethod
    def unknown(cls) -> OSIdentity:
        return cls()

    @classmethod
    def parse(cls, value: str) -> OSIdentity:
        """Parse the ``names:versions`` form (comma-separated lists).

        An empty string means "unknown OS".
        """
        if not value.strip():
            return cls.unknown()
        names, _, versions = value.partition(":")
        return cls(
            names=tuple(n.strip() for n in names.split(",") if n.strip()),
            versions=tuple(v.strip() for v in versions.split(",") if v.strip()),
        ).normalized()

    def __str__(self) -> str:
        if not self.known:
            return "unknown"
        return f"{','.join(self.names)}:{','.join(self.versions)}"
