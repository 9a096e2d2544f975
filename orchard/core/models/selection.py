"""
PackageSelection — what the user asked for, and why each name is in it.

A selection is built once per invocation through ``SelectionBuilder`` and
is immutable afterwards. ``selection_reason`` records, for every selected
name, the user-provided strings ("origin tokens") that pulled it in, so
diagnostics can say which token selected what.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field


@dataclass(frozen=True)
class PackageSelection:
    """Resolved source and OS package names for one invocation."""

    source_names: frozenset[str] = frozenset()
    osdep_names: frozenset[str] = frozenset()
    selection_reason: Mapping[str, frozenset[str]] = field(default_factory=dict)
    matches: Mapping[str, frozenset[str]] = field(default_factory=dict)
    weak: frozenset[str] = frozenset()
    # Names dropped from weak selections, keyed by origin token
    exclusions: Mapping[str, frozenset[str]] = field(default_factory=dict)
    ignores: Mapping[str, frozenset[str]] = field(default_factory=dict)

    def __contains__(self, name: object) -> bool:
        return name in self.selection_reason

    @property
    def empty(self) -> bool:
        return not self.selection_reason

    def has_match_for(self, token: str) -> bool:
        return token in self.matches

    def reasons_for(self, name: str) -> frozenset[str]:
        """Origin tokens that caused ``name`` to be selected."""
        return self.selection_reason.get(name, frozenset())

    @classmethod
    def from_names(
        cls,
        source_names: Iterable[str] = (),
        osdep_names: Iterable[str] = (),
    ) -> PackageSelection:
        """Selection where every name selects itself."""
        builder = SelectionBuilder()
        for name in source_names:
            builder.select(name, [name])
        for name in osdep_names:
            builder.select(name, [name], osdep=True)
        return builder.build()


class SelectionBuilder:
    """Mutable accumulator for a PackageSelection."""

    def __init__(self) -> None:
        self._source: set[str] = set()
        self._osdeps: set[str] = set()
        self._reason: dict[str, set[str]] = {}
        self._matches: dict[str, set[str]] = {}
        self._weak: set[str] = set()
        self._exclusions: dict[str, set[str]] = {}
        self._ignores: dict[str, set[str]] = {}

    def select(self, token: str, names: Iterable[str], *, weak: bool = False, osdep: bool = False) -> None:
        names = set(names)
        self._matches.setdefault(token, set()).update(names)
        for name in names:
            self._reason.setdefault(name, set()).add(token)
        if osdep:
            self._osdeps.update(names)
        else:
            self._source.update(names)
        if weak:
            self._weak.add(token)
        else:
            self._weak.discard(token)

    def has_match_for(self, token: str) -> bool:
        return token in self._matches

    def is_weak(self, token: str) -> bool:
        return token in self._weak

    def matches(self) -> dict[str, set[str]]:
        return {token: set(names) for token, names in self._matches.items()}

    def drop(self, token: str, name: str, *, excluded: bool) -> None:
        """Remove ``name`` from everything, remembering why for ``token``."""
        target = self._exclusions if excluded else self._ignores
        target.setdefault(token, set()).add(name)
        self._source.discard(name)
        self._osdeps.discard(name)
        self._reason.pop(name, None)
        for names in self._matches.values():
            names.discard(name)

    def build(self) -> PackageSelection:
        matches = {t: frozenset(n) for t, n in self._matches.items() if n}
        return PackageSelection(
            source_names=frozenset(self._source),
            osdep_names=frozenset(self._osdeps),
            selection_reason={n: frozenset(t) for n, t in self._reason.items()},
            matches=matches,
            weak=frozenset(t for t in self._weak if t in matches),
            exclusions={t: frozenset(n) for t, n in self._exclusions.items()},
            ignores={t: frozenset(n) for t, n in self._ignores.items()},
        )
