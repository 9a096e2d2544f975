"""
OS package resolver — abstract osdep names to concrete package manager entries.

Resolution is a pure function of (definitions, OS identity, known package
managers). Nothing here touches the system; installing is the job of
``orchard.core.osdeps.installer``.

A definition is searched along two key levels, OS names then OS versions,
most specific first. Only the highest-priority matching key of a level
counts, even when it yields nothing. Entries declared outside any OS key
(global entries) are always added on top.

Example::

    resolver = OSPackageResolver(
        {"pkg": {"ubuntu": {"22.04": "pkg-jammy", "default": "pkg"}, "gem": "pkg-gem"}},
        operating_system=OSIdentity(names=("ubuntu", "debian"), versions=("22.04",)),
    )
    resolver.resolve_package("pkg")
    # [ManagerResult("apt-dpkg", AVAILABLE, ["pkg-jammy"]), ManagerResult("gem", AVAILABLE, ["pkg-gem"])]
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any

from orchard.core.errors import ConfigError, InvalidRecursiveReference, MissingOSDep
from orchard.core.models.os_identity import OSIdentity
from orchard.core.models.package_spec import (
    Branch,
    Empty,
    Entry,
    EntryList,
    EntryMap,
    Ignore,
    Name,
    Nonexistent,
    PackageSpec,
)

logger = logging.getLogger(__name__)


# Native package manager of each OS family. OS names and package manager
# names must never collide: the same mapping level may hold both.
OS_PACKAGE_MANAGERS: dict[str, str] = {
    "debian": "apt-dpkg",
    "gentoo": "emerge",
    "arch": "pacman",
    "fedora": "yum",
    "macos-port": "macports",
    "macos-brew": "brew",
    "opensuse": "zypper",
    "freebsd": "pkg",
}

UNKNOWN_OS_MANAGER = "unknown"
RECURSIVE_KEYWORD = "osdep"

DEFAULT_PACKAGE_MANAGERS: tuple[str, ...] = (
    "apt-dpkg",
    "emerge",
    "pacman",
    "yum",
    "dnf",
    "macports",
    "brew",
    "zypper",
    "pkg",
    "gem",
    "pip",
    UNKNOWN_OS_MANAGER,
)


class Availability(IntEnum):
    """Aggregate state of an osdep on the current OS, ordered by resolvability."""

    NO_PACKAGE = 0      # no definition at all
    WRONG_OS = 1        # defined, but not for this OS
    UNKNOWN_OS = 2      # defined, but the local OS could not be determined
    NONEXISTENT = 3     # explicitly marked absent on this OS
    AVAILABLE = 4
    IGNORE = 5          # available, nothing to install


class ResolutionOutcome(str, Enum):
    AVAILABLE = "available"
    IGNORE = "ignore"
    NONEXISTENT = "nonexistent"


@dataclass(frozen=True)
class ManagerResult:
    """Concrete package names to install with one package manager."""

    manager: str
    outcome: ResolutionOutcome
    names: tuple[str, ...] = ()

    def describe(self) -> str:
        if self.outcome is ResolutionOutcome.NONEXISTENT:
            return f"{self.manager}: nonexistent"
        if not self.names:
            return f"{self.manager}: ignore"
        return f"{self.manager}: {', '.join(self.names)}"


# ── Partitioning ────────────────────────────────────────────────────


@dataclass
class _Partition:
    """What one pass over a definition found."""

    found: bool = False
    nonexistent: bool = False
    names: list[str] = field(default_factory=list)

    @property
    def matched(self) -> bool:
        return self.found or self.nonexistent

    def absorb(self, other: _Partition) -> None:
        if other.nonexistent:
            self.nonexistent = True
        elif other.found:
            self.found = True
        self.names.extend(other.names)


def _partition(
    osdep_name: str,
    entry: Entry,
    managers: frozenset[str] | None,
    excluded: frozenset[str],
    levels: tuple[tuple[str, ...], ...],
) -> _Partition:
    """Collect the names of ``entry`` relevant to ``managers``.

    With ``managers=None`` the pass collects plain names, i.e. what the OS
    package manager should install. Otherwise only branches keyed by one
    of ``managers`` contribute, and a bare manager keyword stands for the
    osdep's own name. ``levels`` are the key lists still to be matched
    (OS names, then OS versions).
    """
    result = _Partition()
    keys = levels[0] if levels else ()
    remaining = levels[1:]
    # key index -> partition found under that key (None: matched, nothing found)
    by_key: dict[int, _Partition | None] = {}

    for item in _items(entry):
        if isinstance(item, Ignore):
            if managers is None:
                result.found = True
        elif isinstance(item, Nonexistent):
            if managers is None:
                result.nonexistent = True
        elif isinstance(item, Name):
            if item.value in excluded:
                continue
            if managers is not None and item.value in managers:
                result.names.append(osdep_name)
                result.found = True
            elif managers is None:
                result.names.append(item.value)
                result.found = True
        elif isinstance(item, EntryMap):
            result.absorb(_partition(osdep_name, item, managers, excluded, levels))
        elif isinstance(item, Branch):
            if managers is not None and any(t in managers for t in item.tags):
                result.absorb(_partition(osdep_name, item.entry, None, excluded, levels))

            idx = next((i for i, k in enumerate(keys) if k in item.tags), None)
            if idx is None:
                continue
            sub = _partition(osdep_name, item.entry, managers, excluded, remaining)
            if not sub.matched:
                by_key.setdefault(idx, None)
            else:
                current = by_key.get(idx)
                if current is None:
                    current = by_key[idx] = _Partition()
                current.absorb(sub)

    if by_key:
        best = by_key[min(by_key)]
        if best is not None:
            result.absorb(best)
    return result


def _items(entry: Entry) -> Iterable[Any]:
    """Flatten one level of an entry into its list items or map branches."""
    if isinstance(entry, EntryList):
        for item in entry.items:
            if isinstance(item, EntryList):
                yield from _items(item)
            else:
                yield item
    elif isinstance(entry, EntryMap):
        yield from entry.branches
    elif not isinstance(entry, Empty):
        yield entry


# ── Resolver ────────────────────────────────────────────────────────


class OSPackageResolver:
    """Maps osdep names to package manager entries for a given OS.

    Args:
        definitions: raw osdep definitions (name -> plain YAML data) or
            already parsed PackageSpecs.
        source: where ``definitions`` came from, used in diagnostics.
        operating_system: default identity when a call passes none.
        package_managers: manager names the definitions may refer to.
        os_package_manager: override of the manager derived from the OS.
        prefer_indep_over_os_packages: try ``default`` before OS names.
        max_recursion_depth: how many ``osdep`` indirections to follow.
    """

    def __init__(
        self,
        definitions: Mapping[str, Any] | None = None,
        source: str | None = None,
        *,
        operating_system: OSIdentity | None = None,
        package_managers: Iterable[str] = DEFAULT_PACKAGE_MANAGERS,
        os_package_manager: str | None = None,
        prefer_indep_over_os_packages: bool = False,
        max_recursion_depth: int = 1,
    ):
        self._specs: dict[str, PackageSpec] = {}
        self._all_definitions: dict[str, list[PackageSpec]] = {}
        self._aliases: dict[str, str] = {}
        self.package_managers: tuple[str, ...] = tuple(package_managers)
        self.operating_system = operating_system or OSIdentity.unknown()
        self.prefer_indep_over_os_packages = prefer_indep_over_os_packages
        self.max_recursion_depth = max_recursion_depth
        self._os_package_manager: str | None = None
        self.os_package_manager = os_package_manager

        for name, data in (definitions or {}).items():
            spec = data if isinstance(data, PackageSpec) else PackageSpec.from_raw(name, data, source)
            self._add_spec(spec)

    def _add_spec(self, spec: PackageSpec) -> None:
        self._specs[spec.name] = spec
        known = self._all_definitions.setdefault(spec.name, [])
        if not any(s.same_definition(spec) for s in known):
            known.append(spec)

    # ── Package managers ────────────────────────────────────────

    @property
    def os_package_manager(self) -> str | None:
        """Explicitly configured OS package manager, if any."""
        return self._os_package_manager

    @os_package_manager.setter
    def os_package_manager(self, name: str | None) -> None:
        if name is not None and name not in self.package_managers:
            raise ValueError(f"{name} is not a known package manager")
        self._os_package_manager = name

    def os_package_manager_for(self, identity: OSIdentity | None = None) -> str:
        """The native package manager for ``identity``."""
        if self._os_package_manager:
            return self._os_package_manager
        identity = identity or self.operating_system
        for os_name in identity.names:
            if os_name in OS_PACKAGE_MANAGERS:
                return OS_PACKAGE_MANAGERS[os_name]
        return UNKNOWN_OS_MANAGER

    # ── Definitions ─────────────────────────────────────────────

    def __contains__(self, name: object) -> bool:
        return name in self._specs

    def include(self, name: str) -> bool:
        """Whether ``name`` has a definition (aliases not followed)."""
        return name in self._specs

    def names(self) -> list[str]:
        return sorted(self._specs)

    def spec(self, name: str) -> PackageSpec | None:
        return self._specs.get(self.resolve_name(name)[-1])

    def source_of(self, name: str) -> str | None:
        """File the active definition of ``name`` came from."""
        spec = self._specs.get(name)
        return spec.source if spec else None

    def all_definitions(self, name: str) -> list[PackageSpec]:
        """Every distinct definition seen for ``name``, in merge order."""
        return list(self._all_definitions.get(name, []))

    def add_alias(self, alias: str, target: str) -> None:
        self._aliases[alias] = target

    def resolve_name(self, name: str) -> list[str]:
        """Alias path from ``name`` to the name actually defined."""
        path = [name]
        while name in self._aliases:
            name = self._aliases[name]
            if name in path:
                raise ConfigError(f"alias loop: {'->'.join([*path, name])}")
            path.append(name)
        return path

    def add_entries(self, definitions: Mapping[str, Any], source: str | None = None) -> list[str]:
        other = OSPackageResolver(
            definitions,
            source,
            operating_system=self.operating_system,
            package_managers=self.package_managers,
            os_package_manager=self._os_package_manager,
            prefer_indep_over_os_packages=self.prefer_indep_over_os_packages,
            max_recursion_depth=self.max_recursion_depth,
        )
        return self.merge(other)

    def merge(self, other: OSPackageResolver) -> list[str]:
        """Merge ``other`` into this resolver, ``other`` winning on conflicts.

        Returns the warnings emitted for definitions that changed what gets
        installed. Resolutions are compared without following ``osdep``
        indirections.
        """
        warnings = []
        identity = self.operating_system
        for name, new_spec in other._specs.items():
            old_spec = self._specs.get(name)
            if old_spec is not None and not old_spec.same_definition(new_spec):
                old_resolved = self.resolve_package(name, identity, resolve_recursive=False) or []
                new_resolved = other.resolve_package(name, identity, resolve_recursive=False) or []
                if old_resolved != new_resolved:
                    warning = _merge_warning(name, old_spec.source, new_spec.source, old_resolved, new_resolved)
                    logger.warning(warning)
                    warnings.append(warning)
            self._specs[name] = new_spec
            for spec in other._all_definitions.get(name, [new_spec]):
                known = self._all_definitions.setdefault(name, [])
                if not any(s.same_definition(spec) for s in known):
                    known.append(spec)
        self._aliases.update(other._aliases)
        return warnings

    @staticmethod
    def verify_definitions(definitions: Mapping[str, Any], source: str | None = None) -> None:
        """Check raw definitions for non-string keys or values.

        Raises:
            ConfigError: naming the offending path.
        """
        for name, data in definitions.items():
            if not isinstance(name, str):
                raise ConfigError(
                    f"invalid osdeps definition: found an {type(name).__name__} as a key. "
                    "Don't forget to put quotes around numbers",
                    file=source,
                )
            PackageSpec.from_raw(name, data, source)

    # ── Resolution ──────────────────────────────────────────────

    def _search_levels(self, identity: OSIdentity) -> tuple[tuple[str, ...], tuple[str, ...]]:
        if not identity.known:
            return ("default",), ("default",)
        identity = identity.normalized()
        names = list(identity.names)
        if self.prefer_indep_over_os_packages:
            names.insert(0, "default")
        else:
            names.append("default")
        return tuple(names), identity.versions

    def resolve_package(
        self,
        name: str,
        identity: OSIdentity | None = None,
        resolve_recursive: bool = True,
    ) -> list[ManagerResult] | None:
        """Resolve ``name`` into per-manager results.

        Returns:
            None when ``name`` has no definition, an empty list when it has
            one but nothing applies to this OS, per-manager results otherwise.

        Raises:
            InvalidRecursiveReference: an ``osdep`` indirection is broken.
        """
        return self._resolve(name, identity or self.operating_system, resolve_recursive, ())

    def _resolve(
        self,
        name: str,
        identity: OSIdentity,
        resolve_recursive: bool,
        chain: tuple[str, ...],
    ) -> list[ManagerResult] | None:
        name = self.resolve_name(name)[-1]
        spec = self._specs.get(name)
        if spec is None:
            return None

        levels = self._search_levels(identity)
        os_manager = self.os_package_manager_for(identity)
        others = frozenset(m for m in self.package_managers if m != os_manager)

        results = []
        part = _partition(name, spec.entry, None, others, levels)
        if part.matched:
            results.append(_to_result(os_manager, part))

        for manager in self.package_managers:
            part = _partition(name, spec.entry, frozenset([manager]), frozenset(), levels)
            if part.matched:
                results.append(_to_result(manager, part))

        part = _partition(name, spec.entry, frozenset([RECURSIVE_KEYWORD]), frozenset(), levels)
        if not part.matched:
            return results
        if not resolve_recursive:
            results.append(_to_result(RECURSIVE_KEYWORD, part))
            return results

        chain = (*chain, name)
        for target in part.names:
            target = self.resolve_name(target)[-1]
            if target in chain:
                raise InvalidRecursiveReference(
                    f"the '{name}' osdep refers to '{target}', which forms a loop "
                    f"({' -> '.join([*chain, target])})",
                    file=spec.source,
                )
            if len(chain) > self.max_recursion_depth:
                raise InvalidRecursiveReference(
                    f"the '{name}' osdep refers to '{target}', exceeding the maximum of "
                    f"{self.max_recursion_depth} osdep indirection(s) "
                    f"({' -> '.join([*chain, target])})",
                    file=spec.source,
                )
            resolved = self._resolve(target, identity, True, chain)
            if resolved is None:
                raise InvalidRecursiveReference(
                    f"the '{name}' osdep refers to another osdep, '{target}', "
                    "which does not seem to exist",
                    file=spec.source,
                )
            results.extend(resolved)
        return results

    def availability(self, name: str, identity: OSIdentity | None = None) -> Availability:
        """Aggregate availability of ``name`` on ``identity``."""
        identity = identity or self.operating_system
        resolved = self.resolve_package(name, identity)
        if resolved is None:
            return Availability.NO_PACKAGE
        if not resolved:
            return Availability.WRONG_OS if identity.known else Availability.UNKNOWN_OS
        if any(r.outcome is ResolutionOutcome.NONEXISTENT for r in resolved):
            return Availability.NONEXISTENT
        if all(not r.names for r in resolved):
            return Availability.IGNORE
        return Availability.AVAILABLE

    def has(self, name: str, identity: OSIdentity | None = None) -> bool:
        """Whether ``name`` is acceptable as an OS package on ``identity``."""
        return self.availability(name, identity) in (Availability.AVAILABLE, Availability.IGNORE)

    def resolve_os_packages(
        self,
        names: Iterable[str],
        identity: OSIdentity | None = None,
    ) -> list[tuple[str, list[str]]]:
        """Group the concrete packages for ``names`` by package manager.

        Raises:
            MissingOSDep: a name is unknown, undefined for this OS, or
                explicitly nonexistent.
        """
        identity = identity or self.operating_system
        groups: dict[str, list[str]] = {}
        for name in names:
            resolved = self.resolve_package(name, identity)
            if resolved is None:
                path = self.resolve_name(name)
                raise MissingOSDep(
                    f"there is no osdeps definition for {path[-1]} (search tree: {'->'.join(path)})"
                )
            if not resolved:
                raise MissingOSDep(
                    f"there is an osdeps definition for {name}, but not for this operating "
                    f"system and version (resp. {', '.join(identity.names) or 'unknown'} and "
                    f"{', '.join(identity.versions) or 'unknown'})"
                )
            for result in resolved:
                if result.outcome is ResolutionOutcome.NONEXISTENT:
                    raise MissingOSDep(
                        f"there is an osdep definition for {name}, and it explicitly states "
                        "that this package does not exist on your OS"
                    )
                group = groups.setdefault(result.manager, [])
                group.extend(n for n in result.names if n not in group)
        return [(manager, pkgs) for manager, pkgs in groups.items() if pkgs]


def _to_result(manager: str, part: _Partition) -> ManagerResult:
    if part.nonexistent:
        outcome = ResolutionOutcome.NONEXISTENT
    elif part.names:
        outcome = ResolutionOutcome.AVAILABLE
    else:
        outcome = ResolutionOutcome.IGNORE
    return ManagerResult(manager, outcome, tuple(part.names))


def _merge_warning(
    name: str,
    old_source: str | None,
    new_source: str | None,
    old: list[ManagerResult],
    new: list[ManagerResult],
) -> str:
    def block(prefix: str, results: list[ManagerResult]) -> list[str]:
        lines = [r.describe() for r in results] or ["nothing"]
        indent = " " * len(prefix)
        return [f"{prefix}{lines[0]}"] + [f"{indent}{line}" for line in lines[1:]]

    lines = [
        f"osdeps definition for {name}, previously defined in {old_source} "
        f"overridden by {new_source}:"
    ]
    lines.extend(block("  resp. ", old))
    lines.extend(block("  and   ", new))
    return "\n".join(lines)
