"""
Selection engine — user strings to source packages and OS packages.

Each string is matched, in order, against:
    0. a package set name (weak: expands to its members)
    1. an exact source package name
    2. an exact osdep name
    3. a source directory (weak: the string lies inside a package's
       srcdir, or is a parent directory of some srcdirs)

Strings that match nothing are handed back to the caller.

When a name is both a source package and an osdep, the OS package wins
unless it is unavailable on this OS or an override says otherwise. The
decision is a pure function of the graph, the resolver, the override
table and the OS identity.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable, Iterable
from typing import Literal

from pydantic import BaseModel, Field

from orchard.core.errors import ExcludedSelection, PackageNotFound, PackageUnavailable
from orchard.core.graph.dependency_graph import DependencyGraph, Exclusions
from orchard.core.models.os_identity import OSIdentity
from orchard.core.models.package import PackageNode
from orchard.core.models.selection import PackageSelection, SelectionBuilder
from orchard.core.osdeps.resolver import Availability, OSPackageResolver

logger = logging.getLogger(__name__)

Kind = Literal["package", "osdep"]

_AVAILABLE = (Availability.AVAILABLE, Availability.IGNORE)


class OsdepOverride(BaseModel):
    """Source packages standing in for an osdep.

    ``force``:
        none   — use ``packages`` only when the osdep is unavailable
        source — always use ``packages``
        osdep  — always use the OS package, even when unavailable
    """

    packages: list[str] = Field(default_factory=list)
    force: Literal["none", "source", "osdep"] = "none"


class SelectionEngine:
    """Expands user selections against a graph and an osdeps resolver."""

    def __init__(
        self,
        graph: DependencyGraph,
        resolver: OSPackageResolver,
        exclusions: Exclusions | None = None,
        overrides: dict[str, OsdepOverride] | None = None,
        identity: OSIdentity | None = None,
        accept_unavailable_osdeps: bool = False,
    ):
        self.graph = graph
        self.resolver = resolver
        self.exclusions = exclusions or Exclusions(graph)
        self.overrides = dict(overrides or {})
        self.identity = identity or resolver.operating_system
        self.accept_unavailable_osdeps = accept_unavailable_osdeps

    # ── Name resolution ─────────────────────────────────────────

    def resolve_package_name(self, name: str) -> list[tuple[Kind, str]]:
        """Resolve one name into ``(kind, name)`` pairs.

        Raises:
            PackageUnavailable: an osdep with no source fallback that
                cannot be installed on this OS.
            PackageNotFound: neither a source package nor an osdep.
        """
        try:
            return self._resolve_as_osdep(name)
        except PackageUnavailable:
            raise
        except PackageNotFound as osdep_error:
            if name in self.graph:
                return [("package", name)]
            raise PackageNotFound(
                f"cannot resolve {name}: {osdep_error} and it is not a source package"
            ) from None

    def _resolve_as_osdep(self, name: str) -> list[tuple[Kind, str]]:
        availability = self.resolver.availability(name, self.identity)
        if availability is Availability.NO_PACKAGE:
            raise PackageNotFound(f"{name} is not an osdep")

        available = availability in _AVAILABLE
        override = self.overrides.get(name)
        if override is not None and override.force == "osdep":
            return [("osdep", name)]
        if override is not None and (not available or override.force == "source"):
            result: list[tuple[Kind, str]] = []
            for pkg in override.packages or [name]:
                if pkg not in self.graph:
                    raise PackageNotFound(
                        f"cannot resolve {name}: its override refers to {pkg}, "
                        "which is not a source package"
                    )
                if ("package", pkg) not in result:
                    result.append(("package", pkg))
            return result
        if not available and name in self.graph:
            return [("package", name)]
        if available or self.accept_unavailable_osdeps:
            return [("osdep", name)]

        os_desc = str(self.identity)
        if availability is Availability.WRONG_OS:
            raise PackageUnavailable(
                f"{name} is an osdep, but it is not available for this operating system ({os_desc})"
            )
        if availability is Availability.UNKNOWN_OS:
            raise PackageUnavailable(f"{name} is an osdep, but the local operating system is unavailable")
        raise PackageUnavailable(
            f"{name} is an osdep, but it is explicitly marked as 'nonexistent' "
            f"for this operating system ({os_desc})"
        )

    # ── Selection ───────────────────────────────────────────────

    def select(self, names: Iterable[str], recursive: bool = True) -> tuple[PackageSelection, list[str]]:
        """Expand user strings into a PackageSelection.

        Returns:
            (selection, unresolved strings)

        Raises:
            ExcludedSelection: a string selects, directly or through its
                dependencies, a package excluded from the build.
            PackageNotFound / PackageUnavailable: from name resolution.
        """
        names = list(names)
        builder = SelectionBuilder()
        for token in names:
            self._match(builder, token)

        self._filter_excluded_and_ignored(builder, recursive)
        selection = builder.build()
        unresolved = [t for t in names if not builder.has_match_for(t)]
        for token in unresolved:
            logger.debug("no match for %r", token)
        return selection, unresolved

    def _match(self, builder: SelectionBuilder, token: str) -> None:
        members = self.graph.package_set(token)
        if members is not None:
            for member in members:
                self._update(builder, token, member, weak=True)
            return

        if token in self.graph or self.resolver.spec(token) is not None:
            self._update(builder, token, token, weak=False)
            return

        matched, inside = self.graph.find_by_srcdir(token)
        for name in matched:
            self._update(builder, token, name, weak=not inside)

    def _update(self, builder: SelectionBuilder, token: str, name: str, weak: bool) -> None:
        source, osdeps = [], []
        for kind, resolved in self.resolve_package_name(name):
            (source if kind == "package" else osdeps).append(resolved)
        if source:
            builder.select(token, source, weak=weak)
        if osdeps:
            builder.select(token, osdeps, weak=weak, osdep=True)

    def _filter_excluded_and_ignored(self, builder: SelectionBuilder, recursive: bool) -> None:
        for token, expansion in builder.matches().items():
            excluded: dict[str, str] = {}
            transitive: set[str] = set()
            ignored: list[str] = []
            for name in sorted(expansion):
                reason = self.exclusions.reason(name)
                if reason is None and recursive:
                    reason = self._dependency_exclusion(name)
                    if reason is not None:
                        transitive.add(name)
                if reason is not None:
                    excluded[name] = reason
                elif self.exclusions.is_ignored(name):
                    ignored.append(name)
            ok = expansion - set(excluded) - set(ignored)
            weak = builder.is_weak(token)

            if excluded and (not weak or (not ok and not ignored)):
                message = _excluded_message(token, excluded, transitive, weak)
                raise ExcludedSelection(token, message, excluded)
            for name in excluded:
                builder.drop(token, name, excluded=True)
                logger.info("%s: dropping %s, %s", token, name, excluded[name])
            for name in ignored:
                builder.drop(token, name, excluded=False)

    def _dependency_exclusion(self, name: str) -> str | None:
        """Why ``name`` cannot be built because of an excluded dependency."""
        node = self.graph.get(name)
        if node is None:
            return None
        queue = deque([node])
        seen = {name}
        while queue:
            current = queue.popleft()
            for dep in current.dependencies:
                if dep in seen or self.exclusions.is_ignored(dep):
                    continue
                seen.add(dep)
                dep_reason = self.exclusions.reason(dep)
                if dep_reason is not None:
                    chain = self.graph.dependency_chain(name, dep) or [name, dep]
                    if len(chain) == 2:
                        return f"its dependency {dep} is excluded from the build: {dep_reason}"
                    return (
                        f"its dependency {dep} is excluded from the build: {dep_reason} "
                        f"(dependency chain: {'>'.join(chain)})"
                    )
                dep_node = self.graph.get(dep)
                if dep_node is not None:
                    queue.append(dep_node)
        return None

    # ── Closure ─────────────────────────────────────────────────

    def partition_optional_dependencies(self, node: PackageNode) -> tuple[list[str], list[str]]:
        """Split the optional dependencies of ``node`` into (source, osdeps).

        Each name goes through resolve_package_name, so an optional
        dependency is never both imported and installed as an OS package.
        Names that are unknown or unavailable on this OS are dropped.
        """
        source: list[str] = []
        osdeps: list[str] = []
        for dep in sorted(node.optional_dependencies):
            try:
                resolved = self.resolve_package_name(dep)
            except PackageNotFound:
                logger.debug("optional dependency %s of %s cannot be resolved, skipping", dep, node.name)
                continue
            for kind, name in resolved:
                (source if kind == "package" else osdeps).append(name)
        return source, osdeps

    def optional_sources(self, node: PackageNode) -> list[str]:
        return self.partition_optional_dependencies(node)[0]

    def optional_osdeps(self, node: PackageNode) -> list[str]:
        return self.partition_optional_dependencies(node)[1]

    def all_selected_source_packages(self, selection: PackageSelection, recursive: bool = True) -> list[PackageNode]:
        """Every source package needed by ``selection``.

        Raises:
            PackageNotFound: a strong dependency is unknown.
        """
        return self.graph.closure(
            selection.source_names,
            self.exclusions,
            recursive=recursive,
            optional_sources=self.optional_sources,
        )

    def all_selected_os_packages(self, selection: PackageSelection, recursive: bool = True) -> set[str]:
        """Every osdep needed by ``selection``."""
        nodes = self.all_selected_source_packages(selection, recursive=recursive)
        return os_packages_of(nodes, self.optional_osdeps, selection.osdep_names, self.exclusions)


def os_packages_of(
    nodes: Iterable[PackageNode],
    optional_osdeps: Callable[[PackageNode], Iterable[str]] | None = None,
    extra: Iterable[str] = (),
    exclusions: Exclusions | None = None,
) -> set[str]:
    """Osdeps of ``nodes``, the optional ones ``optional_osdeps`` picks, and ``extra``."""
    result = set(extra)
    for node in nodes:
        result.update(node.os_dependencies)
        if optional_osdeps is not None:
            result.update(optional_osdeps(node))
    if exclusions is not None:
        result = {name for name in result if not exclusions.is_ignored(name)}
    return result


def _excluded_message(token: str, excluded: dict[str, str], transitive: set[str], weak: bool) -> str:
    base = f"{token} is selected in the manifest or on the command line"
    if len(excluded) == 1:
        name, reason = next(iter(excluded.items()))
        if name in transitive:
            if name == token:
                return f"{base}, but {reason}"
            return f"{base}, but it expands to {name}, and {reason}"
        if name == token:
            return f"{base}, but it is excluded from the build: {reason}"
        if weak:
            return f"{base}, but it expands to {name}, which is excluded from the build: {reason}"
        return f"{base}, but its dependency {name} is excluded from the build: {reason}"
    names = ", ".join(excluded)
    details = "\n  ".join(f"{name}: {reason}" for name, reason in excluded.items())
    verb = "expands to" if weak else "requires"
    return f"{base}, but it {verb} {names}, and all these packages are excluded from the build:\n  {details}"
