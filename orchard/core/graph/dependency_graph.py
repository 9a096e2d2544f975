"""
Dependency graph — source packages, package sets and exclusions.

The graph is filled by the manifest loader and read-only afterwards:
selection and import only query it. Exclusions are the one mutable
piece, since import failures may exclude packages (auto-exclusion).
"""

from __future__ import annotations

import logging
import re
from collections import deque
from collections.abc import Callable, Iterable, Iterator

from orchard.core.errors import ConfigError, ExcludedSelection, PackageNotFound
from orchard.core.models.package import PackageNode

logger = logging.getLogger(__name__)


class DependencyGraph:
    """In-memory graph of source packages.

    Package sets (metapackages) are named groups of packages. They are
    used by selection and exclusion, never by closure computation.
    """

    def __init__(
        self,
        nodes: Iterable[PackageNode] = (),
        package_sets: dict[str, Iterable[str]] | None = None,
    ):
        self._nodes: dict[str, PackageNode] = {}
        self._package_sets: dict[str, list[str]] = {}
        for node in nodes:
            self.add(node)
        for name, members in (package_sets or {}).items():
            self.add_package_set(name, members)

    # ── Building ────────────────────────────────────────────────

    def add(self, node: PackageNode) -> None:
        if node.name in self._nodes:
            logger.warning("package %s defined twice, keeping the last definition", node.name)
        self._nodes[node.name] = node

    def add_package_set(self, name: str, members: Iterable[str]) -> None:
        """Create ``name`` or add ``members`` to it."""
        current = self._package_sets.setdefault(name, [])
        current.extend(m for m in members if m not in current)

    # ── Queries ─────────────────────────────────────────────────

    def __contains__(self, name: object) -> bool:
        return name in self._nodes

    def __iter__(self) -> Iterator[PackageNode]:
        return iter(self._nodes.values())

    def __len__(self) -> int:
        return len(self._nodes)

    def get(self, name: str) -> PackageNode | None:
        return self._nodes.get(name)

    def find(self, name: str) -> PackageNode:
        """Look up ``name``.

        Raises:
            PackageNotFound: no such source package.
        """
        node = self._nodes.get(name)
        if node is None:
            raise PackageNotFound(f"{name} is not a known source package")
        return node

    def names(self) -> list[str]:
        return sorted(self._nodes)

    def package_set(self, name: str) -> list[str] | None:
        members = self._package_sets.get(name)
        return list(members) if members is not None else None

    def package_set_names(self) -> list[str]:
        return sorted(self._package_sets)

    def package_sets_of(self, name: str) -> list[str]:
        return sorted(s for s, members in self._package_sets.items() if name in members)

    def find_by_srcdir(self, path: str) -> tuple[list[str], bool]:
        """Packages whose source directory relates to ``path``.

        Returns:
            (names, inside): with ``inside`` true, ``path`` lies within the
            single returned package's srcdir. Otherwise ``path`` is a parent
            directory of every returned srcdir.
        """
        path = path.rstrip("/") or "/"
        prefix = path if path == "/" else path + "/"
        parents = []
        for node in self._nodes.values():
            srcdir = node.srcdir.rstrip("/")
            if not srcdir:
                continue
            if path == srcdir or path.startswith(srcdir + "/"):
                return [node.name], True
            if srcdir.startswith(prefix):
                parents.append(node.name)
        return sorted(parents), False

    def reverse_dependencies(self, optional: bool = False) -> dict[str, set[str]]:
        """Dependency name → names of the packages depending on it.

        OS dependencies are included, so that an unavailable osdep can be
        propagated to its users like any excluded package.
        """
        revdeps: dict[str, set[str]] = {}
        for node in self._nodes.values():
            deps: set[str] = set(node.dependencies) | set(node.os_dependencies)
            if optional:
                deps |= node.optional_dependencies
            for dep in deps:
                revdeps.setdefault(dep, set()).add(node.name)
        return revdeps

    def closure(
        self,
        roots: Iterable[str],
        exclusions: Exclusions | None = None,
        recursive: bool = True,
        optional_sources: Callable[[PackageNode], Iterable[str]] | None = None,
    ) -> list[PackageNode]:
        """Breadth-first closure over strong and optional dependencies.

        Visited packages are never expanded twice, so cycles terminate.
        Optional dependencies that are unknown, excluded or ignored are
        skipped. Ignored strong dependencies count as met.

        ``optional_sources(node)`` names the optional dependencies of
        ``node`` to import from source. Without it, every optional
        dependency that is a known source package is followed.

        Raises:
            PackageNotFound: a root or strong dependency is unknown.
            ExcludedSelection: a strong dependency is excluded.
        """
        queue = deque(sorted(set(roots)))
        visited: set[str] = set()
        result: list[PackageNode] = []
        parent: dict[str, str] = {}

        while queue:
            name = queue.popleft()
            if name in visited:
                continue
            visited.add(name)
            node = self._nodes.get(name)
            if node is None:
                if name in parent:
                    raise PackageNotFound(f"{parent[name]} depends on {name}, which is not a known package")
                raise PackageNotFound(f"{name} is not a known source package")
            result.append(node)
            if not recursive:
                continue

            for dep in node.dependencies:
                if exclusions is not None and exclusions.is_ignored(dep):
                    continue
                if exclusions is not None and exclusions.is_excluded(dep):
                    chain = _chain(parent, name) + [dep]
                    raise ExcludedSelection(
                        chain[0],
                        f"{chain[0]} depends on {dep}, which is excluded from the build: "
                        f"{exclusions.reason(dep)} (dependency chain: {'>'.join(chain)})",
                        {dep: exclusions.reason(dep) or ""},
                    )
                if dep not in visited:
                    parent.setdefault(dep, name)
                    queue.append(dep)

            optional = node.optional_dependencies if optional_sources is None else optional_sources(node)
            for dep in sorted(optional):
                if dep not in self._nodes:
                    continue
                if exclusions is not None and not exclusions.is_selectable(dep):
                    logger.debug("skipping optional dependency %s of %s", dep, name)
                    continue
                if dep not in visited:
                    parent.setdefault(dep, name)
                    queue.append(dep)

        return result

    def dependency_chain(self, root: str, target: str) -> list[str] | None:
        """Shortest strong-dependency path from ``root`` to ``target``."""
        parent: dict[str, str] = {}
        queue = deque([root])
        seen = {root}
        while queue:
            name = queue.popleft()
            if name == target:
                return _chain(parent, name)
            node = self._nodes.get(name)
            if node is None:
                continue
            for dep in [*node.dependencies, *sorted(node.os_dependencies)]:
                if dep not in seen:
                    seen.add(dep)
                    parent[dep] = name
                    queue.append(dep)
        return None


def _chain(parent: dict[str, str], name: str) -> list[str]:
    chain = [name]
    while chain[-1] in parent:
        chain.append(parent[chain[-1]])
    chain.reverse()
    return chain


class Exclusions:
    """Packages kept out of the build, and why.

    Excluded packages must not be built, and selecting them is an error.
    Ignored packages are not built either, but packages depending on them
    consider the dependency met (e.g. it is installed by other means).

    Manifest patterns are regular expressions searched in package names.
    They do not apply to packages explicitly listed in the layout.
    """

    def __init__(
        self,
        graph: DependencyGraph | None = None,
        manifest_patterns: Iterable[str] = (),
        ignored: Iterable[str] = (),
        layout: Iterable[str] = (),
    ):
        self._graph = graph
        self._explicit: dict[str, str] = {}
        self._patterns: list[tuple[str, re.Pattern[str]]] = []
        self._ignored: set[str] = set()
        self.layout: set[str] = set(layout)
        for pattern in manifest_patterns:
            self.exclude_pattern(pattern)
        for name in ignored:
            self.ignore(name)

    def exclude(self, name: str, reason: str) -> None:
        """Exclude ``name``, or every member when it is a package set."""
        members = self._graph.package_set(name) if self._graph else None
        if members is not None:
            for member in members:
                self._explicit[member] = (
                    f"{name} is an excluded metapackage, and it includes {member}: {reason}"
                )
        else:
            self._explicit[name] = reason
        logger.debug("excluded %s: %s", name, reason)

    def exclude_pattern(self, pattern: str) -> None:
        try:
            self._patterns.append((pattern, re.compile(pattern)))
        except re.error as e:
            raise ConfigError(f"invalid exclusion pattern {pattern!r}: {e}") from e

    def ignore(self, name: str) -> None:
        members = self._graph.package_set(name) if self._graph else None
        self._ignored.update(members if members is not None else [name])

    def clear(self) -> None:
        self._explicit.clear()
        self._patterns.clear()
        self._ignored.clear()

    def reason(self, name: str) -> str | None:
        """Why ``name`` is excluded, or None when it is not."""
        if name in self._explicit:
            return self._explicit[name]
        if name in self.layout or not self._patterns:
            return None
        sets = self._graph.package_sets_of(name) if self._graph else []
        for pattern, regex in self._patterns:
            if pattern in sets:
                return (
                    f"{pattern} is a metapackage listed in the exclude_packages section "
                    f"of the manifest, and it includes {name}"
                )
            if regex.search(name):
                return f"{name} is listed in the exclude_packages section of the manifest"
        return None

    def is_excluded(self, name: str) -> bool:
        return self.reason(name) is not None

    def is_ignored(self, name: str) -> bool:
        return name in self._ignored

    def is_selectable(self, name: str) -> bool:
        return not self.is_excluded(name) and not self.is_ignored(name)

    def excluded_names(self, candidates: Iterable[str] | None = None) -> dict[str, str]:
        """Excluded packages among ``candidates`` (default: the whole graph)."""
        if candidates is None:
            candidates = self._graph.names() if self._graph else list(self._explicit)
        result = {}
        for name in candidates:
            reason = self.reason(name)
            if reason is not None:
                result[name] = reason
        return result

    def ignored_names(self) -> set[str]:
        return set(self._ignored)

    def mark_along_revdeps(
        self,
        name: str,
        revdeps: dict[str, set[str]],
        restrict_to: set[str] | None = None,
    ) -> dict[str, str]:
        """Exclude every package depending, directly or not, on ``name``.

        ``name`` must already be excluded. Only packages in ``restrict_to``
        are touched when given.

        Returns:
            Newly excluded package → reason.
        """
        root_reason = self.reason(name)
        if root_reason is None:
            raise ValueError(f"{name} is not excluded")

        added: dict[str, str] = {}
        queue = deque([(name, [name])])
        while queue:
            current, chain = queue.popleft()
            for user in sorted(revdeps.get(current, ())):
                if restrict_to is not None and user not in restrict_to:
                    continue
                if self.is_excluded(user):
                    continue
                user_chain = [user, *chain]
                if len(user_chain) == 2:
                    reason = f"its dependency {name} is excluded: {root_reason}"
                else:
                    reason = (
                        f"its dependency {name} is excluded: {root_reason} "
                        f"(dependency chain: {'>'.join(user_chain)})"
                    )
                self._explicit[user] = reason
                added[user] = reason
                queue.append((user, user_chain))
        for user, reason in added.items():
            logger.info("excluding %s: %s", user, reason)
        return added
