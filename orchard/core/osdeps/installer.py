"""
OS package installer — turn osdep names into package manager calls.

Resolution goes through the OSPackageResolver, dispatch through the
PackageManagerRegistry. Packages for the OS package manager are
installed first, since the other managers (gem, pip, ...) often need
them.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from orchard.adapters.package_managers.registry import PackageManagerRegistry
from orchard.core.models.os_identity import OSIdentity
from orchard.core.osdeps.resolver import OSPackageResolver

logger = logging.getLogger(__name__)


class OSPackageInstaller:
    """Installs OS dependencies, remembering what it already handled.

    Args:
        resolver: maps osdep names to manager entries.
        registry: package manager instances by name.
        identity: OS to resolve for (defaults to the resolver's).
        filter_uptodate: ask managers to drop up-to-date packages first.
    """

    def __init__(
        self,
        resolver: OSPackageResolver,
        registry: PackageManagerRegistry,
        identity: OSIdentity | None = None,
        filter_uptodate: bool = True,
    ):
        self.resolver = resolver
        self.registry = registry
        self.identity = identity or resolver.operating_system
        self.filter_uptodate = filter_uptodate
        self.installed_osdeps: set[str] = set()
        self._installed_resolved: dict[str, set[str]] = {}

    def resolve(self, osdeps: Iterable[str]) -> list[tuple[str, list[str]]]:
        """Manager groups for ``osdeps``, OS package manager first."""
        groups = self.resolver.resolve_os_packages(sorted(set(osdeps)), self.identity)
        os_manager = self.resolver.os_package_manager_for(self.identity)
        return sorted(groups, key=lambda group: group[0] != os_manager)

    def install(self, osdeps: Iterable[str], install_only: bool = False) -> dict[str, list[str]]:
        """Install the packages needed by ``osdeps``.

        Returns:
            manager name → packages handed to that manager.

        Raises:
            MissingOSDep: an osdep cannot be resolved on this OS.
            ConfigError: a resolved manager is not registered.
            InstallError: a manager failed.
        """
        pending = set(osdeps) - self.installed_osdeps
        if not pending:
            return {}

        groups = self.resolve(pending)
        handles = self.registry.handles_for(name for name, _ in groups)

        done: dict[str, list[str]] = {}
        for manager_name, packages in groups:
            already = self._installed_resolved.setdefault(manager_name, set())
            packages = [p for p in packages if p not in already]
            if not packages:
                continue
            manager = handles[manager_name]
            if self.filter_uptodate:
                packages = manager.filter_uptodate(packages)
                if not packages:
                    logger.debug("%s: everything up to date", manager_name)
                    continue
            installed = manager.install(packages, install_only=install_only)
            already.update(packages)
            done[manager_name] = installed
            logger.info("✓ %s: %s", manager_name, ", ".join(packages))

        self.installed_osdeps.update(pending)
        return done
