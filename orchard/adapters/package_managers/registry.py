"""
Package manager registry — name → PackageManager.

Osdeps definitions refer to package managers by name. The registry turns
those names into manager instances once, through ``handles_for``; the
installer then works with the handles and never looks names up again.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from orchard.adapters.package_managers.base import PackageManager
from orchard.adapters.package_managers.command import COMMAND_MANAGERS, Runner, build_command_manager
from orchard.adapters.package_managers.unknown import UnknownOSManager
from orchard.core.errors import ConfigError

logger = logging.getLogger(__name__)


class PackageManagerRegistry:
    """Central registry of package managers."""

    def __init__(self, managers: Iterable[PackageManager] = ()):
        self._managers: dict[str, PackageManager] = {}
        for manager in managers:
            self.register(manager)

    def register(self, manager: PackageManager) -> None:
        name = manager.name
        if name in self._managers:
            logger.warning("Overwriting existing package manager: %s", name)
        self._managers[name] = manager
        logger.debug("Registered package manager: %s", name)

    def unregister(self, name: str) -> None:
        self._managers.pop(name, None)

    def get(self, name: str) -> PackageManager | None:
        return self._managers.get(name)

    def names(self) -> list[str]:
        return list(self._managers)

    def __contains__(self, name: object) -> bool:
        return name in self._managers

    def handles_for(self, names: Iterable[str]) -> dict[str, PackageManager]:
        """Resolve manager names into instances, all at once.

        Raises:
            ConfigError: a name has no registered manager.
        """
        handles = {}
        missing = []
        for name in names:
            manager = self._managers.get(name)
            if manager is None:
                missing.append(name)
            else:
                handles[name] = manager
        if missing:
            raise ConfigError(
                f"no package manager registered for {', '.join(sorted(set(missing)))} "
                f"(known: {', '.join(self.names()) or 'none'})"
            )
        return handles

    def availability(self) -> dict[str, bool]:
        status = {}
        for name, manager in self._managers.items():
            try:
                status[name] = manager.is_available()
            except Exception:
                status[name] = False
        return status

    @classmethod
    def default(cls, runner: Runner | None = None) -> PackageManagerRegistry:
        """Registry with every CLI manager plus the unknown-OS one."""
        registry = cls(build_command_manager(name, runner) for name in COMMAND_MANAGERS)
        registry.register(UnknownOSManager())
        return registry
