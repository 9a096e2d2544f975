"""
Package manager used when the OS could not be determined.

It cannot install anything. It lists what the user has to install by hand.
"""

from __future__ import annotations

import logging

from orchard.adapters.package_managers.base import PackageManager
from orchard.core.errors import InstallError
from orchard.core.osdeps.resolver import UNKNOWN_OS_MANAGER

logger = logging.getLogger(__name__)


class UnknownOSManager(PackageManager):
    """Refuses to install, naming the packages to install manually."""

    def __init__(self, installed: set[str] | None = None):
        # Packages the user declared as already present
        self.installed = set(installed or ())

    @property
    def name(self) -> str:
        return UNKNOWN_OS_MANAGER

    def is_available(self) -> bool:
        return True

    def filter_uptodate(self, names: list[str]) -> list[str]:
        return [n for n in names if n not in self.installed]

    def install(self, names: list[str], install_only: bool = False) -> list[str]:
        missing = self.filter_uptodate(names)
        if not missing:
            return []
        logger.warning(
            "the current operating system is unknown, install these packages manually: %s",
            ", ".join(missing),
        )
        raise InstallError(self.name, missing, "the operating system is unknown, install them manually")
