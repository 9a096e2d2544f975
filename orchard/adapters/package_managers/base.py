"""
Package manager base — the contract between the installer and OS tools.

The installer only talks to package managers through this interface.
Implementations wrap one tool each (apt, gem, pip, ...).
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class PackageManager(ABC):
    """Abstract base class for package managers.

    To add a package manager:
        1. Subclass PackageManager
        2. Implement name, is_available, install
        3. Register it in the PackageManagerRegistry
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Manager identifier as used in osdeps definitions (e.g. 'apt-dpkg', 'gem')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the underlying tool exists on this machine. Never raises."""

    @abstractmethod
    def install(self, names: list[str], install_only: bool = False) -> list[str]:
        """Install ``names``.

        With ``install_only``, packages that are already installed are left
        untouched (no upgrade).

        Returns:
            The names that were actually handed to the tool.

        Raises:
            InstallError: the tool failed.
        """

    def filter_uptodate(self, names: list[str]) -> list[str]:
        """Drop the names that need no action. Defaults to keeping all."""
        return list(names)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
