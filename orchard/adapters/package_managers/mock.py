"""
Mock package manager — test double for the installer.

Records every install call. Can be told which packages are already
installed and which ones fail.
"""

from __future__ import annotations

from orchard.adapters.package_managers.base import PackageManager
from orchard.core.errors import InstallError


class MockPackageManager(PackageManager):
    def __init__(
        self,
        manager_name: str = "mock",
        available: bool = True,
        installed: set[str] | None = None,
    ):
        self._name = manager_name
        self._available = available
        self.installed: set[str] = set(installed or ())
        self._failures: dict[str, str] = {}
        self.calls: list[tuple[list[str], bool]] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def is_available(self) -> bool:
        return self._available

    def set_failure(self, package: str, error: str = "Mock failure") -> None:
        self._failures[package] = error

    def filter_uptodate(self, names: list[str]) -> list[str]:
        return [n for n in names if n not in self.installed]

    def install(self, names: list[str], install_only: bool = False) -> list[str]:
        self.calls.append((list(names), install_only))
        if install_only:
            names = self.filter_uptodate(names)
        failing = [n for n in names if n in self._failures]
        if failing:
            raise InstallError(self.name, failing, self._failures[failing[0]])
        self.installed.update(names)
        return list(names)

    def reset(self) -> None:
        self.calls.clear()
        self._failures.clear()
