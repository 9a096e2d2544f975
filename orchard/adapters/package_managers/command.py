"""
Command-line package managers — apt, yum, dnf, pacman, zypper, emerge,
brew, pkg, pip and gem through their CLIs.

Each manager is a ``CommandPackageManager`` configured with the command
that installs a list of packages and, optionally, the command that tells
whether one package is already installed. Commands run through an
injectable ``runner`` so tests never touch the system.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from collections.abc import Callable, Sequence

from orchard.adapters.package_managers.base import PackageManager
from orchard.core.errors import InstallError

logger = logging.getLogger(__name__)

Runner = Callable[[list[str]], subprocess.CompletedProcess]


def run_command(args: list[str], timeout: int = 3600) -> subprocess.CompletedProcess:
    """Run ``args`` capturing output. Missing binaries become returncode 127."""
    logger.debug("Executing: %s", " ".join(args))
    try:
        return subprocess.run(args, capture_output=True, text=True, timeout=timeout)
    except FileNotFoundError as e:
        return subprocess.CompletedProcess(args, 127, "", str(e))


class CommandPackageManager(PackageManager):
    """A package manager driven by a CLI.

    Args:
        name: manager identifier used in osdeps definitions.
        install_cmd: command prefix; package names are appended.
        query_cmd: command prefix telling whether one package is installed
            (exit status 0). Without it, every package counts as missing.
        needs_root: prefix commands with ``sudo`` when not root.
        runner: executes a command list.
    """

    def __init__(
        self,
        name: str,
        install_cmd: Sequence[str],
        query_cmd: Sequence[str] | None = None,
        needs_root: bool = False,
        runner: Runner | None = None,
    ):
        self._name = name
        self.install_cmd = list(install_cmd)
        self.query_cmd = list(query_cmd) if query_cmd else None
        self.needs_root = needs_root
        self._runner = runner or run_command

    @property
    def name(self) -> str:
        return self._name

    @property
    def binary(self) -> str:
        return self.install_cmd[0]

    def is_available(self) -> bool:
        return shutil.which(self.binary) is not None

    def _with_root(self, args: list[str]) -> list[str]:
        if self.needs_root and hasattr(os, "geteuid") and os.geteuid() != 0:
            return ["sudo", *args]
        return args

    def is_installed(self, name: str) -> bool:
        if self.query_cmd is None:
            return False
        result = self._runner([*self.query_cmd, name])
        return result.returncode == 0

    def filter_uptodate(self, names: list[str]) -> list[str]:
        return [n for n in names if not self.is_installed(n)]

    def install(self, names: list[str], install_only: bool = False) -> list[str]:
        if install_only:
            names = self.filter_uptodate(names)
        if not names:
            logger.debug("%s: nothing to install", self.name)
            return []

        args = self._with_root([*self.install_cmd, *names])
        logger.info("%s: installing %s", self.name, ", ".join(names))
        result = self._runner(args)
        if result.returncode != 0:
            message = (result.stderr or result.stdout or "").strip()
            raise InstallError(self.name, names, message or f"exit code {result.returncode}")
        return list(names)


# name → (install command, query command, needs root)
COMMAND_MANAGERS: dict[str, tuple[list[str], list[str] | None, bool]] = {
    "apt-dpkg": (["apt-get", "install", "-y"], ["dpkg", "-s"], True),
    "yum": (["yum", "install", "-y"], ["rpm", "-q"], True),
    "dnf": (["dnf", "install", "-y"], ["rpm", "-q"], True),
    "zypper": (["zypper", "install", "-y"], ["rpm", "-q"], True),
    "pacman": (["pacman", "-S", "--noconfirm", "--needed"], ["pacman", "-Q"], True),
    "emerge": (["emerge", "--noreplace"], None, True),
    "brew": (["brew", "install"], ["brew", "list", "--versions"], False),
    "macports": (["port", "install"], None, True),
    "pkg": (["pkg", "install", "-y"], ["pkg", "info", "-e"], True),
    "pip": (["pip", "install"], ["pip", "show"], False),
    "gem": (["gem", "install"], ["gem", "list", "-i"], False),
}


def build_command_manager(name: str, runner: Runner | None = None) -> CommandPackageManager:
    """Create the CLI manager called ``name``.

    Raises:
        KeyError: no CLI manager by that name.
    """
    install_cmd, query_cmd, needs_root = COMMAND_MANAGERS[name]
    return CommandPackageManager(name, install_cmd, query_cmd, needs_root, runner)
