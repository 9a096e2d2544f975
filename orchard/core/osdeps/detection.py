"""
OS identity detection — figure out which OS the workspace runs on.

Detection order:
    1. ``ORCHARD_OS`` environment variable (``names:versions``; empty = unknown)
    2. ``/etc/os-release``
    3. Distribution release files (debian_version, redhat-release, ...)

Derivatives are made to also refer to their parent family when the
parent's release file is present, so that e.g. Ubuntu definitions fall
back to ``debian`` ones.

All file lookups go through ``root`` so tests can point detection at a
fake filesystem.
"""

from __future__ import annotations

import logging
import os
import platform
import re
from pathlib import Path

from orchard.core.models.os_identity import OSIdentity

logger = logging.getLogger(__name__)

OS_ENV_VAR = "ORCHARD_OS"

# Release file → OS family it identifies
_FAMILY_FILES: dict[str, str] = {
    "etc/debian_version": "debian",
    "etc/redhat-release": "fedora",
    "etc/gentoo-release": "gentoo",
    "etc/arch-release": "arch",
    "etc/SuSE-release": "opensuse",
}

_OS_RELEASE_LINE = re.compile(r"""^(\w+)=["']?([^"']*)["']?$""")


def parse_os_release(text: str) -> tuple[list[str], list[str]]:
    """Names and versions from the contents of an os-release file.

    Names come from ``ID`` and ``ID_LIKE``; versions from ``VERSION_ID`` and
    the words of ``VERSION`` (``"22.04.3 LTS (Jammy Jellyfish)"`` gives
    ``22.04.3``, ``LTS``, ``Jammy``, ``Jellyfish``). Duplicates are dropped.
    """
    fields: dict[str, str] = {}
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        match = _OS_RELEASE_LINE.match(line)
        if match:
            fields[match.group(1)] = match.group(2)
        else:
            logger.warning("could not parse line %r in os-release", line)

    names = [fields.get("ID", "")]
    names.extend(fields.get("ID_LIKE", "").split())
    versions = [fields.get("VERSION_ID", "")]
    versions.extend(re.sub(r"[^\w.]", " ", fields.get("VERSION", "")).split())
    return _unique(names), _unique(versions)


def _unique(values: list[str]) -> list[str]:
    seen: list[str] = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return seen


def _read(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8").strip()
    except (OSError, UnicodeDecodeError):
        return None


def guess_from_release_files(root: Path) -> tuple[list[str], list[str]] | None:
    """Fallback detection for systems without os-release."""
    debian = _read(root / "etc/debian_version")
    if debian is not None:
        if "sid" in debian:
            return ["debian"], ["unstable", "sid"]
        return ["debian"], [debian]

    redhat = _read(root / "etc/redhat-release")
    if redhat is not None:
        match = re.match(r"(.*) release ([\d.]+)", redhat)
        if match:
            name = match.group(1).lower()
            if "red hat enterprise" in name:
                name = "rhel"
            return [name], [match.group(2)]
        return ["fedora"], []

    gentoo = _read(root / "etc/gentoo-release")
    if gentoo is not None:
        return ["gentoo"], gentoo.split()[-1:]

    if (root / "etc/arch-release").exists():
        return ["arch"], []

    suse = _read(root / "etc/SuSE-release")
    if suse is not None:
        match = re.search(r"VERSION\s+=\s+(\S+)", suse)
        return ["opensuse"], [match.group(1)] if match else []

    return None


def _add_parent_families(names: list[str], root: Path) -> list[str]:
    names = list(names)
    for rel, family in _FAMILY_FILES.items():
        if (root / rel).exists() and family not in names:
            names.append(family)
    return names


def _from_platform() -> tuple[list[str], list[str]] | None:
    system = platform.system().lower()
    if system == "darwin":
        return ["macos-brew", "darwin"], [platform.mac_ver()[0]]
    if system == "freebsd":
        return ["freebsd"], [platform.release().split("-")[0]]
    if system == "windows":
        return ["windows"], []
    return None


def detect_operating_system(
    root: str | Path = "/",
    env: dict[str, str] | None = None,
) -> OSIdentity:
    """Detect the OS identity of the machine rooted at ``root``.

    Returns an unknown identity when nothing matches. Never raises on
    missing or unreadable files.
    """
    env = os.environ if env is None else env
    if OS_ENV_VAR in env:
        identity = OSIdentity.parse(env[OS_ENV_VAR])
        logger.debug("OS identity from %s: %s", OS_ENV_VAR, identity)
        return identity

    root = Path(root)
    found: tuple[list[str], list[str]] | None = None
    os_release = _read(root / "etc/os-release")
    if os_release is not None:
        names, versions = parse_os_release(os_release)
        if names:
            found = (names, versions)
    if found is None:
        found = guess_from_release_files(root)
    if found is None and root == Path("/"):
        found = _from_platform()
    if found is None:
        logger.warning("could not determine the operating system")
        return OSIdentity.unknown()

    names, versions = found
    if names and names[0] == "debian":
        debian = _read(root / "etc/debian_version")
        if debian is not None and "sid" in debian:
            versions = ["unstable", "sid"]

    names = _add_parent_families(names, root)
    identity = OSIdentity(names=tuple(names), versions=tuple(versions)).normalized()
    logger.debug("detected OS identity: %s", identity)
    return identity
