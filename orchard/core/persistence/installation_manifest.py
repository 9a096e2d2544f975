"""
Installation manifest — cache of where every package lives.

Lets tools that only need paths (env scripts, locate, ...) skip loading
the whole workspace manifest. Stored as YAML at
``<root>/.orchard/installation-manifest.yml``. Writes are atomic (write
to temp file, then rename).
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from orchard.core.errors import ConfigError
from orchard.core.models.package import PackageNode, VCSDefinition

logger = logging.getLogger(__name__)

DEFAULT_MANIFEST_DIR = ".orchard"
DEFAULT_MANIFEST_FILE = "installation-manifest.yml"


def default_manifest_path(root: Path) -> Path:
    return root / DEFAULT_MANIFEST_DIR / DEFAULT_MANIFEST_FILE


class InstalledPackage(BaseModel):
    name: str
    type: str = ""
    vcs: VCSDefinition = Field(default_factory=VCSDefinition)
    srcdir: str = ""
    importdir: str = ""
    prefix: str = ""
    builddir: str = ""
    logdir: str = ""
    dependencies: list[str] = Field(default_factory=list)

    @classmethod
    def from_node(cls, node: PackageNode) -> InstalledPackage:
        return cls(
            name=node.name,
            type=node.type,
            vcs=node.vcs,
            srcdir=node.srcdir,
            importdir=node.effective_importdir,
            prefix=node.prefix,
            builddir=node.builddir,
            logdir=node.logdir,
            dependencies=list(node.dependencies),
        )


class InstalledPackageSet(BaseModel):
    name: str
    vcs: VCSDefinition = Field(default_factory=VCSDefinition)
    raw_local_dir: str = ""
    user_local_dir: str = ""


class InstallationManifest(BaseModel):
    """Packages and package sets of a workspace, by name."""

    packages: dict[str, InstalledPackage] = Field(default_factory=dict)
    package_sets: dict[str, InstalledPackageSet] = Field(default_factory=dict)

    def add_package(self, package: InstalledPackage | PackageNode) -> None:
        if isinstance(package, PackageNode):
            package = InstalledPackage.from_node(package)
        self.packages[package.name] = package

    def add_package_set(self, package_set: InstalledPackageSet) -> None:
        self.package_sets[package_set.name] = package_set

    def find_package(self, name: str) -> InstalledPackage | None:
        return self.packages.get(name)

    def find_package_set(self, name: str) -> InstalledPackageSet | None:
        return self.package_sets.get(name)

    def find_package_by_path(self, path: str) -> InstalledPackage | None:
        """Package whose srcdir, builddir or prefix contains ``path``."""
        path = path.rstrip("/")
        for pkg in self.packages.values():
            for directory in (pkg.srcdir, pkg.builddir, pkg.prefix):
                directory = directory.rstrip("/")
                if directory and (path == directory or path.startswith(directory + "/")):
                    return pkg
        return None

    # ── Serialization ───────────────────────────────────────────

    def to_raw(self) -> list[dict[str, Any]]:
        """Record list, package sets first, with VCS in manifest form."""
        records: list[dict[str, Any]] = []
        for pkg_set in self.package_sets.values():
            records.append({
                "package_set": pkg_set.name,
                "vcs": pkg_set.vcs.to_raw(),
                "raw_local_dir": pkg_set.raw_local_dir,
                "user_local_dir": pkg_set.user_local_dir,
            })
        for pkg in self.packages.values():
            record = pkg.model_dump(mode="json")
            record["vcs"] = pkg.vcs.to_raw()
            records.append({"name": record.pop("name"), **record})
        return records

    @classmethod
    def from_raw(cls, records: list[dict[str, Any]]) -> InstallationManifest:
        manifest = cls()
        for record in records:
            record = dict(record)
            vcs = VCSDefinition.from_raw(record.pop("vcs", None) or {})
            if "package_set" in record:
                manifest.add_package_set(InstalledPackageSet(name=record.pop("package_set"), vcs=vcs, **record))
            else:
                manifest.add_package(InstalledPackage(vcs=vcs, **record))
        return manifest

    def save(self, path: Path) -> None:
        """Write the manifest to ``path`` (atomic write)."""
        path.parent.mkdir(parents=True, exist_ok=True)
        content = yaml.safe_dump(self.to_raw(), sort_keys=False, default_flow_style=False)

        fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".manifest_", suffix=".tmp")
        tmp = Path(tmp_path)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            tmp.replace(path)
            logger.debug("Installation manifest saved to %s", path)
        except Exception:
            tmp.unlink(missing_ok=True)
            raise

    @classmethod
    def load(cls, path: Path) -> InstallationManifest:
        """Read a manifest written by ``save``.

        Raises:
            ConfigError: missing, unparsable or invalid file.
        """
        if not path.is_file():
            raise ConfigError(f"no installation manifest at {path}", file=str(path))
        try:
            records = yaml.safe_load(path.read_text(encoding="utf-8")) or []
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}", file=str(path)) from e
        if not isinstance(records, list):
            raise ConfigError(f"{path}: expected a list of records", file=str(path))
        try:
            return cls.from_raw(records)
        except (ValidationError, TypeError) as e:
            raise ConfigError(f"Invalid installation manifest {path}: {e}", file=str(path)) from e
