"""
Configuration loader — reads orchard.yml into a WorkspaceConfig.

Reads YAML, validates it against the pydantic schema, then applies the
environment overrides:

    ORCHARD_OS        OS identity as ``names:versions`` (empty = unknown OS)
    ORCHARD_PARALLEL  parallel_import_level
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from orchard.core.errors import ConfigError
from orchard.core.graph.dependency_graph import DependencyGraph, Exclusions
from orchard.core.graph.selection import OsdepOverride
from orchard.core.models.os_identity import OSIdentity
from orchard.core.osdeps.detection import OS_ENV_VAR, detect_operating_system
from orchard.core.osdeps.resolver import OSPackageResolver

logger = logging.getLogger(__name__)

CONFIG_FILE = "orchard.yml"
PARALLEL_ENV_VAR = "ORCHARD_PARALLEL"


class OperatingSystemOverride(BaseModel):
    names: list[str] = Field(default_factory=list)
    versions: list[str] = Field(default_factory=list)

    def identity(self) -> OSIdentity:
        if not self.names:
            return OSIdentity.unknown()
        return OSIdentity(names=tuple(self.names), versions=tuple(self.versions)).normalized()


class WorkspaceConfig(BaseModel):
    """Workspace-wide settings for resolution and import."""

    parallel_import_level: int = Field(default_factory=lambda: os.cpu_count() or 1)
    retry_count: int = 0
    prefer_indep_over_os_packages: bool = False
    os_package_manager: str | None = None
    operating_system: OperatingSystemOverride | None = None
    osdeps_overrides: dict[str, OsdepOverride] = Field(default_factory=dict)
    excluded_packages: list[str] = Field(default_factory=list)   # regexes or package sets
    ignored_packages: list[str] = Field(default_factory=list)
    layout: list[str] = Field(default_factory=list)

    @field_validator("parallel_import_level")
    @classmethod
    def _check_parallel(cls, v: int) -> int:
        if v < 1:
            raise ValueError("parallel_import_level must be at least 1")
        return v

    @field_validator("retry_count")
    @classmethod
    def _check_retry(cls, v: int) -> int:
        if v < 0:
            raise ValueError("retry_count cannot be negative")
        return v

    def os_identity(self, root: str | Path = "/") -> OSIdentity:
        """Configured identity, or the detected one."""
        if self.operating_system is not None:
            return self.operating_system.identity()
        return detect_operating_system(root, env={})

    def exclusions(self, graph: DependencyGraph) -> Exclusions:
        return Exclusions(
            graph,
            manifest_patterns=self.excluded_packages,
            ignored=self.ignored_packages,
            layout=self.layout,
        )

    def configure_resolver(self, resolver: OSPackageResolver) -> None:
        """Apply the resolver-related settings.

        Raises:
            ConfigError: the configured OS package manager is unknown.
        """
        resolver.prefer_indep_over_os_packages = self.prefer_indep_over_os_packages
        try:
            resolver.os_package_manager = self.os_package_manager
        except ValueError as e:
            raise ConfigError(str(e)) from e


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for orchard.yml from ``start_dir`` (default: cwd) upward."""
    current = (start_dir or Path.cwd()).resolve()
    while True:
        candidate = current / CONFIG_FILE
        if candidate.is_file():
            return candidate
        if current.parent == current:
            return None
        current = current.parent


def apply_env_overrides(data: dict, env: Mapping[str, str]) -> dict:
    data = dict(data)
    if OS_ENV_VAR in env:
        identity = OSIdentity.parse(env[OS_ENV_VAR])
        data["operating_system"] = {"names": list(identity.names), "versions": list(identity.versions)}
    if env.get(PARALLEL_ENV_VAR):
        try:
            data["parallel_import_level"] = int(env[PARALLEL_ENV_VAR])
        except ValueError as e:
            raise ConfigError(f"{PARALLEL_ENV_VAR} must be an integer, got {env[PARALLEL_ENV_VAR]!r}") from e
    return data


def load_config(
    path: Path | None = None,
    env: Mapping[str, str] | None = None,
    required: bool = False,
) -> WorkspaceConfig:
    """Load and validate the workspace configuration.

    Args:
        path: explicit config file. If None, searches upward from cwd.
        env: environment for overrides (default: ``os.environ``).
        required: raise when no file is found instead of using defaults.

    Raises:
        ConfigError: the file is missing (when required) or invalid.
    """
    env = os.environ if env is None else env
    if path is None:
        path = find_config_file()

    data: dict = {}
    if path is None:
        if required:
            raise ConfigError(f"No {CONFIG_FILE} found")
        logger.debug("No %s found, using defaults", CONFIG_FILE)
    else:
        if not path.is_file():
            raise ConfigError(f"Config file not found: {path}", file=str(path))
        logger.debug("Loading workspace config from %s", path)
        try:
            raw = yaml.safe_load(path.read_text(encoding="utf-8"))
        except OSError as e:
            raise ConfigError(f"Cannot read {path}: {e}", file=str(path)) from e
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}", file=str(path)) from e
        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise ConfigError(
                f"Expected a YAML mapping in {path}, got {type(raw).__name__}", file=str(path)
            )
        data = raw

    data = apply_env_overrides(data, env)
    try:
        config = WorkspaceConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid workspace configuration: {e}", file=str(path) if path else None) from e

    logger.debug(
        "workspace config: parallel=%d retry=%d",
        config.parallel_import_level,
        config.retry_count,
    )
    return config
