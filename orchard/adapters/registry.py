"""
Importer registry — VCS type → importer factory.

The orchestrator asks the registry for a fresh importer per package.
Factories are resolved by the package's ``vcs.type``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from orchard.adapters.base import Importer
from orchard.core.errors import ConfigError
from orchard.core.models.package import PackageNode

logger = logging.getLogger(__name__)

ImporterFactory = Callable[[PackageNode], Importer]


class ImporterRegistry:
    """Central registry of importer factories.

    Features:
        - Register/unregister factories by VCS type
        - Mock mode: one factory answers for every VCS type
        - Create a fresh importer for a package
    """

    def __init__(self, mock_factory: ImporterFactory | None = None):
        self._factories: dict[str, ImporterFactory] = {}
        self._mock_factory = mock_factory

    @property
    def mock_mode(self) -> bool:
        return self._mock_factory is not None

    def set_mock_mode(self, factory: ImporterFactory | None) -> None:
        """Route every package to ``factory`` (None turns mock mode off)."""
        self._mock_factory = factory

    def register(self, vcs_type: str, factory: ImporterFactory) -> None:
        if vcs_type in self._factories:
            logger.warning("Overwriting existing importer: %s", vcs_type)
        self._factories[vcs_type] = factory
        logger.debug("Registered importer: %s", vcs_type)

    def unregister(self, vcs_type: str) -> None:
        self._factories.pop(vcs_type, None)

    def list_types(self) -> list[str]:
        return list(self._factories)

    def __contains__(self, vcs_type: object) -> bool:
        return vcs_type in self._factories

    def create(self, package: PackageNode) -> Importer:
        """A new importer for ``package``.

        Raises:
            ConfigError: no importer for the package's VCS type.
        """
        if self._mock_factory is not None:
            return self._mock_factory(package)
        factory = self._factories.get(package.vcs.type)
        if factory is None:
            raise ConfigError(
                f"no importer registered for VCS type '{package.vcs.type}' "
                f"(package {package.name})"
            )
        return factory(package)

    @classmethod
    def default(cls) -> ImporterRegistry:
        """Registry with the git and local importers."""
        from orchard.adapters.vcs.git import GitImporter
        from orchard.adapters.vcs.local import LocalImporter

        registry = cls()
        registry.register("git", GitImporter)
        registry.register("local", LocalImporter)
        registry.register("none", LocalImporter)
        return registry
