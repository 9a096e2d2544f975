"""Adapters — bindings to version control and package management tools.

Public re-exports for convenient access.
"""

from orchard.adapters.base import ImportContext, Importer
from orchard.adapters.mock import MockImporter, MockImporterFactory
from orchard.adapters.registry import ImporterRegistry

__all__ = [
    "ImportContext",
    "Importer",
    "ImporterRegistry",
    "MockImporter",
    "MockImporterFactory",
]
