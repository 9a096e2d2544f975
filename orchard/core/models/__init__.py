"""
Domain models — the types the resolver, selection engine and importer share.

All models are re-exported here for convenient access:

    from orchard.core.models import PackageNode, PackageSpec, OSIdentity, ImportReport
"""

from orchard.core.models.import_result import (
    ImportOptions,
    ImportReport,
    ImportResult,
    VCSStatus,
)
from orchard.core.models.os_identity import OSIdentity
from orchard.core.models.package import PackageNode, VCSDefinition
from orchard.core.models.package_spec import (
    Branch,
    Empty,
    Entry,
    EntryList,
    EntryMap,
    Ignore,
    Name,
    Nonexistent,
    PackageSpec,
    parse_entry,
)
from orchard.core.models.selection import PackageSelection, SelectionBuilder

__all__ = [
    # package_spec.py
    "Branch",
    "Empty",
    "Entry",
    "EntryList",
    "EntryMap",
    "Ignore",
    # import_result.py
    "ImportOptions",
    "ImportReport",
    "ImportResult",
    "Name",
    "Nonexistent",
    # os_identity.py
    "OSIdentity",
    # package.py
    "PackageNode",
    # selection.py
    "PackageSelection",
    "PackageSpec",
    "SelectionBuilder",
    "VCSDefinition",
    "VCSStatus",
    "parse_entry",
]
