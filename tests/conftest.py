"""
Shared test fixtures and configuration.
"""

from pathlib import Path

import pytest

from orchard.core.graph.dependency_graph import DependencyGraph, Exclusions
from orchard.core.models.os_identity import OSIdentity
from orchard.core.models.package import PackageNode
from orchard.core.osdeps.resolver import OSPackageResolver

TEST_OS = OSIdentity(names=("test",), versions=("v1.0",))
TEST_MANAGERS = ("apt-dpkg", "gem", "pip")


def make_resolver(definitions: dict, source: str = "osdeps.yml", **kwargs) -> OSPackageResolver:
    """Resolver targeting the ``test:v1.0`` OS, with apt-dpkg as OS manager."""
    kwargs.setdefault("operating_system", TEST_OS)
    kwargs.setdefault("package_managers", TEST_MANAGERS)
    kwargs.setdefault("os_package_manager", "apt-dpkg")
    return OSPackageResolver(definitions, source, **kwargs)


def node(name: str, deps=(), optional=(), osdeps=(), **kwargs) -> PackageNode:
    return PackageNode(
        name=name,
        dependencies=tuple(deps),
        optional_dependencies=frozenset(optional),
        os_dependencies=frozenset(osdeps),
        **kwargs,
    )


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def test_os() -> OSIdentity:
    return TEST_OS


@pytest.fixture
def chain_graph() -> DependencyGraph:
    """a → b → c, d with optional e, and a package set grouping a and d."""
    return DependencyGraph(
        [
            node("a", deps=["b"], osdeps=["os-a"]),
            node("b", deps=["c"]),
            node("c", osdeps=["os-c"]),
            node("d", optional=["e"]),
            node("e"),
        ],
        package_sets={"set": ["a", "d"]},
    )


@pytest.fixture
def exclusions(chain_graph: DependencyGraph) -> Exclusions:
    return Exclusions(chain_graph)
