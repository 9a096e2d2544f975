"""
Tests for the OS package resolver.
"""

import pytest

from conftest import make_resolver
from orchard.core.errors import ConfigError, InvalidRecursiveReference, MissingOSDep
from orchard.core.models.os_identity import OSIdentity
from orchard.core.osdeps.resolver import (
    Availability,
    ManagerResult,
    OSPackageResolver,
    ResolutionOutcome,
)

AVAILABLE = ResolutionOutcome.AVAILABLE


# ── Version Matching Tests ─────────────────────────────────────────


class TestVersionMatching:
    def test_exact_version_wins(self):
        r = make_resolver({"test": {"test": {"v1.0": "pkg1.0", "default": "pkgdef"}}})
        assert r.resolve_package("test") == [ManagerResult("apt-dpkg", AVAILABLE, ("pkg1.0",))]

    def test_default_version_fallback(self):
        r = make_resolver({"test": {"test": {"v1.0": "pkg1.0", "default": "pkgdef"}}})
        other = OSIdentity(names=("test",), versions=("v2.0",))
        assert r.resolve_package("test", other) == [ManagerResult("apt-dpkg", AVAILABLE, ("pkgdef",))]

    def test_comma_separated_keys(self):
        r = make_resolver({"pkg": {"other, test": {"v0.9,v1.0": "both"}}})
        assert r.resolve_package("pkg") == [ManagerResult("apt-dpkg", AVAILABLE, ("both",))]

    def test_os_name_priority(self):
        r = make_resolver(
            {"pkg": {"debian": "deb-pkg", "ubuntu": "ubuntu-pkg"}},
            operating_system=OSIdentity(names=("ubuntu", "debian"), versions=("22.04",)),
        )
        assert r.resolve_package("pkg") == [ManagerResult("apt-dpkg", AVAILABLE, ("ubuntu-pkg",))]

    def test_highest_priority_key_wins_even_when_empty(self):
        r = make_resolver({"pkg": {"test": {"v2.0": "x"}, "default": "fallback"}})
        # "test" matched at the name level, nothing under it for v1.0
        assert r.resolve_package("pkg") == []

    def test_default_os_key(self):
        r = make_resolver({"pkg": {"other": "x", "default": "generic"}})
        assert r.resolve_package("pkg") == [ManagerResult("apt-dpkg", AVAILABLE, ("generic",))]

    def test_unknown_os_uses_default_only(self):
        r = make_resolver({"pkg": {"test": "x", "default": "generic"}}, operating_system=OSIdentity.unknown())
        assert r.resolve_package("pkg") == [ManagerResult("apt-dpkg", AVAILABLE, ("generic",))]

    def test_unknown_os_manager_without_override(self):
        r = OSPackageResolver({"pkg": {"default": "generic"}}, package_managers=("apt-dpkg", "unknown"))
        assert r.resolve_package("pkg") == [ManagerResult("unknown", AVAILABLE, ("generic",))]

    def test_os_manager_derived_from_os_family(self):
        r = OSPackageResolver(
            {"pkg": {"debian": "deb"}},
            operating_system=OSIdentity(names=("ubuntu", "debian"), versions=("22.04",)),
        )
        assert r.os_package_manager_for() == "apt-dpkg"
        assert r.resolve_package("pkg") == [ManagerResult("apt-dpkg", AVAILABLE, ("deb",))]


# ── Global Entries Tests ───────────────────────────────────────────


class TestGlobalEntries:
    def test_global_name_is_additive(self):
        r = make_resolver({"pkg": [{"test": "osdep0"}, "global0"]})
        assert r.resolve_package("pkg") == [
            ManagerResult("apt-dpkg", AVAILABLE, ("osdep0", "global0")),
        ]

    def test_global_package_manager_entry(self):
        r = make_resolver({"pkg": [{"test": "osdep0"}, {"gem": "gem0"}]})
        assert r.resolve_package("pkg") == [
            ManagerResult("apt-dpkg", AVAILABLE, ("osdep0",)),
            ManagerResult("gem", AVAILABLE, ("gem0",)),
        ]

    def test_bare_manager_keyword_names_the_osdep(self):
        r = make_resolver({"nokogiri": "gem"})
        assert r.resolve_package("nokogiri") == [ManagerResult("gem", AVAILABLE, ("nokogiri",))]

    def test_manager_entry_under_os_version(self):
        r = make_resolver({"pkg": {"test": {"v1.0": {"pip": "pip0"}}}})
        assert r.resolve_package("pkg") == [ManagerResult("pip", AVAILABLE, ("pip0",))]

    def test_manager_entry_list(self):
        r = make_resolver({"pkg": {"gem": ["a", "b"]}})
        assert r.resolve_package("pkg") == [ManagerResult("gem", AVAILABLE, ("a", "b"))]


# ── Keyword Tests ──────────────────────────────────────────────────


class TestKeywords:
    def test_ignore(self):
        r = make_resolver({"pkg": {"test": "ignore", "default": "pkgdef"}})
        assert r.resolve_package("pkg") == [ManagerResult("apt-dpkg", ResolutionOutcome.IGNORE, ())]
        assert r.availability("pkg") == Availability.IGNORE
        assert r.has("pkg")

    def test_nonexistent(self):
        r = make_resolver({"pkg": {"test": "nonexistent"}})
        assert r.resolve_package("pkg") == [ManagerResult("apt-dpkg", ResolutionOutcome.NONEXISTENT, ())]
        assert r.availability("pkg") == Availability.NONEXISTENT
        assert not r.has("pkg")

    def test_nonexistent_dominates_other_managers(self):
        r = make_resolver({"pkg": [{"test": "nonexistent"}, {"gem": "gem0"}]})
        assert r.resolve_package("pkg") == [
            ManagerResult("apt-dpkg", ResolutionOutcome.NONEXISTENT, ()),
            ManagerResult("gem", AVAILABLE, ("gem0",)),
        ]
        assert r.availability("pkg") == Availability.NONEXISTENT

    def test_nonexistent_at_version_level(self):
        r = make_resolver({"pkg": {"test": {"v1.0": "nonexistent", "default": "x"}}})
        assert r.availability("pkg") == Availability.NONEXISTENT
        other = OSIdentity(names=("test",), versions=("v2.0",))
        assert r.availability("pkg", other) == Availability.AVAILABLE


# ── Availability Tests ─────────────────────────────────────────────


class TestAvailability:
    def test_no_package(self):
        r = make_resolver({})
        assert r.resolve_package("missing") is None
        assert r.availability("missing") == Availability.NO_PACKAGE

    def test_wrong_os(self):
        r = make_resolver({"pkg": {"other": "x"}})
        assert r.resolve_package("pkg") == []
        assert r.availability("pkg") == Availability.WRONG_OS

    def test_unknown_os(self):
        r = make_resolver({"pkg": {"other": "x"}}, operating_system=OSIdentity.unknown())
        assert r.availability("pkg") == Availability.UNKNOWN_OS

    def test_available(self):
        r = make_resolver({"pkg": {"test": "x"}})
        assert r.availability("pkg") == Availability.AVAILABLE
        assert r.has("pkg")

    def test_ordering(self):
        assert Availability.NO_PACKAGE < Availability.WRONG_OS < Availability.UNKNOWN_OS
        assert Availability.UNKNOWN_OS < Availability.NONEXISTENT < Availability.AVAILABLE
        assert Availability.AVAILABLE < Availability.IGNORE


# ── Preference Tests ───────────────────────────────────────────────


class TestPreferIndep:
    DEFS = {"pkg": {"test": "osdep0", "default": {"gem": "gem0"}}}

    def test_os_package_preferred_by_default(self):
        r = make_resolver(self.DEFS)
        assert r.resolve_package("pkg") == [ManagerResult("apt-dpkg", AVAILABLE, ("osdep0",))]

    def test_prefer_indep_over_os_packages(self):
        r = make_resolver(self.DEFS, prefer_indep_over_os_packages=True)
        assert r.resolve_package("pkg") == [ManagerResult("gem", AVAILABLE, ("gem0",))]


# ── Package Manager Setting Tests ──────────────────────────────────


class TestOSPackageManager:
    def test_unknown_manager_rejected(self):
        r = make_resolver({})
        with pytest.raises(ValueError, match="not a known package manager"):
            r.os_package_manager = "nosuchmanager"

    def test_override_changes_target_manager(self):
        r = make_resolver({"pkg": {"test": "x"}}, os_package_manager="pip")
        assert r.resolve_package("pkg") == [ManagerResult("pip", AVAILABLE, ("x",))]


# ── Recursive Reference Tests ──────────────────────────────────────


class TestRecursion:
    def test_follows_osdep_reference(self):
        r = make_resolver({"pkg": {"osdep": "other"}, "other": {"test": "x"}})
        assert r.resolve_package("pkg") == [ManagerResult("apt-dpkg", AVAILABLE, ("x",))]

    def test_non_recursive_keeps_reference(self):
        r = make_resolver({"pkg": {"osdep": "other"}, "other": {"test": "x"}})
        assert r.resolve_package("pkg", resolve_recursive=False) == [
            ManagerResult("osdep", AVAILABLE, ("other",)),
        ]

    def test_missing_target(self):
        r = make_resolver({"pkg": {"osdep": "missing"}})
        with pytest.raises(InvalidRecursiveReference, match="'missing', which does not seem to exist"):
            r.resolve_package("pkg")

    def test_loop(self):
        r = make_resolver({"a": {"osdep": "b"}, "b": {"osdep": "a"}})
        with pytest.raises(InvalidRecursiveReference, match="loop"):
            r.resolve_package("a")

    def test_depth_bound(self):
        defs = {"a": {"osdep": "b"}, "b": {"osdep": "c"}, "c": {"test": "x"}}
        with pytest.raises(InvalidRecursiveReference, match="maximum"):
            make_resolver(defs).resolve_package("a")

    def test_deeper_bound(self):
        defs = {"a": {"osdep": "b"}, "b": {"osdep": "c"}, "c": {"test": "x"}}
        r = make_resolver(defs, max_recursion_depth=2)
        assert r.resolve_package("a") == [ManagerResult("apt-dpkg", AVAILABLE, ("x",))]


# ── Alias Tests ────────────────────────────────────────────────────


class TestAliases:
    def test_alias_resolution(self):
        r = make_resolver({"ruby30": {"test": "ruby3.0"}})
        r.add_alias("ruby", "ruby30")
        assert r.resolve_name("ruby") == ["ruby", "ruby30"]
        assert r.resolve_package("ruby") == [ManagerResult("apt-dpkg", AVAILABLE, ("ruby3.0",))]
        assert r.spec("ruby") is not None
        assert "ruby" not in r

    def test_alias_loop(self):
        r = make_resolver({})
        r.add_alias("a", "b")
        r.add_alias("b", "a")
        with pytest.raises(ConfigError, match="alias loop"):
            r.resolve_name("a")


# ── Merge Tests ────────────────────────────────────────────────────


class TestMerge:
    def test_override_warns_with_both_resolutions(self):
        r1 = make_resolver({"pkg": {"test": "osdep0"}}, source="bla/bla")
        r2 = make_resolver({"pkg": {"test": "osdep1"}}, source="bla/blo")
        warnings = r1.merge(r2)
        assert warnings == [
            "osdeps definition for pkg, previously defined in bla/bla overridden by bla/blo:\n"
            "  resp. apt-dpkg: osdep0\n"
            "  and   apt-dpkg: osdep1"
        ]
        assert r1.source_of("pkg") == "bla/blo"
        assert r1.resolve_package("pkg") == [ManagerResult("apt-dpkg", AVAILABLE, ("osdep1",))]

    def test_multiline_warning_indentation(self):
        r1 = make_resolver({"pkg": [{"test": "a"}, {"gem": "g"}]}, source="one")
        r2 = make_resolver({"pkg": {"test": "b"}}, source="two")
        (warning,) = r1.merge(r2)
        assert warning.splitlines()[1:] == [
            "  resp. apt-dpkg: a",
            "        gem: g",
            "  and   apt-dpkg: b",
        ]

    def test_identical_definitions_do_not_warn(self):
        r1 = make_resolver({"pkg": {"test": "osdep0"}}, source="one")
        r2 = make_resolver({"pkg": {"test": "osdep0"}}, source="two")
        assert r1.merge(r2) == []

    def test_same_resolution_does_not_warn(self):
        r1 = make_resolver({"pkg": {"test": "osdep0"}}, source="one")
        r2 = make_resolver({"pkg": {"test": ["osdep0"], "other": "x"}}, source="two")
        assert r1.merge(r2) == []
        assert len(r1.all_definitions("pkg")) == 2

    def test_one_warning_per_changed_name(self):
        r1 = make_resolver({"a": {"test": "a0"}, "b": {"test": "b0"}, "c": "c0"}, source="one")
        r2 = make_resolver({"a": {"test": "a1"}, "b": {"test": "b1"}, "c": "c0"}, source="two")
        warnings = r1.merge(r2)
        assert len(warnings) == 2
        assert all("one" in w and "two" in w for w in warnings)

    def test_new_names_added(self):
        r = make_resolver({"a": "x"})
        assert r.add_entries({"b": "y"}, "extra.yml") == []
        assert r.names() == ["a", "b"]
        assert r.source_of("b") == "extra.yml"


# ── Grouping Tests ─────────────────────────────────────────────────


class TestResolveOSPackages:
    DEFS = {
        "a": {"test": "pa"},
        "b": [{"test": "pb"}, {"gem": "gb"}],
        "c": {"test": "ignore"},
        "gone": {"test": "nonexistent"},
        "elsewhere": {"other": "x"},
    }

    def test_groups_by_manager(self):
        r = make_resolver(self.DEFS)
        assert r.resolve_os_packages(["a", "b", "c"]) == [("apt-dpkg", ["pa", "pb"]), ("gem", ["gb"])]

    def test_missing_definition(self):
        with pytest.raises(MissingOSDep, match="there is no osdeps definition for missing"):
            make_resolver(self.DEFS).resolve_os_packages(["missing"])

    def test_wrong_os(self):
        with pytest.raises(MissingOSDep, match="not for this operating system"):
            make_resolver(self.DEFS).resolve_os_packages(["elsewhere"])

    def test_nonexistent(self):
        with pytest.raises(MissingOSDep, match="does not exist on your OS"):
            make_resolver(self.DEFS).resolve_os_packages(["gone"])


# ── Definition Validation Tests ────────────────────────────────────


class TestVerifyDefinitions:
    def test_numeric_key(self):
        with pytest.raises(ConfigError, match="quotes around numbers"):
            OSPackageResolver.verify_definitions({"pkg": {"test": {1.0: "x"}}}, "osdeps.yml")

    def test_numeric_value(self):
        with pytest.raises(ConfigError, match="quotes around numbers") as exc:
            make_resolver({"pkg": {"test": 10}}, source="osdeps.yml")
        assert exc.value.file == "osdeps.yml"

    def test_valid(self):
        OSPackageResolver.verify_definitions({"pkg": {"test": {"1.0": ["x", "y"]}}})
