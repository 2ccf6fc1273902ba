"""Tests for the shipped resolvers."""

from __future__ import annotations

import types

import pytest

from unit_discovery.discovery.resolvers import (
    ImportResolver,
    Resolver,
    SpecResolver,
    marker_filter,
)
from unit_discovery.errors import (
    UnitLinkError,
    UnitNotFoundError,
    UnsupportedTargetError,
)
from unit_discovery.models import LoaderContext, Location, LocationKind, UnitRef


class TestSpecResolver:
    """Tests for SpecResolver against real containers."""

    def test_is_resolver(self):
        assert isinstance(SpecResolver(), Resolver)

    def test_directory_unit(self, tmp_path, make_tree):
        make_tree(tmp_path, {"a/b/X.py": "VALUE = 1\n"})
        location = Location.directory(tmp_path / "a" / "b")

        unit = SpecResolver().resolve("a.b.X", LoaderContext(location, "X.py"))

        assert isinstance(unit, UnitRef)
        assert unit.name == "a.b.X"
        assert unit.origin == str(location.path / "X.py")
        assert unit.spec is not None

    def test_directory_missing_unit(self, tmp_path):
        location = Location.directory(tmp_path)
        with pytest.raises(UnitNotFoundError) as exc:
            SpecResolver().resolve("Missing", LoaderContext(location, "Missing.py"))
        assert exc.value.name == "Missing"

    def test_archive_unit(self, tmp_path, make_zip):
        path = make_zip(tmp_path / "lib.zip", {"a/b/X.py": "VALUE = 1\n"})
        location = Location.archive(path)

        unit = SpecResolver().resolve("a.b.X", LoaderContext(location, "a/b/X.py"))

        assert unit.name == "a.b.X"
        assert unit.origin.endswith("X.py")
        assert "lib.zip" in unit.origin

    def test_archive_missing_unit(self, tmp_path, make_zip):
        location = Location.archive(make_zip(tmp_path / "lib.zip", ["a/X.py"]))
        with pytest.raises(UnitNotFoundError):
            SpecResolver().resolve("a.Gone", LoaderContext(location, "a/Gone.py"))

    def test_nested_archive_unit(self, tmp_path, make_zip, make_zip_bytes):
        path = make_zip(tmp_path / "outer.zip", {"inner.zip": make_zip_bytes(["i/I.py"])})
        location = Location.archive(path).nested("inner.zip")

        unit = SpecResolver().resolve("i.I", LoaderContext(location, "i/I.py"))

        assert unit.origin == f"{location.key}!/i/I.py"

    def test_unsupported_kind(self, tmp_path):
        location = Location(tmp_path, LocationKind.search_path_entry)
        with pytest.raises(UnsupportedTargetError):
            SpecResolver().resolve("x", LoaderContext(location, "x.py"))

    def test_equal_refs_for_same_unit(self, tmp_path, make_tree):
        make_tree(tmp_path, ["m.py"])
        location = Location.directory(tmp_path)
        resolver = SpecResolver()

        first = resolver.resolve("m", LoaderContext(location, "m.py"))
        resolver.close()
        second = resolver.resolve("m", LoaderContext(location, "m.py"))

        assert first == second
        assert len({first, second}) == 1

    def test_close_is_idempotent(self, tmp_path, make_zip):
        location = Location.archive(make_zip(tmp_path / "lib.zip", ["a/X.py"]))
        resolver = SpecResolver()
        resolver.resolve("a.X", LoaderContext(location, "a/X.py"))

        resolver.close()
        resolver.close()

        assert resolver._importers == {}
        assert resolver._finders == {}


class TestImportResolver:
    """Tests for ImportResolver."""

    def test_imports_module(self, tmp_path, make_tree, monkeypatch):
        make_tree(tmp_path, {"ud_plugin_ok.py": "PLUGIN = True\n"})
        monkeypatch.syspath_prepend(str(tmp_path))

        location = Location.directory(tmp_path)
        unit = ImportResolver().resolve(
            "ud_plugin_ok", LoaderContext(location, "ud_plugin_ok.py")
        )

        assert unit.module.PLUGIN is True
        assert unit.origin.endswith("ud_plugin_ok.py")

    def test_missing_module(self, tmp_path):
        location = Location.directory(tmp_path)
        with pytest.raises(UnitNotFoundError):
            ImportResolver().resolve(
                "ud_does_not_exist", LoaderContext(location, "ud_does_not_exist.py")
            )

    def test_missing_dependency_is_link_error(self, tmp_path, make_tree, monkeypatch):
        make_tree(tmp_path, {"ud_needs_dep.py": "import ud_absent_dependency\n"})
        monkeypatch.syspath_prepend(str(tmp_path))

        location = Location.directory(tmp_path)
        with pytest.raises(UnitLinkError):
            ImportResolver().resolve(
                "ud_needs_dep", LoaderContext(location, "ud_needs_dep.py")
            )

    def test_module_error_is_link_error(self, tmp_path, make_tree, monkeypatch):
        make_tree(tmp_path, {"ud_raises.py": "raise ValueError('broken')\n"})
        monkeypatch.syspath_prepend(str(tmp_path))

        location = Location.directory(tmp_path)
        with pytest.raises(UnitLinkError, match="ValueError"):
            ImportResolver().resolve("ud_raises", LoaderContext(location, "ud_raises.py"))


class TestMarkerFilter:
    def test_checks_module_attribute(self):
        module = types.ModuleType("m")
        module.PLUGIN = True
        has_plugin = marker_filter("PLUGIN")

        assert has_plugin(UnitRef("m", "m.py", module=module))
        assert not has_plugin(UnitRef("m", "m.py", module=types.ModuleType("m")))
        assert not has_plugin(UnitRef("m", "m.py"))
        assert has_plugin.__name__ == "has_PLUGIN"
