"""Tests for ArchiveProcessor."""

from __future__ import annotations

import pytest

from unit_discovery.discovery.processors.archive import ArchiveProcessor
from unit_discovery.errors import ContainerOpenError, UnitLinkError
from unit_discovery.models import Location, LocationKind


@pytest.fixture
def outer(tmp_path, make_zip, make_zip_bytes):
    """outer.zip > inner.zip > deep.zip, one unit per level."""
    deep = make_zip_bytes(["d/D.py"])
    inner = make_zip_bytes({"i/I.py": "", "deep.zip": deep})
    path = make_zip(tmp_path / "outer.zip", {"o/O.py": "", "inner.zip": inner})
    return Location.archive(path)


async def _process(context, location, namespace="", is_root=True):
    assert context.processed.claim(location)
    await ArchiveProcessor(context).process(location, namespace, is_root=is_root)


class TestArchiveEntries:
    """Tests for unit entries inside one archive."""

    @pytest.mark.asyncio
    async def test_qualifies_entry_paths(
        self, tmp_path, make_zip, config, resolver, scan_context
    ):
        path = make_zip(
            tmp_path / "lib.zip",
            [
                "a/b/__init__.py",
                "a/b/X.py",
                "a/b/data.json",
                "a/b/__pycache__/X.py",
                "pkg-1.0.dist-info/Meta.py",
                "EGG-INFO/Info.py",
                "__main__.py",
                "top.py",
            ],
        )
        async with scan_context(config, resolver) as context:
            await _process(context, Location.archive(path))

        assert context.results.units() == {"a.b.X", "top"}
        assert context.stats.containers == 1

    @pytest.mark.asyncio
    async def test_loader_context(
        self, tmp_path, make_zip, config, resolver, scan_context
    ):
        location = Location.archive(make_zip(tmp_path / "lib.zip", ["a/b/X.py"]))
        async with scan_context(config, resolver) as context:
            await _process(context, location)

        (loader_context,) = resolver.contexts_for("a.b.X")
        assert loader_context.location == location
        assert loader_context.entry == "a/b/X.py"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "include_all, expected",
        [
            (True, {"a.b.X", "a.c.Q", "ab.W"}),
            (False, {"a.b.X"}),
        ],
    )
    async def test_namespace_restriction(
        self, tmp_path, make_zip, config, resolver, scan_context, include_all, expected
    ):
        path = make_zip(tmp_path / "lib.zip", ["a/b/X.py", "a/c/Q.py", "ab/W.py"])
        config = config.with_overrides(include_all_entries=include_all)
        async with scan_context(config, resolver) as context:
            await _process(context, Location.archive(path), "a.b")

        assert context.results.units() == expected

    @pytest.mark.asyncio
    async def test_multiple_namespaces(
        self, tmp_path, make_zip, config, resolver, scan_context
    ):
        path = make_zip(tmp_path / "lib.zip", ["a/b/X.py", "c/Q.py", "d/R.py"])
        config = config.with_overrides(include_all_entries=False)
        async with scan_context(config, resolver) as context:
            await _process(context, Location.archive(path), ("a.b", "c"))

        assert context.results.units() == {"a.b.X", "c.Q"}

    @pytest.mark.asyncio
    async def test_ignore_prefix_regardless_of_tag(
        self, tmp_path, make_zip, config, resolver, scan_context
    ):
        path = make_zip(tmp_path / "lib.zip", ["vendor/x/V.py", "app/A.py"])
        config = config.with_overrides(
            ignore_namespace_prefixes={"vendor"}, tag_filter=lambda unit: True
        )
        async with scan_context(config, resolver) as context:
            await _process(context, Location.archive(path))

        assert resolver.names == ["app.A"]
        assert context.results.units() == {"app.A"}

    @pytest.mark.asyncio
    async def test_tag_filter_gates_after_resolution(
        self, tmp_path, make_zip, config, resolver, scan_context
    ):
        path = make_zip(tmp_path / "lib.zip", ["app/Tagged.py", "app/Plain.py"])
        config = config.with_overrides(tag_filter=lambda unit: unit.endswith("Tagged"))
        async with scan_context(config, resolver) as context:
            await _process(context, Location.archive(path))

        assert sorted(resolver.names) == ["app.Plain", "app.Tagged"]
        assert context.results.units() == {"app.Tagged"}
        assert context.stats.resolved == 2
        assert context.stats.accepted == 1

    @pytest.mark.asyncio
    async def test_failing_tag_filter_reported(
        self, tmp_path, make_zip, errors, config, resolver, scan_context
    ):
        path = make_zip(tmp_path / "lib.zip", ["app/A.py"])

        def tag_filter(unit):
            raise AttributeError("no marker")

        config = config.with_overrides(tag_filter=tag_filter)
        async with scan_context(config, resolver) as context:
            await _process(context, Location.archive(path))

        assert context.results.units() == set()
        assert len(errors) == 1
        assert isinstance(errors[0], AttributeError)

    @pytest.mark.asyncio
    async def test_link_error_skips_only_that_entry(
        self, tmp_path, make_zip, errors, config, scan_context, make_resolver
    ):
        path = make_zip(tmp_path / "lib.zip", ["app/A.py", "app/B.py", "app/C.py"])
        resolver = make_resolver(failures={"app.B": UnitLinkError("app.B")})
        async with scan_context(config, resolver) as context:
            await _process(context, Location.archive(path))

        assert context.results.units() == {"app.A", "app.C"}
        assert [type(e) for e in errors] == [UnitLinkError]

    @pytest.mark.asyncio
    async def test_corrupt_archive_reported(
        self, tmp_path, errors, config, resolver, scan_context
    ):
        path = tmp_path / "bad.zip"
        path.write_bytes(b"PK\x03\x04 truncated")
        async with scan_context(config, resolver) as context:
            await _process(context, Location.archive(path))

        assert context.results.units() == set()
        assert len(errors) == 1
        assert isinstance(errors[0], ContainerOpenError)
        assert errors[0].location.path == path.resolve()


class TestNestedArchives:
    """The root/nested flags are independent; all four combinations."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "ignore_root, ignore_nested, expected",
        [
            (True, True, {"o.O"}),
            (True, False, {"o.O"}),
            (False, True, {"o.O", "i.I"}),
            (False, False, {"o.O", "i.I", "d.D"}),
        ],
    )
    async def test_root_archive_flags(
        self, outer, config, resolver, scan_context, ignore_root, ignore_nested, expected
    ):
        config = config.with_overrides(
            ignore_root_archive=ignore_root, ignore_nested_archives=ignore_nested
        )
        async with scan_context(config, resolver) as context:
            await _process(context, outer, is_root=True)

        assert context.results.units() == expected

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "ignore_root, ignore_nested, expected",
        [
            (True, True, {"o.O"}),
            (True, False, {"o.O", "i.I", "d.D"}),
            (False, True, {"o.O"}),
            (False, False, {"o.O", "i.I", "d.D"}),
        ],
    )
    async def test_non_root_archive_flags(
        self, outer, config, resolver, scan_context, ignore_root, ignore_nested, expected
    ):
        config = config.with_overrides(
            ignore_root_archive=ignore_root, ignore_nested_archives=ignore_nested
        )
        async with scan_context(config, resolver) as context:
            await _process(context, outer, is_root=False)

        assert context.results.units() == expected

    @pytest.mark.asyncio
    async def test_nested_loader_context_and_origin(
        self, outer, config, resolver, scan_context
    ):
        config = config.with_overrides(
            ignore_root_archive=False, ignore_nested_archives=False
        )
        async with scan_context(config, resolver) as context:
            await _process(context, outer)

        (loader_context,) = resolver.contexts_for("d.D")
        assert loader_context.location.members == ("inner.zip", "deep.zip")
        assert loader_context.location.key.endswith("outer.zip!/inner.zip!/deep.zip")
        assert loader_context.entry == "d/D.py"
        assert context.results.grouped() == {outer: {"o.O", "i.I", "d.D"}}
        assert outer.nested("inner.zip") in context.processed

    @pytest.mark.asyncio
    async def test_nested_archive_claimed_once(
        self, outer, config, resolver, scan_context
    ):
        """A nested key claimed elsewhere is not processed again."""
        config = config.with_overrides(
            ignore_root_archive=False, ignore_nested_archives=False
        )
        async with scan_context(config, resolver) as context:
            context.processed.claim(outer.nested("inner.zip"))
            await _process(context, outer)

        assert resolver.names == ["o.O"]

    @pytest.mark.asyncio
    async def test_nested_veto(self, outer, config, resolver, scan_context):
        def predicate(location, kind):
            return not (kind is LocationKind.archive and location.is_nested)

        config = config.with_overrides(
            ignore_root_archive=False,
            ignore_nested_archives=False,
            accept_predicate=predicate,
        )
        async with scan_context(config, resolver) as context:
            await _process(context, outer)

        assert resolver.names == ["o.O"]
        assert outer.nested("inner.zip") not in context.processed

    @pytest.mark.asyncio
    async def test_ignored_nested_name(self, outer, config, resolver, scan_context):
        config = config.with_overrides(
            ignore_root_archive=False,
            ignore_nested_archives=False,
            ignore_archive_name_terms={"Inner"},
        )
        async with scan_context(config, resolver) as context:
            await _process(context, outer)

        assert resolver.names == ["o.O"]

    @pytest.mark.asyncio
    async def test_corrupt_nested_archive_isolated(
        self, tmp_path, make_zip, errors, config, resolver, scan_context
    ):
        path = make_zip(
            tmp_path / "outer.zip", {"o/O.py": "", "broken.zip": b"garbage"}
        )
        config = config.with_overrides(ignore_root_archive=False)
        async with scan_context(config, resolver) as context:
            await _process(context, Location.archive(path))

        assert context.results.units() == {"o.O"}
        assert len(errors) == 1
        assert isinstance(errors[0], ContainerOpenError)
        assert errors[0].location.members == ("broken.zip",)
