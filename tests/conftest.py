"""Shared fixtures: on-disk trees, zip archives and a recording resolver."""

from __future__ import annotations

import io
import threading
import zipfile
from contextlib import asynccontextmanager
from pathlib import Path

import pytest

from unit_discovery.config.scan_config import ScanConfiguration, clear_config_cache
from unit_discovery.discovery.executor import BlockingRunner
from unit_discovery.discovery.processors.base import ScanContext
from unit_discovery.errors import UnsupportedTargetError


def write_tree(root: Path, files: dict[str, str] | list[str]) -> Path:
    """Create files under ``root``; a list means empty files."""
    if isinstance(files, list):
        files = {name: "" for name in files}
    for name, content in files.items():
        path = root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    return root


def zip_bytes(members: dict[str, str | bytes] | list[str]) -> bytes:
    """Build an in-memory zip; a list means empty members."""
    if isinstance(members, list):
        members = {name: "" for name in members}
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, content in members.items():
            archive.writestr(name, content)
    return buffer.getvalue()


def write_zip(path: Path, members: dict[str, str | bytes] | list[str]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(zip_bytes(members))
    return path


class RecordingResolver:
    """Resolver returning the qualified name, recording every call.

    Args:
        failures: Exception to raise per qualified name
        unsupported: Container names for which UnsupportedTargetError is raised
        missing: Qualified names for which None is returned
    """

    def __init__(self, failures=None, unsupported=(), missing=()):
        self._lock = threading.Lock()
        self.calls = []
        self.failures = dict(failures or {})
        self.unsupported = set(unsupported)
        self.missing = set(missing)
        self.closed = 0

    def resolve(self, name, context):
        with self._lock:
            self.calls.append((name, context))
        if context.location.name in self.unsupported:
            raise UnsupportedTargetError(f"unsupported: {context.location.key}")
        error = self.failures.get(name)
        if error is not None:
            raise error
        if name in self.missing:
            return None
        return name

    def close(self):
        self.closed += 1

    @property
    def names(self):
        with self._lock:
            return [name for name, _ in self.calls]

    def contexts_for(self, name):
        with self._lock:
            return [context for n, context in self.calls if n == name]


@pytest.fixture(autouse=True)
def _fresh_layout_cache():
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture
def resolver():
    return RecordingResolver()


@pytest.fixture
def errors():
    return []


@pytest.fixture
def config(errors):
    return ScanConfiguration(error_handler=errors.append)


@pytest.fixture
def scan_context():
    """Factory for a ScanContext bound to a live BlockingRunner.

    Usage::

        async with scan_context(config, resolver) as context:
            ...
    """

    @asynccontextmanager
    async def _make(config, resolver, **kwargs):
        async with BlockingRunner(max_workers=4, max_concurrency=8) as runner:
            yield ScanContext(config=config, resolver=resolver, runner=runner, **kwargs)

    return _make


@pytest.fixture
def make_tree():
    return write_tree


@pytest.fixture
def make_zip():
    return write_zip


@pytest.fixture
def make_zip_bytes():
    return zip_bytes


@pytest.fixture
def make_resolver():
    return RecordingResolver
