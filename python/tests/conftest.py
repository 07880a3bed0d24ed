"""Shared fakes for the synchronization engine tests."""

from __future__ import annotations

import asyncio

import pytest

from pydep_pilot.config import Settings, SettingsStore
from pydep_pilot.errors import NonZeroExit, OperationCancelled
from pydep_pilot.packages.manager import is_protected
from pydep_pilot.packages.models import PackageRecord, PackageSpec
from pydep_pilot.stdio.diagnostics import DiagnosticLog
from pydep_pilot.sync.channel import ViewStateChannel
from pydep_pilot.sync.coordinator import SyncCoordinator
from pydep_pilot.sync.search import SearchSession


class FakeExecutor:
    """Records invocations and replays canned output."""

    def __init__(self, outputs: dict[str, str] | None = None, error: Exception | None = None):
        self.outputs = outputs or {}
        self.error = error
        self.calls: list[tuple[str, list[str]]] = []
        self.diagnostics = DiagnosticLog()

    async def execute(self, executable, args, token=None):
        self.calls.append((executable, list(args)))
        if self.error is not None:
            raise self.error
        key = " ".join(args[2:])
        for prefix, output in self.outputs.items():
            if key.startswith(prefix):
                return output
        return ""


class FakePip:
    """In-memory package manager."""

    def __init__(self, installed: dict[str, str] | None = None):
        self.installed = dict(installed or {})
        self.list_error: Exception | None = None
        self.fail_updates: dict[str, str] = {}
        self.updated: list[str] = []
        self.installs: list[str] = []
        self.removed: list[str] = []
        self.list_calls = 0
        self.update_gate: asyncio.Event | None = None
        self.executor = FakeExecutor()

    async def list_packages(self, token=None):
        self.list_calls += 1
        await asyncio.sleep(0)
        if self.list_error is not None:
            raise self.list_error
        return [PackageRecord(name, version) for name, version in self.installed.items()]

    async def update(self, pack, token=None):
        name = PackageSpec.parse(pack).name
        if self.update_gate is not None:
            await self.update_gate.wait()
        if token is not None and token.cancelled:
            raise OperationCancelled("cancelled")
        if name in self.fail_updates:
            raise NonZeroExit(1, self.fail_updates[name])
        self.updated.append(name)

    async def install(self, pack, token=None):
        spec = PackageSpec.parse(pack)
        self.installs.append(str(spec))
        self.installed[spec.name] = spec.version or "1.0"

    async def install_from_file(self, file_path, token=None):
        self.installs.append(f"-r {file_path}")

    async def remove(self, pack, token=None):
        spec = PackageSpec.parse(pack)
        if is_protected(spec.name):
            return False
        self.removed.append(spec.name)
        self.installed.pop(spec.name, None)
        return True

    def close(self):
        pass

    async def freeze(self, token=None):
        return "\n".join(f"{n}=={v}" for n, v in self.installed.items())


class FakePyPI:
    """Registry stand-in with optional per-package gating."""

    def __init__(self, latest: dict[str, str] | None = None, versions: dict[str, list[str]] | None = None):
        self.latest = latest or {}
        self.versions = versions or {}
        self.lookups: list[str] = []
        self.blocked: set[str] = set()
        self.gate: asyncio.Event | None = None
        self.in_flight = 0
        self.max_in_flight = 0
        self.endpoints: list[tuple[str, str]] = []

    async def latest_version(self, name, token=None):
        self.lookups.append(name)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            if name in self.blocked and self.gate is not None:
                await self.gate.wait()
            return self.latest.get(name)
        finally:
            self.in_flight -= 1

    async def version_list(self, name, token=None):
        return list(self.versions.get(name, []))

    async def search(self, keyword, page=1, token=None):
        raise NotImplementedError

    def use_endpoints(self, api_url, search_url):
        self.endpoints.append((api_url, search_url))

    async def aclose(self):
        pass


@pytest.fixture
def settings_store(tmp_path) -> SettingsStore:
    return SettingsStore(Settings(python_path="python3", workspace_dirs=[str(tmp_path)]))


def make_coordinator(pip, pypi, settings_store, search_session=None):
    channel = ViewStateChannel()
    coordinator = SyncCoordinator(
        pip,
        pypi,
        channel,
        settings_store,
        search_session=search_session or SearchSession(pypi, debounce=0)
    )
    return coordinator, channel
