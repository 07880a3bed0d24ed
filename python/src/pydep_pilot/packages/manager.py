"""
Pip Package Manager

This module drives `python -m pip` through the command executor. Every
package-manager operation is expressed as an argument vector; the package
source is appended for commands that talk to an index.
"""

import json
import os
from typing import Any

from ..cancellation import CancellationToken
from ..config import PYPI_DEFAULT, Settings, SettingsStore, pilot_logger
from ..errors import InvalidPackageSpec, NoInterpreterConfigured, ParseFailed, PilotError
from ..stdio.executor import CommandExecutor
from .catalog import merge_updates
from .models import PackageRecord, PackageSpec

# The package manager's own bootstrap packages are never removed
PROTECTED_PACKAGES = ("pip", "setuptools", "wheel")


def is_protected(name: str) -> bool:
    return name in PROTECTED_PACKAGES


def parse_listing(output: str) -> list[dict[str, Any]]:
    """
    Parse `pip list --format json` output.

    Raises:
        ParseFailed: If the output is not a JSON array of package entries
    """
    try:
        data = json.loads(output.replace("\n", ""))
    except ValueError as e:
        raise ParseFailed(
            'Get package failed, please run "pip list --format json" or '
            f'"pip3 list --format json" check pip support json format: {e}'
        ) from e

    if not isinstance(data, list) or not all(isinstance(i, dict) and i.get("name") for i in data):
        raise ParseFailed(
            'Get package failed, "pip list --format json" did not return a list of packages'
        )
    return data


class PipManager:
    """Runs pip commands for the configured interpreter."""

    def __init__(self, executor: CommandExecutor, settings: SettingsStore):
        self.executor = executor
        self.settings = settings
        self.source = settings.current.source
        self._unsubscribe = settings.subscribe(self._on_settings_changed)

    def _on_settings_changed(self, settings: Settings, changed: set[str]):
        if "index_url" in changed:
            self.source = settings.source
            pilot_logger.info(f"Package source set to {self.source}")

    def close(self):
        self._unsubscribe()

    @property
    def python_path(self) -> str:
        """The configured interpreter."""
        python_path = self.settings.current.python_path
        if not python_path:
            raise NoInterpreterConfigured(
                "No Python interpreter configured. Please select a Python interpreter."
            )
        # Only full paths are checked; bare commands like python3 resolve through PATH
        is_full_path = os.path.isabs(python_path) or os.sep in python_path
        if is_full_path and not os.path.exists(python_path):
            raise NoInterpreterConfigured(
                f"Python interpreter not found at: {python_path}. Please select a valid Python interpreter."
            )
        return python_path

    async def pip(self, args: list[str], token: CancellationToken | None = None) -> str:
        """Run `python -m pip` with the given arguments."""
        return await self.executor.execute(self.python_path, ["-m", "pip", *args], token)

    async def pip_with_source(self, args: list[str], token: CancellationToken | None = None) -> str:
        """Run pip, appending the package source when a custom one is configured."""
        args = list(args)
        if self.source and self.source != PYPI_DEFAULT:
            args += ["-i", self.source]
        return await self.pip(args, token)

    async def list_packages(self, token: CancellationToken | None = None) -> list[PackageRecord]:
        """List installed packages."""
        output = await self.pip(["list", "--format", "json"], token)
        return [PackageRecord.from_listing(entry) for entry in parse_listing(output)]

    async def list_outdated(self, token: CancellationToken | None = None) -> list[dict[str, Any]]:
        """List packages with a newer version on the package source."""
        output = await self.pip_with_source(["list", "--outdated", "--format", "json"], token)
        return parse_listing(output)

    async def list_with_updates(self, token: CancellationToken | None = None) -> list[PackageRecord]:
        """List installed packages merged with the outdated listing."""
        records = await self.list_packages(token)
        try:
            updates = await self.list_outdated(token)
        except PilotError as e:
            pilot_logger.warning(f"Could not check outdated packages: {e}")
            return records
        return merge_updates(records, updates)

    async def freeze(self, token: CancellationToken | None = None) -> str:
        output = await self.pip(["freeze"], token)
        return output.strip()

    async def _install(self, args: list[str], token: CancellationToken | None):
        await self.pip_with_source(["install", "-U", *args], token)

    def _require_spec(self, pack) -> PackageSpec:
        spec = PackageSpec.parse(pack)
        if spec is None:
            raise InvalidPackageSpec("Invalid Name")
        return spec

    async def install(self, pack, token: CancellationToken | None = None):
        """Install a package spec (`name` or `name==version`)."""
        spec = self._require_spec(pack)
        await self._install([str(spec)], token)

    async def update(self, pack, token: CancellationToken | None = None):
        """Upgrade a package."""
        spec = self._require_spec(pack)
        await self._install(["--upgrade", str(spec)], token)

    async def install_from_file(self, file_path: str, token: CancellationToken | None = None):
        """Install everything listed in a requirements file."""
        if not file_path:
            raise InvalidPackageSpec("Invalid Path")
        await self._install(["-r", str(file_path)], token)

    async def remove(self, pack, token: CancellationToken | None = None) -> bool:
        """
        Uninstall a package.

        Returns:
            False for protected packages, which are left installed
        """
        spec = self._require_spec(pack)
        if is_protected(spec.name):
            pilot_logger.info(f"Refusing to remove protected package {spec.name}")
            return False

        await self.pip(["uninstall", spec.name, "-y"], token)
        return True
