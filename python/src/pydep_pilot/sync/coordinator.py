"""
Synchronization Coordinator

Owns the package catalog and reconciles the local pip listing with remote
PyPI metadata. A refresh lists installed packages first, publishes them, then
enriches them with latest versions in bounded concurrent batches, publishing
a snapshot after each batch settles.
"""

import asyncio
from enum import Enum
from pathlib import Path

from ..cancellation import CancellationToken
from ..config import Settings, SettingsStore, pilot_logger
from ..errors import (
    NoInterpreterConfigured,
    OperationCancelled,
    PilotError,
    RegistryError,
    SpawnFailed,
)
from ..packages.catalog import PackageCatalog
from ..packages.manager import PROTECTED_PACKAGES, PipManager, is_protected
from ..packages.models import PackageSpec, SearchResult, UpdateReport
from ..packages.pypi_client import PyPIClient
from .channel import ViewStateChannel
from .messages import CommandType, NoticeLevel, ViewCommand, ViewMessage
from .search import SearchSession

REQUIREMENTS_FILE = "requirements.txt"
SELECT_PYTHON_ACTION = "selectPython"
NO_INTERPRETER_MESSAGE = "No Python interpreter selected. Please select a Python interpreter."


class SyncState(Enum):
    """Refresh state machine states."""
    IDLE = "idle"
    LISTING_LOCAL = "listing_local"
    ENRICHING = "enriching"
    ERROR = "error"


class SyncCoordinator:
    """Single writer of the package catalog; drives refreshes and user actions."""

    def __init__(
        self,
        pip: PipManager,
        pypi: PyPIClient,
        channel: ViewStateChannel,
        settings: SettingsStore,
        search_session: SearchSession | None = None
    ):
        self.pip = pip
        self.pypi = pypi
        self.channel = channel
        self.settings = settings
        self.search_session = search_session or SearchSession(pypi)

        self.catalog = PackageCatalog()
        self.state = SyncState.IDLE
        self.is_loading = False
        self.has_requirements = False
        self.enrichment_rounds = 0

        self._refresh_token: CancellationToken | None = None
        self._command_tokens: set[CancellationToken] = set()
        self._background: set[asyncio.Task] = set()
        self._unsubscribe = settings.subscribe(self._on_settings_changed)

    @property
    def batch_size(self) -> int:
        return self.settings.current.batch_size

    def _on_settings_changed(self, settings: Settings, changed: set[str]):
        if "python_path" in changed:
            pilot_logger.info(f"Interpreter changed to {settings.python_path}, refreshing")
            self.request_refresh()
        if changed & {"api_url", "search_url"}:
            self.pypi.use_endpoints(settings.api_url, settings.search_url)

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task):
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            pilot_logger.error(f"Background task failed: {task.exception()!r}")

    def request_refresh(self) -> asyncio.Task | None:
        """Schedule a refresh on the running loop without waiting for it."""
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            pilot_logger.debug("No running event loop, refresh deferred")
            return None
        return self._spawn(self.refresh())

    def submit(self, command: ViewCommand) -> asyncio.Task:
        """Handle a command in the background."""
        return self._spawn(self.handle_command(command))

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    async def refresh(self):
        """Run a full refresh, superseding any refresh still in flight."""
        if self._refresh_token is not None:
            if self.state in (SyncState.LISTING_LOCAL, SyncState.ENRICHING):
                pilot_logger.info(f"Superseding refresh in state {self.state.value}")
            self._refresh_token.cancel()

        token = CancellationToken()
        self._refresh_token = token
        try:
            await self._run_refresh(token)
        finally:
            if self._refresh_token is token:
                self._refresh_token = None

    def cancel_refresh(self):
        """
        Cancel the in-flight refresh; the catalog keeps its last settled state.

        The loading or checkingUpdates flag opened by the cancelled phase is
        closed so the display surface does not wait on it.
        """
        if self._refresh_token is None:
            return
        self._refresh_token.cancel()
        self._refresh_token = None

        if self.state == SyncState.LISTING_LOCAL:
            self.channel.publish(ViewMessage.loading(False))
        elif self.state == SyncState.ENRICHING:
            self.channel.publish(ViewMessage.checking_updates(False))
        self.state = SyncState.IDLE
        self.is_loading = False

    async def _run_refresh(self, token: CancellationToken):
        self.state = SyncState.LISTING_LOCAL
        self.is_loading = True
        self.channel.publish(ViewMessage.loading(True))

        try:
            records = await self.pip.list_packages(token)
        except OperationCancelled:
            return
        except Exception as e:
            if token.cancelled:
                return
            pilot_logger.error(f"Listing installed packages failed: {e}")
            self.state = SyncState.ERROR
            self.is_loading = False
            self.channel.publish(self._listing_error(e))
            self.channel.publish(ViewMessage.loading(False))
            return

        if token.cancelled:
            return

        self.catalog.replace(records)
        self.has_requirements = not records and self.find_requirements() is not None
        self.channel.publish(ViewMessage.packages(self.catalog.snapshot(), self.has_requirements))
        self.is_loading = False
        self.channel.publish(ViewMessage.loading(False))

        await self._enrich(token)

    async def _enrich(self, token: CancellationToken):
        self.state = SyncState.ENRICHING
        self.enrichment_rounds = 0
        self.channel.publish(ViewMessage.checking_updates(True))

        names = self.catalog.names()
        size = self.batch_size
        for start in range(0, len(names), size):
            batch = names[start:start + size]
            results = await asyncio.gather(
                *(self.pypi.latest_version(name, token) for name in batch)
            )
            # Lookups from a cancelled cycle never reach the catalog
            if token.cancelled:
                pilot_logger.debug(f"Enrichment cancelled after {self.enrichment_rounds} batches")
                return

            found = {name: version for name, version in zip(batch, results) if version}
            self.catalog.apply_latest(found)
            self.enrichment_rounds += 1
            self.channel.publish(ViewMessage.packages(self.catalog.snapshot(), self.has_requirements))

        self.channel.publish(ViewMessage.checking_updates(False))
        self.state = SyncState.IDLE
        pilot_logger.info(
            f"Refresh complete: {len(names)} packages, {len(self.catalog.outdated())} with updates"
        )

    def _listing_error(self, error: Exception) -> ViewMessage:
        if isinstance(error, (NoInterpreterConfigured, SpawnFailed)):
            return ViewMessage.error(NO_INTERPRETER_MESSAGE, action=SELECT_PYTHON_ACTION)
        return ViewMessage.error(f"Failed to load packages: {error}")

    def sync_state(self):
        """Re-send the current state, e.g. when a display surface reconnects."""
        if self.is_loading:
            self.channel.publish(ViewMessage.loading(True))
        elif len(self.catalog) > 0:
            self.channel.publish(ViewMessage.packages(self.catalog.snapshot(), self.has_requirements))

    def find_requirements(self) -> Path | None:
        """First requirements.txt found in the workspace folders."""
        for folder in self.settings.current.workspace_dirs:
            candidate = Path(folder) / REQUIREMENTS_FILE
            if candidate.is_file():
                return candidate
        return None

    # ------------------------------------------------------------------
    # Mutating commands
    # ------------------------------------------------------------------

    def _notice(self, level: NoticeLevel, message: str):
        self.channel.publish(ViewMessage.notice(level, message))

    async def _mutate(self, description: str, operation) -> bool:
        """Await a mutating pip command, report its failure, then refresh."""
        try:
            await operation
        except OperationCancelled:
            self._notice(NoticeLevel.INFO, f"{description} cancelled")
            ok = False
        except PilotError as e:
            pilot_logger.error(f"{description} failed: {e}")
            self._notice(NoticeLevel.ERROR, str(e))
            ok = False
        else:
            ok = True

        await self.refresh()
        return ok

    async def update_selected(self, names: list[str], token: CancellationToken | None = None) -> UpdateReport:
        """
        Upgrade packages one at a time.

        Failures are collected per package; cancellation stops the sequence
        before the next package starts. A refresh always follows.
        """
        report = UpdateReport()
        if not names:
            return report

        total = len(names)
        for index, name in enumerate(names, start=1):
            if token is not None and token.cancelled:
                report.cancelled = True
                break

            self.channel.publish(ViewMessage.progress(index, total, name))
            try:
                await self.pip.update(name, token)
            except OperationCancelled:
                report.cancelled = True
                break
            except PilotError as e:
                pilot_logger.warning(f"Updating {name} failed: {e}")
                report.failed.append((name, str(e)))
            else:
                report.succeeded.append(name)

        if report.failed:
            self._notice(
                NoticeLevel.WARNING,
                f"Updated {len(report.succeeded)} packages. Failed: {', '.join(report.failed_names)}"
            )
        elif report.succeeded:
            self._notice(NoticeLevel.INFO, f"Successfully updated {len(report.succeeded)} packages")

        self.channel.publish(ViewMessage.update_complete())
        await self.refresh()
        return report

    async def update_single(self, name: str, token: CancellationToken | None = None) -> bool:
        return await self._mutate(f"Updating {name}", self.pip.update(name, token))

    async def add(self, pack, token: CancellationToken | None = None) -> bool:
        """Install a package spec."""
        return await self._mutate(f"Installing {pack}", self.pip.install(pack, token))

    async def install_from_file(self, file_path: str, token: CancellationToken | None = None) -> bool:
        name = Path(file_path).name if file_path else file_path
        return await self._mutate(
            f"Installing packages from {name}",
            self.pip.install_from_file(file_path, token)
        )

    async def install_requirements(self, token: CancellationToken | None = None) -> bool:
        """Install the workspace's requirements.txt."""
        requirements = self.find_requirements()
        if requirements is None:
            self._notice(NoticeLevel.INFO, f"No {REQUIREMENTS_FILE} found in the workspace")
            return False
        return await self.install_from_file(str(requirements), token)

    async def remove(self, name: str, token: CancellationToken | None = None) -> bool:
        """
        Uninstall a package.

        Returns:
            True if the package was removed; False for protected or invalid
            names and for failures
        """
        spec = PackageSpec.parse(name)
        if spec is None:
            self._notice(NoticeLevel.ERROR, "Invalid Name")
            return False
        if is_protected(spec.name):
            self._notice(NoticeLevel.WARNING, f"Package {', '.join(PROTECTED_PACKAGES)} cannot be removed")
            return False

        try:
            removed = await self.pip.remove(spec, token)
        except PilotError as e:
            pilot_logger.error(f"Removing {spec.name} failed: {e}")
            self._notice(NoticeLevel.ERROR, str(e))
            removed = False

        await self.refresh()
        return removed

    async def export_requirements(
        self,
        target: str | Path | None = None,
        overwrite: bool = False,
        token: CancellationToken | None = None
    ) -> Path | None:
        """
        Write `pip freeze` output to a requirements file.

        Returns:
            The written path, or None if nothing was written
        """
        if target is None:
            folders = self.settings.current.workspace_dirs
            if not folders:
                self._notice(NoticeLevel.WARNING, "No workspace folder to export requirements to")
                return None
            target = Path(folders[0]) / REQUIREMENTS_FILE
        target = Path(target)

        if target.exists() and not overwrite:
            self._notice(NoticeLevel.WARNING, f"{target.name} already exists. Overwrite?")
            return None

        try:
            content = await self.pip.freeze(token)
            target.write_text(f"{content}\n" if content else "", encoding="utf-8")
        except (PilotError, OSError) as e:
            self._notice(NoticeLevel.ERROR, f"Failed to export requirements: {e}")
            return None

        self._notice(NoticeLevel.INFO, f"Created {target}")
        return target

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    async def search(self, keyword: str, page: int = 1) -> SearchResult | None:
        """Search PyPI; superseded queries publish nothing."""
        try:
            result = await self.search_session.query(keyword, page)
        except RegistryError as e:
            pilot_logger.info(f"Search for {keyword!r} returned nothing: {e}")
            self.channel.publish(ViewMessage.search_results(keyword, page, [], 0))
            return None

        if result is None:
            return None
        self.channel.publish(ViewMessage.search_results(keyword, page, result.items, result.total_pages))
        return result

    async def pick_version(
        self,
        name: str,
        current: str | None = None,
        token: CancellationToken | None = None
    ) -> list[str]:
        """Fetch the versions a package can be switched to."""
        spec = PackageSpec.parse(name)
        if spec is None:
            return []

        versions = await self.pypi.version_list(spec.name, token)
        if not versions:
            self._notice(NoticeLevel.INFO, f"No versions found for {spec.name}")
            return []

        self.channel.publish(ViewMessage.versions(spec.name, versions, current))
        return versions

    async def select_version(
        self,
        name: str,
        version: str,
        current: str | None = None,
        token: CancellationToken | None = None
    ) -> bool:
        """Install a picked version unless it is the installed one."""
        spec = PackageSpec.parse(name)
        if spec is None or not version or version == current:
            return False
        return await self.add(PackageSpec(spec.name, version), token)

    # ------------------------------------------------------------------
    # Inbound commands
    # ------------------------------------------------------------------

    def cancel_commands(self):
        """Cancel every in-flight mutating command."""
        for token in list(self._command_tokens):
            token.cancel()

    async def handle_command(self, command: ViewCommand):
        """Dispatch a command from the display surface."""
        pilot_logger.debug(f"Handling command {command.type.value}")

        if command.type == CommandType.REFRESH:
            await self.refresh()
        elif command.type == CommandType.SYNC_STATE:
            self.sync_state()
        elif command.type == CommandType.CANCEL:
            self.cancel_commands()
        elif command.type == CommandType.SEARCH:
            await self.search(command.keyword, command.page)
        elif command.type == CommandType.PICK_VERSION:
            await self.pick_version(command.name, command.version)
        else:
            token = CancellationToken()
            self._command_tokens.add(token)
            try:
                return await self._handle_mutating_command(command, token)
            finally:
                self._command_tokens.discard(token)

    async def _handle_mutating_command(self, command: ViewCommand, token: CancellationToken):
        if command.type == CommandType.UPDATE_SELECTED:
            return await self.update_selected(command.names, token)
        elif command.type == CommandType.UPDATE_SINGLE:
            return await self.update_single(command.name, token)
        elif command.type == CommandType.REMOVE:
            return await self.remove(command.name, token)
        elif command.type == CommandType.ADD:
            return await self.add(command.name, token)
        elif command.type == CommandType.EXPORT:
            return await self.export_requirements(command.path, command.overwrite, token)
        elif command.type == CommandType.INSTALL_FROM_FILE:
            return await self.install_from_file(command.path, token)
        elif command.type == CommandType.INSTALL_REQUIREMENTS:
            return await self.install_requirements(token)
        elif command.type == CommandType.SELECT_VERSION:
            return await self.select_version(command.name, command.version, command.current, token)
        raise ValueError(f"Unsupported command: {command.type.value}")

    async def close(self):
        """Cancel outstanding work and release subscriptions."""
        self._unsubscribe()
        self.pip.close()
        self.cancel_commands()
        self.search_session.close()
        if self._refresh_token is not None:
            self._refresh_token.cancel()
        for task in list(self._background):
            task.cancel()
        await asyncio.gather(*self._background, return_exceptions=True)
