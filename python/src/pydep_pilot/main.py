"""
PyDep Pilot Service

A FastAPI service that hosts the synchronization engine for a display
surface. Outbound view messages are streamed over a WebSocket; user actions
arrive as commands over the same socket or via HTTP.
"""

import asyncio
import logging
from collections.abc import Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ValidationError

from . import __version__
from .config import Settings, SettingsStore
from .packages.manager import PipManager
from .packages.pypi_client import PyPIClient
from .stdio.diagnostics import DiagnosticLog
from .stdio.executor import CommandExecutor
from .sync.channel import ViewStateChannel
from .sync.coordinator import SyncCoordinator
from .sync.messages import ViewCommand, ViewMessage

logger = logging.getLogger(__name__)

CoordinatorFactory = Callable[[SettingsStore], SyncCoordinator]


def build_coordinator(settings: SettingsStore) -> SyncCoordinator:
    """Wire the engine components for the given settings."""
    diagnostics = DiagnosticLog()
    executor = CommandExecutor(diagnostics)
    pip = PipManager(executor, settings)
    pypi = PyPIClient(
        api_url=settings.current.api_url,
        search_url=settings.current.search_url
    )
    return SyncCoordinator(pip, pypi, ViewStateChannel(), settings)


class SettingsUpdateRequest(BaseModel):
    """Request model for changing settings."""
    python_path: str | None = None
    index_url: str | None = None
    api_url: str | None = None
    search_url: str | None = None
    workspace_dirs: list[str] | None = None
    batch_size: int | None = None


def create_app(
    coordinator_factory: CoordinatorFactory = build_coordinator,
    settings: Settings | None = None,
    refresh_on_start: bool = True
) -> FastAPI:
    """Create the service application."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        store = SettingsStore(settings or Settings.from_env())
        coordinator = coordinator_factory(store)
        app.state.settings = store
        app.state.coordinator = coordinator
        logger.info(f"PyDep Pilot started with interpreter: {store.current.python_path}")

        if refresh_on_start:
            coordinator.request_refresh()

        yield

        try:
            await coordinator.close()
            await coordinator.pypi.aclose()
            logger.info("PyDep Pilot shutdown complete")
        except Exception as e:
            logger.error(f"Error during shutdown: {e}")

    app = FastAPI(
        title="PyDep Pilot",
        description="Pip package synchronization service",
        version=__version__,
        lifespan=lifespan
    )

    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint."""
        coordinator: SyncCoordinator = request.app.state.coordinator
        return {"status": "healthy", "state": coordinator.state.value}

    @app.get("/packages")
    async def get_packages(request: Request):
        """Current catalog snapshot."""
        coordinator: SyncCoordinator = request.app.state.coordinator
        return {
            "state": coordinator.state.value,
            "loading": coordinator.is_loading,
            "hasRequirements": coordinator.has_requirements,
            "packages": [record.to_dict() for record in coordinator.catalog.snapshot()]
        }

    @app.get("/diagnostics")
    async def get_diagnostics(request: Request, limit: int = 100):
        """Recent command output."""
        coordinator: SyncCoordinator = request.app.state.coordinator
        return {"lines": coordinator.pip.executor.diagnostics.get_lines(limit)}

    @app.put("/settings")
    async def update_settings(request: Request, update: SettingsUpdateRequest):
        """Change settings; interpreter changes trigger a refresh."""
        store: SettingsStore = request.app.state.settings
        try:
            changed = store.update(**update.model_dump(exclude_unset=True))
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return {"changed": sorted(changed), "settings": store.current.model_dump()}

    @app.post("/commands", status_code=202)
    async def post_command(request: Request, command: ViewCommand):
        """Queue a user action."""
        coordinator: SyncCoordinator = request.app.state.coordinator
        coordinator.submit(command)
        return {"accepted": True, "type": command.type.value}

    @app.websocket("/ws")
    async def view_socket(websocket: WebSocket):
        """Stream view messages and accept commands."""
        coordinator: SyncCoordinator = websocket.app.state.coordinator
        await websocket.accept()

        queue = coordinator.channel.subscribe()
        sender = asyncio.create_task(_forward_messages(websocket, queue))
        try:
            while True:
                text = await websocket.receive_text()
                try:
                    command = ViewCommand.model_validate_json(text)
                except ValidationError as e:
                    queue.put_nowait(ViewMessage.error(f"Invalid command: {e.errors()[0]['msg']}"))
                    continue
                coordinator.submit(command)
        except WebSocketDisconnect:
            logger.info("View disconnected")
        finally:
            coordinator.channel.unsubscribe(queue)
            sender.cancel()

    return app


async def _forward_messages(websocket: WebSocket, queue: asyncio.Queue):
    while True:
        message: ViewMessage = await queue.get()
        await websocket.send_json(message.to_dict())


app = create_app()


if __name__ == "__main__":
    import os

    import uvicorn

    host = os.getenv("PYDEP_PILOT_HOST", "127.0.0.1")
    port = int(os.getenv("PYDEP_PILOT_PORT", "8060"))

    logger.info(f"Starting PyDep Pilot on {host}:{port}")

    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level="info"
    )
