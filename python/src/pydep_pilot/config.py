"""
PyDep Pilot Configuration

Logging setup and process-scoped settings for the synchronization engine.
Settings are held by a SettingsStore so that components can read the current
values at the start of each operation and subscribe to changes.
"""

import logging
import os
from collections.abc import Callable

import structlog
from pydantic import BaseModel, Field, ValidationError, field_validator

# Configure simple structured logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

pilot_logger = structlog.get_logger("pydep_pilot")

PYPI_DEFAULT = "https://pypi.org/simple"
PYPI_API_URL = "https://pypi.org/pypi"
PYPI_SEARCH_URL = "https://pypi.org/search/"


class Settings(BaseModel):
    """Configuration for the dependency synchronization engine."""

    python_path: str | None = Field(default=None, description="Interpreter used to run pip")
    index_url: str | None = Field(default=None, description="Custom package source passed to pip with -i")
    api_url: str = Field(default=PYPI_API_URL, description="Base URL of the registry JSON API")
    search_url: str = Field(default=PYPI_SEARCH_URL, description="Registry search page")
    workspace_dirs: list[str] = Field(default_factory=list, description="Folders searched for requirements.txt")
    batch_size: int = Field(default=5, description="Concurrent latest-version lookups per batch")

    @field_validator('python_path', 'index_url')
    @classmethod
    def blank_to_none(cls, v):
        if v is not None and not v.strip():
            return None
        return v.strip() if v else v

    @field_validator('api_url')
    @classmethod
    def strip_trailing_slash(cls, v):
        return v.rstrip('/')

    @field_validator('batch_size')
    @classmethod
    def validate_batch_size(cls, v):
        if v < 1:
            raise ValueError("batch_size must be at least 1")
        return v

    @property
    def source(self) -> str:
        """The package source pip installs from."""
        return self.index_url or PYPI_DEFAULT

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from PYDEP_PILOT_* environment variables."""
        values: dict = {}
        python_path = os.getenv("PYDEP_PILOT_PYTHON")
        if python_path:
            values["python_path"] = python_path
        index_url = os.getenv("PYDEP_PILOT_INDEX_URL")
        if index_url:
            values["index_url"] = index_url
        workspace = os.getenv("PYDEP_PILOT_WORKSPACE")
        if workspace:
            values["workspace_dirs"] = [p for p in workspace.split(os.pathsep) if p]
        batch_size = os.getenv("PYDEP_PILOT_BATCH_SIZE")
        if batch_size:
            values["batch_size"] = int(batch_size)
        return cls(**values)


SettingsListener = Callable[[Settings, set[str]], None]


class SettingsStore:
    """Holds the current settings and notifies subscribers of changes."""

    def __init__(self, settings: Settings | None = None):
        self._settings = settings or Settings()
        self._listeners: list[SettingsListener] = []

    @property
    def current(self) -> Settings:
        return self._settings

    def subscribe(self, listener: SettingsListener) -> Callable[[], None]:
        """Register a change listener. Returns a callable that removes it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def update(self, **changes) -> set[str]:
        """
        Apply a partial update.

        Args:
            **changes: Settings fields to replace

        Returns:
            Names of the fields whose value actually changed

        Raises:
            ValueError: If the resulting settings do not validate
        """
        unknown = set(changes) - set(Settings.model_fields)
        if unknown:
            raise ValueError(f"Unknown settings: {', '.join(sorted(unknown))}")

        try:
            updated = Settings(**{**self._settings.model_dump(), **changes})
        except ValidationError as e:
            raise ValueError(f"Invalid settings: {e}") from e

        changed = {
            name for name in Settings.model_fields
            if getattr(updated, name) != getattr(self._settings, name)
        }
        if not changed:
            return changed

        self._settings = updated
        pilot_logger.info(f"Settings changed: {', '.join(sorted(changed))}")

        for listener in list(self._listeners):
            try:
                listener(updated, changed)
            except Exception as e:
                pilot_logger.error(f"Settings listener failed: {e}")
        return changed
