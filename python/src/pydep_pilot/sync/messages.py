"""
View State Messages

Outbound messages pushed to the display surface and inbound commands sent
back by it.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, model_validator

from ..packages.models import PackageRecord, SearchItem


class MessageType(Enum):
    """Outbound message kinds."""
    LOADING = "loading"
    PACKAGES = "packages"
    ERROR = "error"
    CHECKING_UPDATES = "checkingUpdates"
    PROGRESS = "progress"
    UPDATE_COMPLETE = "updateComplete"
    NOTICE = "notice"
    SEARCH_RESULTS = "searchResults"
    VERSIONS = "versions"


class NoticeLevel(Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class ViewMessage:
    """A message for the display surface."""
    type: MessageType
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, **self.payload}

    @classmethod
    def loading(cls, value: bool) -> "ViewMessage":
        return cls(MessageType.LOADING, {"value": value})

    @classmethod
    def packages(cls, records: list[PackageRecord], has_requirements: bool = False) -> "ViewMessage":
        return cls(MessageType.PACKAGES, {
            "data": [record.to_dict() for record in records],
            "hasRequirements": has_requirements
        })

    @classmethod
    def error(cls, message: str, action: str | None = None) -> "ViewMessage":
        payload: dict[str, Any] = {"message": message}
        if action:
            payload["action"] = action
        return cls(MessageType.ERROR, payload)

    @classmethod
    def checking_updates(cls, value: bool) -> "ViewMessage":
        return cls(MessageType.CHECKING_UPDATES, {"value": value})

    @classmethod
    def progress(cls, current: int, total: int, name: str) -> "ViewMessage":
        return cls(MessageType.PROGRESS, {"current": current, "total": total, "name": name})

    @classmethod
    def update_complete(cls) -> "ViewMessage":
        return cls(MessageType.UPDATE_COMPLETE)

    @classmethod
    def notice(cls, level: NoticeLevel, message: str) -> "ViewMessage":
        return cls(MessageType.NOTICE, {"level": level.value, "message": message})

    @classmethod
    def search_results(
        cls,
        keyword: str,
        page: int,
        items: list[SearchItem],
        total_pages: int
    ) -> "ViewMessage":
        return cls(MessageType.SEARCH_RESULTS, {
            "keyword": keyword,
            "page": page,
            "items": [item.to_dict() for item in items],
            "totalPages": total_pages
        })

    @classmethod
    def versions(cls, name: str, versions: list[str], current: str | None) -> "ViewMessage":
        return cls(MessageType.VERSIONS, {"name": name, "versions": versions, "current": current})


class CommandType(Enum):
    """Inbound command kinds."""
    REFRESH = "refresh"
    UPDATE_SELECTED = "updateSelected"
    UPDATE_SINGLE = "updateSingle"
    REMOVE = "remove"
    SEARCH = "search"
    ADD = "add"
    EXPORT = "export"
    INSTALL_FROM_FILE = "installFromFile"
    INSTALL_REQUIREMENTS = "installRequirements"
    PICK_VERSION = "pickVersion"
    SELECT_VERSION = "selectVersion"
    SYNC_STATE = "syncState"
    CANCEL = "cancel"


class ViewCommand(BaseModel):
    """A user action sent by the display surface."""

    type: CommandType = Field(description="Command kind")
    name: str | None = Field(default=None, description="Package name or spec")
    names: list[str] = Field(default_factory=list, description="Package names for bulk update")
    keyword: str = Field(default="", description="Search keyword")
    page: int = Field(default=1, ge=1, description="Search page")
    version: str | None = Field(default=None, description="Current or selected version")
    current: str | None = Field(default=None, description="Installed version when selecting a version")
    path: str | None = Field(default=None, description="Requirements file path")
    overwrite: bool = Field(default=False, description="Overwrite an existing export target")

    @model_validator(mode="after")
    def validate_required_fields(self):
        needs_name = {
            CommandType.UPDATE_SINGLE,
            CommandType.REMOVE,
            CommandType.ADD,
            CommandType.PICK_VERSION,
            CommandType.SELECT_VERSION
        }
        if self.type in needs_name and not (self.name and self.name.strip()):
            raise ValueError(f"name is required for {self.type.value}")
        if self.type == CommandType.SELECT_VERSION and not self.version:
            raise ValueError("version is required for selectVersion")
        if self.type == CommandType.INSTALL_FROM_FILE and not self.path:
            raise ValueError("path is required for installFromFile")
        return self
