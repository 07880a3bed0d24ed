"""
Package Models

This module defines the data models used by the package management system.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class PackageSpec:
    """A package name optionally pinned to a version."""
    name: str
    version: str | None = None

    def __str__(self) -> str:
        if self.version:
            return f"{self.name}=={self.version}"
        return self.name

    @classmethod
    def parse(cls, value: "str | Mapping[str, Any] | PackageSpec | None") -> "PackageSpec | None":
        """
        Parse a `name==version` string or a `{name[, version]}` mapping.

        Returns:
            The parsed spec, or None when the name is blank
        """
        if value is None:
            return None
        if isinstance(value, PackageSpec):
            name, version = value.name, value.version
        elif isinstance(value, str):
            name, _, version = value.partition("==")
        else:
            name = value.get("name") or ""
            version = value.get("version")

        name = (name or "").strip()
        if not name:
            return None
        version = (version or "").strip() or None
        return cls(name=name, version=version)


@dataclass
class PackageRecord:
    """An installed package and its latest known version."""
    name: str
    version: str
    latest_version: str | None = None

    @property
    def has_update(self) -> bool:
        return self.latest_version is not None and self.latest_version != self.version

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "latestVersion": self.latest_version,
            "hasUpdate": self.has_update
        }

    @classmethod
    def from_listing(cls, data: Mapping[str, Any]) -> "PackageRecord":
        """Create from one entry of `pip list --format json` output."""
        return cls(
            name=data["name"],
            version=data.get("version", ""),
            latest_version=data.get("latest_version")
        )


@dataclass
class SearchItem:
    """One package from a registry search page."""
    name: str
    version: str
    description: str = ""
    updated: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "updated": self.updated
        }


@dataclass
class SearchResult:
    """A page of registry search results."""
    items: list[SearchItem]
    total_pages: int = 1


@dataclass
class UpdateReport:
    """Outcome of a bulk update."""
    succeeded: list[str] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)
    cancelled: bool = False

    @property
    def failed_names(self) -> list[str]:
        return [name for name, _ in self.failed]

    def to_dict(self) -> dict[str, Any]:
        return {
            "succeeded": list(self.succeeded),
            "failed": [{"name": name, "error": error} for name, error in self.failed],
            "cancelled": self.cancelled
        }
