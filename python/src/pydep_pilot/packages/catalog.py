"""
Package Catalog

The in-memory snapshot of installed packages and their latest known
versions. Pure data operations, no I/O.
"""

import copy
from collections.abc import Iterable, Mapping
from dataclasses import replace
from typing import Any

from .models import PackageRecord


def merge_updates(
    installed: list[PackageRecord],
    updates: Iterable[Mapping[str, Any]]
) -> list[PackageRecord]:
    """
    Attach latest versions from an outdated listing to installed packages.

    Args:
        installed: Records from the installed listing
        updates: Entries with `name` and `latest_version`

    Returns:
        New records with `latest_version` set where an update entry exists;
        `installed` itself when there are no updates
    """
    latest_versions = {
        info["name"]: info.get("latest_version")
        for info in updates
        if info.get("latest_version")
    }
    if not latest_versions:
        return installed

    return [
        replace(record, latest_version=latest_versions[record.name])
        if record.name in latest_versions else record
        for record in installed
    ]


def has_update(record: PackageRecord) -> bool:
    """Exact string comparison; no semantic version ordering."""
    return record.has_update


class PackageCatalog:
    """Ordered collection of installed package records."""

    def __init__(self, records: list[PackageRecord] | None = None):
        self._records: list[PackageRecord] = list(records or [])

    def __len__(self) -> int:
        return len(self._records)

    def replace(self, records: list[PackageRecord]):
        self._records = list(records)

    def apply_latest(self, latest_versions: Mapping[str, str]) -> int:
        """
        Set latest versions in place.

        Returns:
            Number of records updated
        """
        updated = 0
        for record in self._records:
            latest = latest_versions.get(record.name)
            if latest:
                record.latest_version = latest
                updated += 1
        return updated

    def names(self) -> list[str]:
        return [record.name for record in self._records]

    def get(self, name: str) -> PackageRecord | None:
        return next((r for r in self._records if r.name == name), None)

    def outdated(self) -> list[PackageRecord]:
        return [copy.copy(r) for r in self._records if r.has_update]

    def snapshot(self) -> list[PackageRecord]:
        """Copies of the records, safe to hand to a display surface."""
        return [copy.copy(record) for record in self._records]
