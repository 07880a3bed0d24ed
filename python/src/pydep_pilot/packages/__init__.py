"""
Package Management Module

Provides installed-package management through pip and package discovery
through PyPI.

This module supports:
- Listing installed and outdated packages
- Installing, upgrading and removing packages
- Latest-version lookups and version lists from PyPI
- PyPI search with pagination

Components:
- manager: pip command wrapper
- pypi_client: PyPI registry client
- catalog: installed-package snapshot and merge operations
- models: package data models
"""

from .catalog import PackageCatalog, has_update, merge_updates
from .manager import PROTECTED_PACKAGES, PipManager, is_protected
from .models import PackageRecord, PackageSpec, SearchItem, SearchResult, UpdateReport
from .pypi_client import PyPIClient

__all__ = [
    "PROTECTED_PACKAGES",
    "PackageCatalog",
    "PackageRecord",
    "PackageSpec",
    "PipManager",
    "PyPIClient",
    "SearchItem",
    "SearchResult",
    "UpdateReport",
    "has_update",
    "is_protected",
    "merge_updates"
]
