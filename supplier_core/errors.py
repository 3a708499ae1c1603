from __future__ import annotations


class SupplierDashboardError(Exception):
    """Base class for pipeline errors."""


class SourceUnavailable(SupplierDashboardError):
    """The source spreadsheet (or cache artifact) is missing or unreadable."""


class ExtractionError(SupplierDashboardError):
    """The spreadsheet was readable but produced nothing usable."""


class ArtifactSchemaError(SupplierDashboardError):
    """A persisted artifact does not match the current schema version."""


class CacheNotReady(SupplierDashboardError):
    """The cache was read before the startup load completed."""
