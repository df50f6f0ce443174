from __future__ import annotations

from dataclasses import dataclass

"""Config dataclasses for the order workbook importer.

Loaded and validated by groupbuy_import.config.loader.
"""


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection configuration.

    Used as fallback when environment variables are not set.
    Environment variables take precedence over these values.
    """
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class ImportConfig:
    """Root configuration object for an import run."""
    source_directory: str  # Directory to scan for .xlsx workbooks
    group_slug: str  # Tenant group the periods are imported into
    database: DatabaseConfig
    sheet_name: str | None = None  # None -> first sheet of each workbook
