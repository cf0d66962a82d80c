"""Service layer helpers for Practice Organizer."""

from . import (  # noqa: F401
    db,
    entities,
    exports,
    invoices,
    log,
    query,
    repository,
    security,
    settings,
    stats,
    users,
)

__all__ = [
    "db",
    "entities",
    "exports",
    "invoices",
    "log",
    "query",
    "repository",
    "security",
    "settings",
    "stats",
    "users",
]
