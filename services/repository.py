"""Generic record repository: list, fetch, create, update and delete rows of
one entity type described by an :class:`EntityDescriptor`.

Errors that callers can correct (validation, empty update, not found,
conflict) are raised as specific :class:`RepositoryError` subclasses. Anything
else escaping the database layer is logged here, once, and re-raised as
:class:`StorageError` with a message that is safe to show to clients.
"""

from __future__ import annotations

import logging
import secrets
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

from services.db import Database
from services.entities import EntityDescriptor
from services.query import Pagination, build_filter, build_update, placeholders, total_pages

logger = logging.getLogger("practice.repository")

_SCALARS = (str, int, float, bool, type(None))

# Range of an SQLite INTEGER; larger Python ints cannot be bound.
SQLITE_MAX_INT = 2**63 - 1
SQLITE_MIN_INT = -(2**63)


class RepositoryError(Exception):
    """Base class for every error a repository reports to its caller."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(RepositoryError):
    status_code = 400

    def __init__(self, message: str, fields: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.fields = list(fields)


class EmptyUpdateError(RepositoryError):
    status_code = 400

    def __init__(self, message: str = "No fields to update") -> None:
        super().__init__(message)


class NotFoundError(RepositoryError):
    status_code = 404


class ConflictError(RepositoryError):
    status_code = 409


class StorageError(RepositoryError):
    status_code = 500


@dataclass
class Page:
    rows: List[Dict[str, Any]]
    page: int
    limit: int
    total: int
    total_pages: int

    def to_envelope(self) -> Dict[str, Any]:
        return {
            "success": True,
            "data": self.rows,
            "pagination": {
                "page": self.page,
                "limit": self.limit,
                "total": self.total,
                "totalPages": self.total_pages,
            },
        }


def row_to_dict(row: Optional[sqlite3.Row]) -> Optional[Dict[str, Any]]:
    if row is None:
        return None
    return {key: row[key] for key in row.keys()}


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def generate_code(prefix: str) -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d")
    return f"{prefix}-{stamp}-{secrets.token_hex(3).upper()}"


class RecordRepository:
    def __init__(
        self,
        database: Database,
        descriptor: EntityDescriptor,
        max_limit: int = 100,
        default_limit: int = 10,
    ) -> None:
        self.database = database
        self.descriptor = descriptor
        self.max_limit = max_limit
        self.default_limit = min(descriptor.default_limit or default_limit, max_limit)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def list(
        self,
        values: Optional[Mapping[str, Any]] = None,
        page: Any = None,
        limit: Any = None,
    ) -> Page:
        """Return one page of rows matching the recognised filters in ``values``."""
        d = self.descriptor
        values = values or {}
        pagination = Pagination.from_args(page, limit, self.default_limit, self.max_limit)
        where = build_filter(d.filter_map, values)
        order = d.order_by(values.get("sort"), values.get("order"))

        sql = (
            f"SELECT {d.select_list} FROM {d.from_clause} WHERE {where.sql} "
            f"ORDER BY {order} LIMIT {where.placeholder(1)} OFFSET {where.placeholder(2)}"
        )
        count_sql = f"SELECT COUNT(*) AS c FROM {d.from_clause} WHERE {where.sql}"

        with self._guard("fetch", plural=True):
            # One read transaction so the page and its count see the same snapshot.
            with self.database.transaction() as conn:
                if pagination.offset > SQLITE_MAX_INT:
                    rows = []
                else:
                    rows = conn.execute(sql, where.params + (pagination.limit, pagination.offset)).fetchall()
                total = int(conn.execute(count_sql, where.params).fetchone()["c"])

        logger.debug("Listed %s: %d of %d (page %d)", d.name, len(rows), total, pagination.page)
        return Page(
            rows=[row_to_dict(row) for row in rows],
            page=pagination.page,
            limit=pagination.limit,
            total=total,
            total_pages=total_pages(total, pagination.limit),
        )

    def list_for(self, param: str, value: Any, page: Any = None, limit: Any = None) -> Page:
        if param not in self.descriptor.filter_map:
            raise ValueError(f"{self.descriptor.name} cannot be filtered by {param!r}")
        return self.list({param: value}, page=page, limit=limit)

    def all(self) -> List[Dict[str, Any]]:
        """Every row in default order, used by exports."""
        d = self.descriptor
        sql = f"SELECT {d.select_list} FROM {d.from_clause} ORDER BY {d.order_by()}"
        with self._guard("fetch", plural=True):
            with self.database.connection() as conn:
                rows = conn.execute(sql).fetchall()
        return [row_to_dict(row) for row in rows]

    def get(self, record_id: Any) -> Dict[str, Any]:
        self._require_storable_id(record_id)
        with self._guard("fetch", record_id):
            with self.database.connection() as conn:
                record = self._fetch(conn, record_id)
        if record is None:
            raise self._not_found()
        return record

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def create(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        d = self.descriptor
        self._require_mapping(payload)

        missing = [column for column in d.required if _blank(payload.get(column))]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", missing)
        self._validate(payload, d.insertable)

        columns: List[str] = []
        params: List[Any] = []
        for column in d.insertable:
            if column == d.code_column and _blank(payload.get(column)):
                columns.append(column)
                params.append(generate_code(d.code_prefix or d.name[:4].upper()))
                continue
            if column not in payload:
                continue
            value = payload[column]
            columns.append(column)
            params.append(None if _blank(value) else value)

        sql = (
            f"INSERT INTO {d.table} ({', '.join(columns)}) "
            f"VALUES ({placeholders(len(params))})"
        )

        with self._guard("create"):
            with self.database.transaction() as conn:
                cur = conn.execute(sql, params)
                record = self._fetch(conn, cur.lastrowid)

        logger.info("Created %s %s", d.label, record[d.primary_key] if record else "?")
        return record

    def update(self, record_id: Any, payload: Mapping[str, Any]) -> Dict[str, Any]:
        d = self.descriptor
        self._require_mapping(payload)

        changes = {
            key: (None if _blank(value) else value)
            for key, value in payload.items()
            if key in d.updatable
        }
        plan = build_update(d.updatable, changes, record_id)
        if plan is None:
            raise EmptyUpdateError()

        blanked = [column for column in d.required if column in changes and changes[column] is None]
        if blanked:
            raise ValidationError(f"Required fields cannot be empty: {', '.join(blanked)}", blanked)
        self._validate(changes, d.updatable)
        self._require_storable_id(record_id)

        sql = f"UPDATE {d.table} SET {plan.set_clause} WHERE {d.primary_key} = {plan.id_placeholder}"

        with self._guard("update", record_id):
            with self.database.transaction() as conn:
                current = self._fetch(conn, record_id)
                if current is None:
                    raise self._not_found()
                # Cross-field checks see the stored values the payload leaves untouched.
                errors = self._check_errors({**current, **changes})
                if errors:
                    raise ValidationError("; ".join(errors))
                conn.execute(sql, plan.params)
                record = self._fetch(conn, record_id)

        logger.info("Updated %s %s (%s)", d.label, record_id, ", ".join(changes))
        return record

    def delete(self, record_id: Any) -> None:
        d = self.descriptor
        self._require_storable_id(record_id)
        with self._guard("delete", record_id):
            with self.database.transaction() as conn:
                blockers = []
                for dependent in d.dependents:
                    row = conn.execute(
                        f"SELECT COUNT(*) AS c FROM {dependent.table} WHERE {dependent.column} = ?1",
                        (record_id,),
                    ).fetchone()
                    if int(row["c"]) > 0:
                        blockers.append(dependent.label)
                if blockers:
                    raise ConflictError(f"Cannot delete {d.label} with existing {', '.join(blockers)}")

                cur = conn.execute(f"DELETE FROM {d.table} WHERE {d.primary_key} = ?1", (record_id,))
                if cur.rowcount == 0:
                    raise self._not_found()

        logger.info("Deleted %s %s", d.label, record_id)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _fetch(self, conn: sqlite3.Connection, record_id: Any) -> Optional[Dict[str, Any]]:
        d = self.descriptor
        row = conn.execute(
            f"SELECT {d.select_list} FROM {d.from_clause} WHERE {d.alias}.{d.primary_key} = ?1",
            (record_id,),
        ).fetchone()
        return row_to_dict(row)

    def _not_found(self) -> NotFoundError:
        label = self.descriptor.label
        return NotFoundError(f"{label[:1].upper()}{label[1:]} not found")

    def _require_mapping(self, payload: Any) -> None:
        if not isinstance(payload, Mapping):
            raise ValidationError("Request body must be a JSON object")

    def _validate(self, payload: Mapping[str, Any], columns: Sequence[str]) -> None:
        errors = [
            f"{column} must be a plain value"
            for column in columns
            if column in payload and not isinstance(payload[column], _SCALARS)
        ]
        errors.extend(self._check_errors(payload))
        if errors:
            raise ValidationError("; ".join(errors))

    def _check_errors(self, payload: Mapping[str, Any]) -> List[str]:
        return [message for message in (check(payload) for check in self.descriptor.checks) if message]

    def _require_storable_id(self, record_id: Any) -> None:
        if isinstance(record_id, int) and not SQLITE_MIN_INT <= record_id <= SQLITE_MAX_INT:
            raise self._not_found()

    @contextmanager
    def _guard(self, operation: str, record_id: Any = None, plural: bool = False) -> Iterator[None]:
        d = self.descriptor
        subject = d.name if plural else d.label
        try:
            yield
        except RepositoryError:
            raise
        except sqlite3.IntegrityError as exc:
            logger.warning("%s %s %s rejected by constraint: %s", operation, d.name, record_id, exc)
            raise ConflictError(
                f"The {d.label} conflicts with an existing record or references a missing one"
            ) from exc
        except Exception as exc:
            logger.exception("Failed to %s %s (id=%s)", operation, d.name, record_id)
            raise StorageError(f"Failed to {operation} {subject}") from exc
