"""SQL fragment builders shared by every record repository.

Placeholders are SQLite numbered parameters (``?1``, ``?2`` ...). Each builder
numbers its placeholders consecutively from 1 and returns them alongside the
parameter list, so the number in ``?n`` is always the position of its value.
Column names reaching these helpers come from entity descriptors, never from
request input.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Tuple

EQUALS = "equals"
PATTERN = "pattern"
FILTER_MODES = (EQUALS, PATTERN)


@dataclass(frozen=True)
class Filter:
    """A recognised query parameter and the column(s) it compares against."""

    columns: Tuple[str, ...]
    mode: str = EQUALS

    def __post_init__(self) -> None:
        if self.mode not in FILTER_MODES:
            raise ValueError(f"Unknown filter mode {self.mode!r}")
        if not self.columns:
            raise ValueError("A filter needs at least one column")


@dataclass(frozen=True)
class QueryPlan:
    sql: str
    params: Tuple[Any, ...]

    def placeholder(self, offset: int = 1) -> str:
        """Return the placeholder that follows this plan's parameters."""
        return f"?{len(self.params) + offset}"


@dataclass(frozen=True)
class UpdatePlan:
    set_clause: str
    params: Tuple[Any, ...]

    @property
    def id_placeholder(self) -> str:
        # The identifier is always the last parameter.
        return f"?{len(self.params)}"


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def build_filter(filters: Mapping[str, Filter], values: Mapping[str, Any]) -> QueryPlan:
    """Translate recognised query parameters into a WHERE predicate.

    The predicate starts with ``1=1`` so callers can always append further
    ``AND`` terms. Unknown parameters and blank values are skipped.
    """
    clauses = ["1=1"]
    params: list[Any] = []

    for name, rule in filters.items():
        value = _clean(values.get(name))
        if value is None:
            continue

        terms = []
        for column in rule.columns:
            if rule.mode == PATTERN:
                params.append(f"%{value.lower()}%")
                terms.append(f"LOWER({column}) LIKE ?{len(params)}")
            else:
                params.append(value)
                terms.append(f"{column} = ?{len(params)}")

        if len(terms) == 1:
            clauses.append(terms[0])
        else:
            clauses.append("(" + " OR ".join(terms) + ")")

    return QueryPlan(" AND ".join(clauses), tuple(params))


def _to_int(raw: Any) -> Optional[int]:
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class Pagination:
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    @classmethod
    def from_args(
        cls,
        page: Any = None,
        limit: Any = None,
        default_limit: int = 10,
        max_limit: int = 100,
    ) -> "Pagination":
        page_num = _to_int(page)
        if page_num is None or page_num < 1:
            page_num = 1

        size = _to_int(limit)
        if size is None:
            size = default_limit
        size = max(1, min(size, max_limit))
        return cls(page=page_num, limit=size)


def total_pages(total: int, limit: int) -> int:
    """Number of pages needed for ``total`` rows; zero rows means zero pages."""
    if total <= 0 or limit <= 0:
        return 0
    return math.ceil(total / limit)


def build_update(
    updatable: Iterable[str],
    payload: Mapping[str, Any],
    record_id: Any,
    timestamp_column: str = "updated_at",
) -> Optional[UpdatePlan]:
    """Build the SET clause for a sparse update.

    Returns ``None`` when the payload carries no whitelisted column; callers
    treat that as "nothing to update" rather than running a no-op statement.
    """
    allowed = frozenset(updatable)
    assignments: list[str] = []
    params: list[Any] = []

    for key, value in payload.items():
        if key not in allowed:
            continue
        params.append(value)
        assignments.append(f"{key} = ?{len(params)}")

    if not assignments:
        return None

    assignments.append(f"{timestamp_column} = CURRENT_TIMESTAMP")
    params.append(record_id)
    return UpdatePlan(", ".join(assignments), tuple(params))


def placeholders(count: int, start: int = 1) -> str:
    return ", ".join(f"?{index}" for index in range(start, start + count))
