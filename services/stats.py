"""Dashboard statistics."""

from __future__ import annotations

from typing import Any, Dict

from services.db import Database

ACTIVE_CASE_STATUSES = ("Open", "In Progress")
CLOSED_CASE_STATUSES = ("Closed", "Settled")
RECENT_ENGAGEMENT_DAYS = 30


def _count(conn, sql: str, params: tuple = ()) -> int:
    row = conn.execute(sql, params).fetchone()
    return int(row["c"] if row and row["c"] is not None else 0)


def dashboard_stats(db: Database) -> Dict[str, Any]:
    """Headline figures for the dashboard, read in one snapshot."""
    with db.transaction() as conn:
        total_customers = _count(conn, "SELECT COUNT(*) AS c FROM customers")
        total_cases = _count(conn, "SELECT COUNT(*) AS c FROM cases")
        active_cases = _count(
            conn,
            "SELECT COUNT(*) AS c FROM cases WHERE case_status IN (?1, ?2)",
            ACTIVE_CASE_STATUSES,
        )
        closed_cases = _count(
            conn,
            "SELECT COUNT(*) AS c FROM cases WHERE case_status IN (?1, ?2)",
            CLOSED_CASE_STATUSES,
        )
        recent_engagements = _count(
            conn,
            "SELECT COUNT(*) AS c FROM engagements WHERE date(engagement_date) >= date('now', ?1)",
            (f"-{RECENT_ENGAGEMENT_DAYS} days",),
        )
        cases_by_status = conn.execute(
            "SELECT case_status AS status, COUNT(*) AS count FROM cases "
            "GROUP BY case_status ORDER BY count DESC"
        ).fetchall()
        customers_by_status = conn.execute(
            "SELECT customer_status AS status, COUNT(*) AS count FROM customers "
            "GROUP BY customer_status ORDER BY count DESC"
        ).fetchall()
        invoices = conn.execute(
            "SELECT COUNT(*) AS c, COALESCE(SUM(invoice_amount + COALESCE(tax_amount, 0)), 0) AS amount "
            "FROM legal_invoices WHERE invoice_status IS NULL OR invoice_status != 'Paid'"
        ).fetchone()

    completion_rate = round(closed_cases / total_cases * 100) if total_cases else 0
    return {
        "totalCustomers": total_customers,
        "totalCases": total_cases,
        "activeCases": active_cases,
        "recentEngagements": recent_engagements,
        "completionRate": completion_rate,
        "casesByStatus": [dict(status=r["status"], count=r["count"]) for r in cases_by_status],
        "customersByStatus": [dict(status=r["status"], count=r["count"]) for r in customers_by_status],
        "openInvoices": int(invoices["c"]),
        "outstandingAmount": round(float(invoices["amount"]), 2),
    }
