"""Database utilities for Practice Organizer."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Union


logger = logging.getLogger("practice.db")

# Global schema version for the application database.
_SCHEMA_VERSION = 2


class Database:
    """Handle on the application database.

    Constructed once per application and handed to every repository. Each
    operation opens its own connection, so there is no shared connection to
    guard between requests. ``initialize()`` brings the schema up to date and
    ``close()`` is the shutdown hook.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        self._closed = False

    def initialize(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.transaction() as conn:
            _ensure_schema(conn)
        logger.info("Database ready at %s (schema v%s)", self.path, _SCHEMA_VERSION)

    def connect(self) -> sqlite3.Connection:
        if self._closed:
            raise RuntimeError("Database has been closed")
        # Autocommit mode: transactions are opened explicitly by transaction().
        conn = sqlite3.connect(self.path, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        conn = self.connect()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the enclosed statements atomically on a single connection."""
        conn = self.connect()
        try:
            conn.execute("BEGIN")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()

    def close(self) -> None:
        self._closed = True


def _ensure_schema(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS app_meta (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        )
        """
    )

    row = conn.execute(
        "SELECT value FROM app_meta WHERE key = 'schema_version'"
    ).fetchone()
    current_version = int(row["value"]) if row else 0

    if current_version < 1:
        _migrate_to_v1(conn)
        current_version = 1

    if current_version < 2:
        _migrate_to_v2(conn)
        current_version = 2

    conn.execute(
        "INSERT INTO app_meta(key, value) VALUES('schema_version', ?) "
        "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
        (str(_SCHEMA_VERSION),),
    )


def _migrate_to_v1(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            email TEXT NOT NULL UNIQUE,
            name TEXT NOT NULL,
            password_hash TEXT NOT NULL,
            role TEXT NOT NULL CHECK(role IN ('Admin','Attorney','Paralegal','Viewer')),
            is_active INTEGER NOT NULL DEFAULT 1,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            last_login_at TEXT
        )
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS customers (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            customer_id TEXT NOT NULL UNIQUE,
            customer_name TEXT NOT NULL,
            contact_person TEXT,
            contact_number TEXT,
            email_address TEXT,
            industry_type TEXT,
            registration_date TEXT,
            customer_status TEXT,
            address_line TEXT,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_customers_status ON customers(customer_status)"
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS cases (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            case_id TEXT NOT NULL UNIQUE,
            case_title TEXT NOT NULL,
            client_id INTEGER,
            case_type TEXT,
            case_status TEXT,
            assigned_attorney TEXT,
            filing_date TEXT,
            court_name TEXT,
            hearing_date TEXT,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY(client_id) REFERENCES customers(id)
        )
        """
    )
    conn.execute("CREATE INDEX IF NOT EXISTS idx_cases_client ON cases(client_id)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_cases_status ON cases(case_status)")

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS engagements (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            engagement_id TEXT NOT NULL UNIQUE,
            client_id INTEGER,
            engagement_type TEXT,
            engagement_date TEXT,
            engagement_outcome TEXT,
            contact_person TEXT,
            recorded_by TEXT,
            engagement_channel TEXT,
            engagement_notes TEXT,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY(client_id) REFERENCES customers(id)
        )
        """
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_engagements_client ON engagements(client_id)"
    )

    conn.execute(
        "INSERT INTO app_meta(key, value) VALUES('schema_version', '1') "
        "ON CONFLICT(key) DO UPDATE SET value = excluded.value"
    )


def _migrate_to_v2(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS legal_contracts (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            contract_id TEXT NOT NULL UNIQUE,
            contract_title TEXT NOT NULL,
            client_id INTEGER,
            start_date TEXT,
            end_date TEXT,
            contract_value REAL,
            contract_status TEXT,
            signed_by TEXT,
            renewal_terms TEXT,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY(client_id) REFERENCES customers(id)
        )
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS legal_documents (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            document_title TEXT NOT NULL,
            document_type TEXT,
            uploaded_by TEXT,
            upload_date TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            associated_case_id INTEGER,
            storage_location TEXT,
            document_status TEXT,
            document_version TEXT,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY(associated_case_id) REFERENCES cases(id)
        )
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS legal_tasks (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            task_title TEXT NOT NULL,
            assigned_to TEXT,
            due_date TEXT,
            task_status TEXT,
            priority_level TEXT,
            related_case_id INTEGER,
            created_date TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            task_description TEXT,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY(related_case_id) REFERENCES cases(id)
        )
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS legal_invoices (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            invoice_id TEXT NOT NULL UNIQUE,
            client_id INTEGER,
            case_id INTEGER,
            invoice_date TEXT,
            due_date TEXT,
            invoice_amount REAL,
            tax_amount REAL,
            invoice_status TEXT,
            payment_reference TEXT,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY(client_id) REFERENCES customers(id),
            FOREIGN KEY(case_id) REFERENCES cases(id)
        )
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS legal_compliance (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            compliance_id TEXT NOT NULL UNIQUE,
            regulation_name TEXT NOT NULL,
            entity_checked TEXT,
            compliance_date TEXT,
            compliance_status TEXT,
            responsible_officer TEXT,
            action_required TEXT,
            next_review_date TEXT,
            remarks TEXT,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS legal_risks (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            risk_id TEXT NOT NULL UNIQUE,
            risk_type TEXT,
            risk_description TEXT,
            identified_by TEXT,
            identified_date TEXT,
            risk_severity TEXT,
            mitigation_plan TEXT,
            review_date TEXT,
            risk_status TEXT,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS legal_matters (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            matter_id TEXT NOT NULL UNIQUE,
            matter_title TEXT NOT NULL,
            matter_description TEXT,
            matter_type TEXT,
            client_id INTEGER,
            attorney_assigned TEXT,
            open_date TEXT,
            matter_status TEXT,
            jurisdiction TEXT,
            opposing_party TEXT,
            key_deadlines TEXT,
            amount_billed REAL,
            matter_outcome TEXT,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY(client_id) REFERENCES customers(id)
        )
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS legal_transactions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            transaction_id TEXT NOT NULL UNIQUE,
            transaction_type TEXT,
            client_id INTEGER,
            transaction_date TEXT,
            transaction_value REAL,
            legal_advisor TEXT,
            related_contract_id INTEGER,
            approval_status TEXT,
            closing_date TEXT,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY(client_id) REFERENCES customers(id),
            FOREIGN KEY(related_contract_id) REFERENCES legal_contracts(id)
        )
        """
    )

    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_invoices_client ON legal_invoices(client_id)"
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_tasks_case ON legal_tasks(related_case_id)"
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_documents_case ON legal_documents(associated_case_id)"
    )
