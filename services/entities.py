"""Entity descriptors: the static configuration behind every record repository."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Tuple

from services.query import EQUALS, PATTERN, Filter

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

Check = Callable[[Mapping[str, Any]], Optional[str]]


def _require_identifier(name: str, what: str) -> str:
    if not isinstance(name, str) or not _IDENTIFIER_RE.match(name):
        raise ValueError(f"Invalid {what} name: {name!r}")
    return name


def _require_column(name: str) -> str:
    parts = name.split(".") if isinstance(name, str) else [name]
    if len(parts) > 2:
        raise ValueError(f"Invalid column name: {name!r}")
    for part in parts:
        _require_identifier(part, "column")
    return name


@dataclass(frozen=True)
class Join:
    """LEFT JOIN used to enrich reads, e.g. a case with its customer's name."""

    table: str
    alias: str
    local_column: str
    columns: Tuple[Tuple[str, str], ...]
    remote_column: str = "id"


@dataclass(frozen=True)
class Dependent:
    """Rows in another table that block deletion while they exist."""

    table: str
    column: str
    label: str


@dataclass(frozen=True)
class EntityDescriptor:
    name: str
    label: str
    table: str
    alias: str
    required: Tuple[str, ...]
    optional: Tuple[str, ...] = ()
    code_column: Optional[str] = None
    code_prefix: Optional[str] = None
    primary_key: str = "id"
    updatable: Optional[Tuple[str, ...]] = None
    filters: Sequence[Tuple[str, Filter]] = ()
    sortable: Tuple[str, ...] = ("created_at", "updated_at")
    sort: str = "created_at"
    direction: str = "DESC"
    default_limit: Optional[int] = None
    joins: Tuple[Join, ...] = ()
    dependents: Tuple[Dependent, ...] = ()
    checks: Tuple[Check, ...] = ()
    _filter_map: Mapping[str, Filter] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        _require_identifier(self.name, "entity")
        _require_identifier(self.table, "table")
        _require_identifier(self.alias, "alias")
        _require_identifier(self.primary_key, "column")
        for column in self.required + self.optional + self.sortable + (self.sort,):
            _require_identifier(column, "column")
        if self.code_column:
            _require_identifier(self.code_column, "column")

        immutable = {self.primary_key, self.code_column}
        if self.updatable is None:
            updatable = tuple(c for c in self.required + self.optional if c not in immutable)
            object.__setattr__(self, "updatable", updatable)
        for column in self.updatable:
            _require_identifier(column, "column")
            if column in immutable:
                raise ValueError(f"{self.name}: {column!r} is an identifier and cannot be updatable")

        if self.direction.upper() not in ("ASC", "DESC"):
            raise ValueError(f"{self.name}: sort direction must be ASC or DESC")
        object.__setattr__(self, "direction", self.direction.upper())
        if self.sort not in self.sortable:
            object.__setattr__(self, "sortable", self.sortable + (self.sort,))

        join_aliases = {self.alias}
        for join in self.joins:
            _require_identifier(join.table, "table")
            _require_identifier(join.alias, "alias")
            _require_identifier(join.local_column, "column")
            _require_identifier(join.remote_column, "column")
            for column, output in join.columns:
                _require_identifier(column, "column")
                _require_identifier(output, "column")
            join_aliases.add(join.alias)

        for dependent in self.dependents:
            _require_identifier(dependent.table, "table")
            _require_identifier(dependent.column, "column")

        ordered: Dict[str, Filter] = {}
        for param, rule in self.filters:
            columns = []
            for column in rule.columns:
                _require_column(column)
                if "." in column:
                    if column.split(".", 1)[0] not in join_aliases:
                        raise ValueError(f"{self.name}: filter column {column!r} uses an unknown alias")
                    columns.append(column)
                else:
                    columns.append(f"{self.alias}.{column}")
            ordered[param] = Filter(tuple(columns), rule.mode)
        object.__setattr__(self, "_filter_map", MappingProxyType(ordered))

    @property
    def filter_map(self) -> Mapping[str, Filter]:
        return self._filter_map

    @property
    def insertable(self) -> Tuple[str, ...]:
        columns = []
        if self.code_column:
            columns.append(self.code_column)
        for column in self.required + self.optional:
            if column not in columns:
                columns.append(column)
        return tuple(columns)

    @property
    def from_clause(self) -> str:
        parts = [f"{self.table} {self.alias}"]
        for join in self.joins:
            parts.append(
                f"LEFT JOIN {join.table} {join.alias} "
                f"ON {join.alias}.{join.remote_column} = {self.alias}.{join.local_column}"
            )
        return " ".join(parts)

    @property
    def select_list(self) -> str:
        columns = [f"{self.alias}.*"]
        for join in self.joins:
            columns.extend(f"{join.alias}.{column} AS {output}" for column, output in join.columns)
        return ", ".join(columns)

    def order_by(self, sort: Optional[str] = None, direction: Optional[str] = None) -> str:
        column = sort if sort in self.sortable else self.sort
        order = (direction or "").upper()
        if order not in ("ASC", "DESC"):
            order = self.direction if column == self.sort else "ASC"
        return f"{self.alias}.{column} {order}, {self.alias}.{self.primary_key} DESC"


# ---- Payload checks -------------------------------------------------------

def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def non_negative(column: str) -> Check:
    def check(payload: Mapping[str, Any]) -> Optional[str]:
        if column not in payload or _blank(payload[column]):
            return None
        value = payload[column]
        if isinstance(value, bool):
            return f"{column} must be a non-negative number"
        try:
            number = float(value)
        except (TypeError, ValueError):
            return f"{column} must be a non-negative number"
        if number < 0:
            return f"{column} must be a non-negative number"
        return None

    return check


def iso_date(column: str) -> Check:
    def check(payload: Mapping[str, Any]) -> Optional[str]:
        if column not in payload or _blank(payload[column]):
            return None
        try:
            date.fromisoformat(str(payload[column])[:10])
        except ValueError:
            return f"{column} must be a date (YYYY-MM-DD)"
        return None

    return check


def date_order(start: str, end: str) -> Check:
    def check(payload: Mapping[str, Any]) -> Optional[str]:
        if _blank(payload.get(start)) or _blank(payload.get(end)):
            return None
        try:
            first = date.fromisoformat(str(payload[start])[:10])
            last = date.fromisoformat(str(payload[end])[:10])
        except ValueError:
            return None  # reported by iso_date
        if first > last:
            return f"{start} must not be after {end}"
        return None

    return check


def email_format(column: str) -> Check:
    def check(payload: Mapping[str, Any]) -> Optional[str]:
        if column not in payload or _blank(payload[column]):
            return None
        if not _EMAIL_RE.match(str(payload[column]).strip()):
            return "Invalid email format"
        return None

    return check


# ---- Choice lists offered to the UI -----------------------------------------

USER_ROLES = ("Admin", "Attorney", "Paralegal", "Viewer")

CHOICES: Mapping[str, Tuple[str, ...]] = MappingProxyType({
    "user_roles": USER_ROLES,
    "customer_status": ("Active", "Inactive", "Prospective", "Former"),
    "industry_types": (
        "Technology", "Healthcare", "Finance", "Manufacturing", "Retail", "Real Estate",
        "Education", "Construction", "Hospitality", "Transportation", "Energy",
        "Telecommunications", "Professional Services", "Government", "Non-Profit", "Other",
    ),
    "case_status": ("Open", "In Progress", "Pending", "Closed", "Settled"),
    "case_types": (
        "Litigation", "Corporate", "Real Estate", "Intellectual Property", "Employment",
        "Family Law", "Criminal Defense", "Immigration", "Tax Law", "Environmental",
        "Bankruptcy", "Personal Injury", "Contract", "Mergers & Acquisitions", "Other",
    ),
    "engagement_types": (
        "Consultation", "Meeting", "Phone Call", "Email", "Court Appearance", "Mediation",
        "Negotiation", "Document Review", "Client Interview", "Follow-up",
    ),
    "engagement_channels": (
        "In-Person", "Phone", "Email", "Video Conference", "Letter", "Text Message",
        "Court", "Office Visit",
    ),
    "engagement_outcomes": ("Resolved", "Pending", "Follow-up Required", "No Action"),
    "page_sizes": (10, 25, 50, 100),
})


# ---- Descriptors ----------------------------------------------------------

_CUSTOMER_JOIN = Join(
    table="customers",
    alias="cu",
    local_column="client_id",
    columns=(("customer_name", "customer_name"), ("email_address", "customer_email")),
)

CUSTOMERS = EntityDescriptor(
    name="customers",
    label="customer",
    table="customers",
    alias="c",
    code_column="customer_id",
    code_prefix="CUST",
    required=("customer_name", "email_address"),
    optional=(
        "contact_person", "contact_number", "industry_type", "registration_date",
        "customer_status", "address_line",
    ),
    filters=(
        ("search", Filter(("customer_name", "email_address", "contact_person"), PATTERN)),
        ("status", Filter(("customer_status",), EQUALS)),
        ("industry", Filter(("industry_type",), EQUALS)),
    ),
    sortable=("created_at", "customer_name", "registration_date"),
    dependents=(
        Dependent("cases", "client_id", "cases"),
        Dependent("engagements", "client_id", "engagements"),
        Dependent("legal_contracts", "client_id", "contracts"),
        Dependent("legal_invoices", "client_id", "invoices"),
        Dependent("legal_matters", "client_id", "matters"),
        Dependent("legal_transactions", "client_id", "transactions"),
    ),
    checks=(email_format("email_address"), iso_date("registration_date")),
)

CASES = EntityDescriptor(
    name="cases",
    label="case",
    table="cases",
    alias="c",
    code_column="case_id",
    code_prefix="CASE",
    required=("case_title", "client_id", "case_type", "case_status"),
    optional=("assigned_attorney", "filing_date", "court_name", "hearing_date"),
    filters=(
        ("search", Filter(("case_title", "case_id"), PATTERN)),
        ("status", Filter(("case_status",), EQUALS)),
        ("type", Filter(("case_type",), EQUALS)),
        ("client_id", Filter(("client_id",), EQUALS)),
        ("attorney", Filter(("assigned_attorney",), PATTERN)),
    ),
    sortable=("created_at", "case_title", "filing_date", "hearing_date"),
    joins=(_CUSTOMER_JOIN,),
    dependents=(
        Dependent("legal_documents", "associated_case_id", "documents"),
        Dependent("legal_tasks", "related_case_id", "tasks"),
        Dependent("legal_invoices", "case_id", "invoices"),
    ),
    checks=(iso_date("filing_date"), iso_date("hearing_date")),
)

ENGAGEMENTS = EntityDescriptor(
    name="engagements",
    label="engagement",
    table="engagements",
    alias="e",
    code_column="engagement_id",
    code_prefix="ENG",
    required=("client_id", "engagement_type", "engagement_date"),
    optional=(
        "engagement_outcome", "contact_person", "recorded_by", "engagement_channel",
        "engagement_notes",
    ),
    filters=(
        ("search", Filter(("engagement_notes", "cu.customer_name"), PATTERN)),
        ("type", Filter(("engagement_type",), EQUALS)),
        ("channel", Filter(("engagement_channel",), EQUALS)),
        ("outcome", Filter(("engagement_outcome",), EQUALS)),
        ("client_id", Filter(("client_id",), EQUALS)),
    ),
    sortable=("created_at", "engagement_date"),
    joins=(
        Join(
            table="customers",
            alias="cu",
            local_column="client_id",
            columns=(("customer_name", "customer_name"),),
        ),
    ),
    checks=(iso_date("engagement_date"),),
)

CONTRACTS = EntityDescriptor(
    name="contracts",
    label="contract",
    table="legal_contracts",
    alias="lc",
    code_column="contract_id",
    code_prefix="CON",
    required=(
        "contract_title", "client_id", "start_date", "end_date", "contract_value",
        "contract_status", "signed_by",
    ),
    optional=("renewal_terms",),
    filters=(
        ("search", Filter(("contract_title", "contract_id"), PATTERN)),
        ("status", Filter(("contract_status",), EQUALS)),
        ("client_id", Filter(("client_id",), EQUALS)),
    ),
    sortable=("created_at", "start_date", "end_date", "contract_value"),
    dependents=(Dependent("legal_transactions", "related_contract_id", "transactions"),),
    checks=(
        non_negative("contract_value"),
        iso_date("start_date"),
        iso_date("end_date"),
        date_order("start_date", "end_date"),
    ),
)

DOCUMENTS = EntityDescriptor(
    name="documents",
    label="document",
    table="legal_documents",
    alias="ld",
    required=(
        "document_title", "document_type", "uploaded_by", "storage_location",
        "document_status", "document_version",
    ),
    optional=("associated_case_id",),
    filters=(
        ("search", Filter(("document_title",), PATTERN)),
        ("case_id", Filter(("associated_case_id",), EQUALS)),
        ("status", Filter(("document_status",), EQUALS)),
        ("type", Filter(("document_type",), EQUALS)),
    ),
    sortable=("created_at", "upload_date", "document_title"),
    sort="upload_date",
)

TASKS = EntityDescriptor(
    name="tasks",
    label="task",
    table="legal_tasks",
    alias="lt",
    required=("task_title", "assigned_to", "due_date", "task_status", "priority_level"),
    optional=("related_case_id", "task_description"),
    filters=(
        ("search", Filter(("task_title",), PATTERN)),
        ("case_id", Filter(("related_case_id",), EQUALS)),
        ("status", Filter(("task_status",), EQUALS)),
        ("assigned_to", Filter(("assigned_to",), EQUALS)),
        ("priority", Filter(("priority_level",), EQUALS)),
    ),
    sortable=("created_at", "due_date", "priority_level"),
    sort="due_date",
    direction="ASC",
    checks=(iso_date("due_date"),),
)

INVOICES = EntityDescriptor(
    name="invoices",
    label="invoice",
    table="legal_invoices",
    alias="li",
    code_column="invoice_id",
    code_prefix="INV",
    required=(
        "client_id", "invoice_date", "due_date", "invoice_amount", "tax_amount",
        "invoice_status",
    ),
    optional=("case_id", "payment_reference"),
    filters=(
        ("status", Filter(("invoice_status",), EQUALS)),
        ("client_id", Filter(("client_id",), EQUALS)),
        ("case_id", Filter(("case_id",), EQUALS)),
    ),
    sortable=("created_at", "invoice_date", "due_date", "invoice_amount"),
    sort="invoice_date",
    joins=(
        Join(
            table="customers",
            alias="cu",
            local_column="client_id",
            columns=(("customer_name", "client_name"), ("email_address", "client_email")),
        ),
        Join(
            table="cases",
            alias="cs",
            local_column="case_id",
            columns=(("case_id", "case_number"), ("case_title", "case_title")),
        ),
    ),
    checks=(
        non_negative("invoice_amount"),
        non_negative("tax_amount"),
        iso_date("invoice_date"),
        iso_date("due_date"),
        date_order("invoice_date", "due_date"),
    ),
)

COMPLIANCE = EntityDescriptor(
    name="compliance",
    label="compliance record",
    table="legal_compliance",
    alias="lcm",
    code_column="compliance_id",
    code_prefix="CMP",
    required=(
        "regulation_name", "entity_checked", "compliance_date", "compliance_status",
        "responsible_officer",
    ),
    optional=("action_required", "next_review_date", "remarks"),
    filters=(
        ("search", Filter(("regulation_name", "compliance_id", "entity_checked"), PATTERN)),
        ("status", Filter(("compliance_status",), EQUALS)),
        ("officer", Filter(("responsible_officer",), EQUALS)),
    ),
    sortable=("created_at", "compliance_date", "next_review_date"),
    sort="compliance_date",
    checks=(iso_date("compliance_date"), iso_date("next_review_date")),
)

RISKS = EntityDescriptor(
    name="risks",
    label="risk",
    table="legal_risks",
    alias="lr",
    code_column="risk_id",
    code_prefix="RSK",
    required=(
        "risk_type", "risk_description", "identified_by", "identified_date",
        "risk_severity", "risk_status",
    ),
    optional=("mitigation_plan", "review_date"),
    filters=(
        ("severity", Filter(("risk_severity",), EQUALS)),
        ("status", Filter(("risk_status",), EQUALS)),
        ("type", Filter(("risk_type",), EQUALS)),
    ),
    sortable=("created_at", "identified_date", "review_date"),
    sort="identified_date",
    checks=(iso_date("identified_date"), iso_date("review_date")),
)

MATTERS = EntityDescriptor(
    name="matters",
    label="matter",
    table="legal_matters",
    alias="lm",
    code_column="matter_id",
    code_prefix="MAT",
    required=(
        "matter_title", "matter_type", "client_id", "attorney_assigned", "open_date",
        "matter_status", "jurisdiction",
    ),
    optional=(
        "matter_description", "opposing_party", "key_deadlines", "amount_billed",
        "matter_outcome",
    ),
    filters=(
        ("search", Filter(("matter_title", "matter_id"), PATTERN)),
        ("status", Filter(("matter_status",), EQUALS)),
        ("type", Filter(("matter_type",), EQUALS)),
        ("client_id", Filter(("client_id",), EQUALS)),
    ),
    sortable=("created_at", "open_date", "matter_title"),
    sort="open_date",
    default_limit=50,
    checks=(non_negative("amount_billed"), iso_date("open_date")),
)

TRANSACTIONS = EntityDescriptor(
    name="transactions",
    label="transaction",
    table="legal_transactions",
    alias="ltx",
    code_column="transaction_id",
    code_prefix="TXN",
    required=(
        "transaction_type", "client_id", "transaction_date", "transaction_value",
        "legal_advisor", "approval_status",
    ),
    optional=("related_contract_id", "closing_date"),
    filters=(
        ("status", Filter(("approval_status",), EQUALS)),
        ("type", Filter(("transaction_type",), EQUALS)),
        ("client_id", Filter(("client_id",), EQUALS)),
    ),
    sortable=("created_at", "transaction_date", "transaction_value"),
    sort="transaction_date",
    default_limit=50,
    checks=(
        non_negative("transaction_value"),
        iso_date("transaction_date"),
        iso_date("closing_date"),
        date_order("transaction_date", "closing_date"),
    ),
)

DESCRIPTORS: Mapping[str, EntityDescriptor] = MappingProxyType({
    descriptor.name: descriptor
    for descriptor in (
        CUSTOMERS, CASES, ENGAGEMENTS, CONTRACTS, DOCUMENTS, TASKS, INVOICES,
        COMPLIANCE, RISKS, MATTERS, TRANSACTIONS,
    )
})
