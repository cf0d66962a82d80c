from __future__ import annotations

import pytest

from services.entities import (
    CASES,
    CUSTOMERS,
    DESCRIPTORS,
    INVOICES,
    MATTERS,
    TASKS,
    EntityDescriptor,
    date_order,
    email_format,
    iso_date,
    non_negative,
)
from services.query import EQUALS, Filter


class TestDescriptors:

    def test_every_entity_registered(self):
        assert set(DESCRIPTORS) == {
            "customers", "cases", "engagements", "contracts", "documents", "tasks",
            "invoices", "compliance", "risks", "matters", "transactions",
        }

    def test_code_and_primary_key_are_never_updatable(self):
        for descriptor in DESCRIPTORS.values():
            assert descriptor.primary_key not in descriptor.updatable
            if descriptor.code_column:
                assert descriptor.code_column not in descriptor.updatable
                assert descriptor.insertable[0] == descriptor.code_column

    def test_filter_columns_are_qualified(self):
        assert CUSTOMERS.filter_map["status"].columns == ("c.customer_status",)
        assert CASES.filter_map["client_id"].columns == ("c.client_id",)

    def test_join_enriches_reads(self):
        assert "LEFT JOIN customers cu ON cu.id = c.client_id" in CASES.from_clause
        assert "cu.customer_name AS customer_name" in CASES.select_list
        assert "cs.case_title AS case_title" in INVOICES.select_list

    def test_order_by_defaults_and_whitelist(self):
        assert CUSTOMERS.order_by() == "c.created_at DESC, c.id DESC"
        assert TASKS.order_by() == "lt.due_date ASC, lt.id DESC"
        assert CUSTOMERS.order_by("customer_name", "asc") == "c.customer_name ASC, c.id DESC"
        assert CUSTOMERS.order_by("password; --", "DESC") == "c.created_at DESC, c.id DESC"

    def test_matters_page_size(self):
        assert MATTERS.default_limit == 50
        assert CUSTOMERS.default_limit is None

    def test_identifier_rejected_as_updatable(self):
        with pytest.raises(ValueError):
            EntityDescriptor(
                name="things", label="thing", table="things", alias="t",
                required=("title",), code_column="thing_id", updatable=("title", "thing_id"),
            )

    def test_unsafe_names_rejected(self):
        with pytest.raises(ValueError):
            EntityDescriptor(name="things", label="thing", table="things; drop", alias="t", required=("a",))
        with pytest.raises(ValueError):
            EntityDescriptor(
                name="things", label="thing", table="things", alias="t", required=("a",),
                filters=(("x", Filter(("zz.a",), EQUALS)),),
            )


class TestChecks:

    def test_non_negative(self):
        check = non_negative("amount")
        assert check({"amount": "12.5"}) is None
        assert check({}) is None
        assert check({"amount": -1}) == "amount must be a non-negative number"
        assert check({"amount": "lots"}) == "amount must be a non-negative number"

    def test_iso_date(self):
        check = iso_date("due_date")
        assert check({"due_date": "2026-03-01"}) is None
        assert check({"due_date": "03/01/2026"}) == "due_date must be a date (YYYY-MM-DD)"

    def test_date_order(self):
        check = date_order("start_date", "end_date")
        assert check({"start_date": "2026-01-01", "end_date": "2026-02-01"}) is None
        assert check({"start_date": "2026-03-01", "end_date": "2026-02-01"}) == (
            "start_date must not be after end_date"
        )
        assert check({"start_date": "2026-03-01"}) is None

    def test_email_format(self):
        check = email_format("email_address")
        assert check({"email_address": "a@b.co"}) is None
        assert check({"email_address": "nope"}) == "Invalid email format"
