"""Dashboard statistics, exports and invoice PDFs."""

from __future__ import annotations

import json
from datetime import date

import pytest

from services.exports import ExportError, render_export, to_csv
from services.invoices import build_invoice_filename, render_invoice_pdf, safe_text
from services.stats import dashboard_stats


def _case(repositories, client_id, status):
    return repositories["cases"].create(
        {"case_title": f"{status} matter", "client_id": client_id, "case_type": "Contract", "case_status": status}
    )


def _invoice(repositories, customer, case=None, status="Sent"):
    return repositories["invoices"].create(
        {
            "client_id": customer["id"],
            "case_id": case["id"] if case else None,
            "invoice_date": "2026-01-05",
            "due_date": "2026-02-05",
            "invoice_amount": 1000,
            "tax_amount": 150.5,
            "invoice_status": status,
        }
    )


class TestDashboard:

    def test_empty_database(self, database):
        stats = dashboard_stats(database)
        assert stats["totalCustomers"] == 0
        assert stats["completionRate"] == 0
        assert stats["casesByStatus"] == []
        assert stats["outstandingAmount"] == 0

    def test_counts(self, database, repositories, customer):
        for status in ("Open", "In Progress", "Closed", "Settled"):
            _case(repositories, customer["id"], status)
        repositories["engagements"].create(
            {"client_id": customer["id"], "engagement_type": "Meeting", "engagement_date": date.today().isoformat()}
        )
        repositories["engagements"].create(
            {"client_id": customer["id"], "engagement_type": "Meeting", "engagement_date": "2001-01-01"}
        )
        _invoice(repositories, customer)
        _invoice(repositories, customer, status="Paid")

        stats = dashboard_stats(database)
        assert stats["totalCustomers"] == 1
        assert stats["totalCases"] == 4
        assert stats["activeCases"] == 2
        assert stats["completionRate"] == 50
        assert stats["recentEngagements"] == 1
        assert stats["openInvoices"] == 1
        assert stats["outstandingAmount"] == 1150.5
        assert {"status": "Active", "count": 1} in stats["customersByStatus"]


class TestExports:

    def test_csv_quotes_everything(self):
        body = to_csv([{"a": "x, y", "b": None}, {"a": 'say "hi"', "b": 2}])
        assert body.splitlines() == ['"a","b"', '"x, y",""', '"say ""hi""","2"']

    def test_csv_of_nothing(self):
        assert to_csv([]) == ""

    def test_customer_export(self, repositories, customer):
        body, mimetype, filename = render_export(repositories, "customers", "csv")
        assert mimetype == "text/csv"
        assert filename == f"customers_export_{date.today().isoformat()}.csv"
        assert "Acme Holdings" in body

    def test_all_json(self, repositories, customer):
        body, mimetype, filename = render_export(repositories, "all", "json")
        data = json.loads(body)
        assert mimetype == "application/json"
        assert filename.startswith("all_data_export_")
        assert set(data) == {"customers", "cases", "engagements"}
        assert data["customers"][0]["customer_name"] == "Acme Holdings"

    @pytest.mark.parametrize("kind, fmt", [("all", "csv"), ("users", "json"), ("customers", "xml")])
    def test_rejected(self, repositories, kind, fmt):
        with pytest.raises(ExportError):
            render_export(repositories, kind, fmt)


class TestInvoicePdf:

    def test_render(self, repositories, customer):
        case = _case(repositories, customer["id"], "Open")
        invoice = repositories["invoices"].get(_invoice(repositories, customer, case)["id"])
        assert invoice["client_name"] == "Acme Holdings"
        assert invoice["case_title"] == "Open matter"

        buffer, filename = render_invoice_pdf(invoice, "Doe & Partners")
        assert buffer.read(5) == b"%PDF-"
        assert filename.endswith("_acme-holdings_2026-01-05.pdf")
        assert filename.startswith(invoice["invoice_id"].lower())

    def test_filename_fallback(self):
        assert build_invoice_filename({}) == "invoice.pdf"

    def test_safe_text(self):
        assert safe_text(None) == "-"
        assert safe_text("<b>A & B</b>") == "&lt;b&gt;A &amp; B&lt;/b&gt;"
