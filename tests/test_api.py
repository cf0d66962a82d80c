"""HTTP API through the Flask test client."""

from __future__ import annotations

import logging
import sqlite3

import pytest

CUSTOMER = {"customer_name": "Globex", "email_address": "counsel@globex.test", "customer_status": "Active"}


def _create(client, auth, path, payload):
    r = client.post(f"/api/{path}", json=payload, headers=auth)
    assert r.status_code == 201, r.get_json()
    return r.get_json()["data"]


class TestAuth:

    def test_health_is_public(self, client):
        r = client.get("/api/health")
        assert r.status_code == 200
        assert r.get_json()["success"] is True

    @pytest.mark.parametrize("path", ["/api/customers", "/api/dashboard/stats", "/api/auth/me"])
    def test_protected_without_token(self, client, path):
        r = client.get(path)
        assert r.status_code == 401
        assert r.get_json() == {"success": False, "error": "Unauthorized"}

    def test_bad_token(self, client):
        r = client.get("/api/customers", headers={"Authorization": "Bearer nope"})
        assert r.status_code == 401

    def test_register_login_me(self, client, auth):
        r = client.get("/api/auth/me", headers=auth)
        assert r.status_code == 200
        assert r.get_json()["data"]["email"] == "counsel@firm.test"

    def test_duplicate_registration(self, client, auth):
        r = client.post(
            "/api/auth/register",
            json={"email": "counsel@firm.test", "name": "Again", "password": "another1", "role": "Viewer"},
        )
        assert r.status_code == 400
        assert r.get_json() == {"success": False, "error": "User already exists"}

    def test_wrong_password(self, client, auth):
        r = client.post("/api/auth/login", json={"email": "counsel@firm.test", "password": "wrong-one"})
        assert r.status_code == 401
        assert r.get_json()["error"] == "Invalid email or password"

    def test_invalid_json(self, client):
        r = client.post("/api/auth/login", data="not json", content_type="application/json")
        assert r.status_code == 400
        assert r.get_json() == {"success": False, "error": "Invalid JSON payload."}


class TestRecords:

    def test_crud_cycle(self, client, auth):
        record = _create(client, auth, "customers", CUSTOMER)
        rid = record["id"]

        r = client.get(f"/api/customers/{rid}", headers=auth)
        assert r.get_json() == {"success": True, "data": record}

        r = client.put(f"/api/customers/{rid}", json={"customer_status": "Inactive"}, headers=auth)
        assert r.status_code == 200
        assert r.get_json()["data"]["customer_status"] == "Inactive"

        r = client.delete(f"/api/customers/{rid}", headers=auth)
        assert r.get_json() == {"success": True, "message": "Customer deleted successfully"}

        r = client.delete(f"/api/customers/{rid}", headers=auth)
        assert r.status_code == 404
        assert r.get_json() == {"success": False, "error": "Customer not found"}

    def test_list_envelope(self, client, auth):
        for i in range(3):
            _create(client, auth, "customers", dict(CUSTOMER, customer_name=f"Globex {i}"))
        r = client.get("/api/customers?limit=2&page=2&search=globex", headers=auth)
        body = r.get_json()
        assert body["success"] is True
        assert len(body["data"]) == 1
        assert body["pagination"] == {"page": 2, "limit": 2, "total": 3, "totalPages": 2}

    def test_missing_required_field(self, client, auth):
        r = client.post("/api/customers", json={"customer_name": "No Email"}, headers=auth)
        assert r.status_code == 400
        assert r.get_json() == {"success": False, "error": "Missing required fields: email_address"}

    def test_empty_update(self, client, auth):
        record = _create(client, auth, "customers", CUSTOMER)
        r = client.patch(f"/api/customers/{record['id']}", json={"nope": 1}, headers=auth)
        assert r.status_code == 400
        assert r.get_json()["error"] == "No fields to update"

    def test_delete_conflict(self, client, auth):
        customer = _create(client, auth, "customers", CUSTOMER)
        _create(
            client, auth, "cases",
            {"case_title": "Globex v. Initech", "client_id": customer["id"], "case_type": "Litigation",
             "case_status": "Open"},
        )
        r = client.delete(f"/api/customers/{customer['id']}", headers=auth)
        assert r.status_code == 409
        assert r.get_json()["error"] == "Cannot delete customer with existing cases"

        r = client.get(f"/api/cases/by-customer/{customer['id']}", headers=auth)
        body = r.get_json()
        assert body["pagination"]["total"] == 1
        assert body["data"][0]["customer_name"] == "Globex"

    def test_unknown_route_is_enveloped(self, client, auth):
        r = client.get("/api/unknown-things", headers=auth)
        assert r.status_code == 404
        assert r.get_json()["success"] is False

    @pytest.mark.parametrize("path", ["contracts", "documents", "tasks", "compliance", "risks", "matters"])
    def test_every_collection_lists(self, client, auth, path):
        r = client.get(f"/api/{path}", headers=auth)
        assert r.status_code == 200
        assert r.get_json()["pagination"]["total"] == 0


class TestReports:

    def test_dashboard(self, client, auth):
        _create(client, auth, "customers", CUSTOMER)
        r = client.get("/api/dashboard/stats", headers=auth)
        assert r.get_json()["data"]["totalCustomers"] == 1

    def test_options(self, client, auth):
        data = client.get("/api/options", headers=auth).get_json()["data"]
        assert "Litigation" in data["case_types"]
        assert data["user_roles"] == ["Admin", "Attorney", "Paralegal", "Viewer"]

    def test_export_csv(self, client, auth):
        _create(client, auth, "customers", CUSTOMER)
        r = client.get("/api/reports/export?type=customers&format=csv", headers=auth)
        assert r.status_code == 200
        assert r.mimetype == "text/csv"
        assert "attachment" in r.headers["Content-Disposition"]
        assert b"Globex" in r.data

    def test_export_all_csv_rejected(self, client, auth):
        r = client.get("/api/reports/export?type=all&format=csv", headers=auth)
        assert r.status_code == 400
        assert r.get_json()["success"] is False

    def test_invoice_pdf(self, client, auth):
        customer = _create(client, auth, "customers", CUSTOMER)
        invoice = _create(
            client, auth, "invoices",
            {"client_id": customer["id"], "invoice_date": "2026-03-01", "due_date": "2026-03-31",
             "invoice_amount": 2500, "tax_amount": 0, "invoice_status": "Sent"},
        )
        r = client.get(f"/api/invoices/{invoice['id']}/pdf", headers=auth)
        assert r.status_code == 200
        assert r.mimetype == "application/pdf"
        assert r.data.startswith(b"%PDF-")

        r = client.get("/api/invoices/9999/pdf", headers=auth)
        assert r.status_code == 404
        assert r.get_json()["error"] == "Invoice not found"


class TestEdgeInputs:

    def test_huge_page_is_empty_not_error(self, client, auth):
        _create(client, auth, "customers", CUSTOMER)
        r = client.get("/api/customers?page=99999999999999999999", headers=auth)
        assert r.status_code == 200
        body = r.get_json()
        assert body["data"] == []
        assert body["pagination"]["total"] == 1

    @pytest.mark.parametrize("method", ["get", "put", "delete"])
    def test_huge_identifier_is_not_found(self, client, auth, method):
        r = getattr(client, method)(
            "/api/customers/99999999999999999999", json={"customer_status": "Active"}, headers=auth
        )
        assert r.status_code == 404
        assert r.get_json() == {"success": False, "error": "Customer not found"}


class _Collector(logging.Handler):

    def __init__(self):
        super().__init__(logging.DEBUG)
        self.records = []

    def emit(self, record):
        self.records.append(record)


def test_storage_failure_logged_once(app, client, auth, monkeypatch):
    database = app.extensions["practice"].database

    def broken_connect():
        raise sqlite3.OperationalError("disk I/O error")

    collector = _Collector()
    root = logging.getLogger()
    root.addHandler(collector)
    try:
        monkeypatch.setattr(database, "connect", broken_connect)
        r = client.get("/api/customers", headers=auth)
    finally:
        root.removeHandler(collector)

    assert r.status_code == 500
    assert r.get_json() == {"success": False, "error": "Failed to fetch customers"}
    errors = [rec for rec in collector.records if rec.levelno >= logging.ERROR]
    assert len(errors) == 1
    assert errors[0].name == "practice.repository"
    assert "disk I/O error" not in r.get_data(as_text=True)


def test_shutdown_releases_exit_hook(config_dir, monkeypatch):
    import app as app_module

    registered = []
    monkeypatch.setattr(app_module.atexit, "register", registered.append)
    monkeypatch.setattr(app_module.atexit, "unregister", registered.remove)

    application = app_module.create_app(
        overrides={"jwt_signing_key": "x" * 40, "log_level": "WARNING"}, config_dir=config_dir
    )
    assert len(registered) == 1
    app_module.shutdown_app(application)
    assert registered == []
    with pytest.raises(RuntimeError):
        application.extensions["practice"].database.connect()
