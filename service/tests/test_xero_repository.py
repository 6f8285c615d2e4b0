"""Unit tests for the read-only Xero report queries."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from types import SimpleNamespace
from typing import Any

import pytest
from flask import Flask

from utils.auth import RedirectToLogin, raise_for_unauthorized
from xero_repository import get_accounts, get_contacts, get_invoices, get_organisation, get_recent_invoices
from xero_repository.reports import account_type_where, invoice_status_where
from xero_repository.serialization import account_to_dict, invoice_to_dict, plain_value


class InvoiceStatus(Enum):
    PAID = "PAID"


class FakeAccountingApi:
    """Records calls and returns canned SDK-shaped results."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[tuple[str, str, dict[str, Any]]] = []

    def _record(self, name: str, tenant_id: str, kwargs: dict[str, Any]) -> None:
        self.calls.append((name, tenant_id, kwargs))
        if self.error is not None:
            raise self.error

    def get_organisations(self, tenant_id: str, **kwargs: Any) -> SimpleNamespace:
        self._record("get_organisations", tenant_id, kwargs)
        return SimpleNamespace(organisations=[SimpleNamespace(organisation_id="org-1", name="Demo Company (NZ)", base_currency=SimpleNamespace(value="NZD"))])

    def get_invoices(self, tenant_id: str, **kwargs: Any) -> SimpleNamespace:
        self._record("get_invoices", tenant_id, kwargs)
        invoice = SimpleNamespace(
            invoice_id="inv-1",
            invoice_number="INV-0001",
            status=InvoiceStatus.PAID,
            total=Decimal("115.00"),
            amount_due=Decimal("0"),
            contact=SimpleNamespace(name="City Agency"),
            date=date(2024, 3, 1),
            due_date=datetime(2024, 3, 15, 9, 30),
        )
        return SimpleNamespace(invoices=[invoice])

    def get_contacts(self, tenant_id: str, **kwargs: Any) -> SimpleNamespace:
        self._record("get_contacts", tenant_id, kwargs)
        return SimpleNamespace(contacts=[SimpleNamespace(contact_id="c-1", name="City Agency", is_customer=True)])

    def get_accounts(self, tenant_id: str, **kwargs: Any) -> SimpleNamespace:
        self._record("get_accounts", tenant_id, kwargs)
        return SimpleNamespace(accounts=[SimpleNamespace(account_id="a-1", code="200", name="Sales", _class=SimpleNamespace(value="REVENUE"))])


class UnauthorizedError(Exception):
    def __init__(self, status: int) -> None:
        super().__init__(f"HTTP {status}")
        self.status = status


@pytest.mark.parametrize(
    ("status_filter", "where"),
    [
        ("PAID", 'Status=="PAID"'),
        (" authorised ", 'Status=="AUTHORISED"'),
        ("", None),
        (None, None),
        ('PAID" OR Status=="DRAFT', None),
        ("ARCHIVED", None),
    ],
)
def test_invoice_status_where(status_filter: str | None, where: str | None) -> None:
    assert invoice_status_where(status_filter) == where


def test_account_type_where_only_accepts_plain_words() -> None:
    assert account_type_where("bank") == 'Type=="BANK"'
    assert account_type_where('BANK"||1==1') is None
    assert account_type_where(None) is None


def test_get_invoices_filters_by_status_and_serializes() -> None:
    api = FakeAccountingApi()

    invoices = get_invoices(api, "tenant-1", status_filter="paid")

    assert api.calls == [("get_invoices", "tenant-1", {"order": "Date DESC", "page": 1, "page_size": 50, "where": 'Status=="PAID"'})]
    assert invoices == [
        {
            "invoice_id": "inv-1",
            "invoice_number": "INV-0001",
            "type": None,
            "reference": None,
            "status": "PAID",
            "currency_code": None,
            "sub_total": None,
            "total_tax": None,
            "total": 115.0,
            "amount_due": 0.0,
            "amount_paid": None,
            "contact_name": "City Agency",
            "date": "2024-03-01",
            "due_date": "2024-03-15",
        }
    ]


def test_get_invoices_ignores_unknown_status() -> None:
    api = FakeAccountingApi()

    get_invoices(api, "tenant-1", status_filter="bogus")

    assert "where" not in api.calls[0][2]


def test_recent_invoices_are_limited() -> None:
    api = FakeAccountingApi()

    get_recent_invoices(api, "tenant-1")

    assert api.calls[0][2]["page_size"] == 10


def test_get_contacts_passes_search_term_only_when_set() -> None:
    api = FakeAccountingApi()

    get_contacts(api, "tenant-1", search_term="  ")
    get_contacts(api, "tenant-1", search_term="city")

    assert api.calls[0][2] == {"order": "Name"}
    assert api.calls[1][2] == {"order": "Name", "search_term": "city"}


def test_get_accounts_maps_reserved_class_field() -> None:
    api = FakeAccountingApi()

    accounts = get_accounts(api, "tenant-1", account_type="revenue")

    assert api.calls[0][2] == {"where": 'Type=="REVENUE"'}
    assert accounts[0]["class"] == "REVENUE"
    assert accounts[0]["code"] == "200"


def test_get_organisation_returns_first_organisation() -> None:
    organisation = get_organisation(FakeAccountingApi(), "tenant-1")

    assert organisation["name"] == "Demo Company (NZ)"
    assert organisation["base_currency"] == "NZD"


def test_unauthorized_report_error_redirects_to_login() -> None:
    app = Flask(__name__)

    with app.test_request_context("/invoices"):
        with pytest.raises(RedirectToLogin):
            get_invoices(FakeAccountingApi(error=UnauthorizedError(401)), "tenant-1")


def test_other_report_errors_propagate() -> None:
    with pytest.raises(UnauthorizedError):
        get_contacts(FakeAccountingApi(error=UnauthorizedError(500)), "tenant-1")


def test_raise_for_unauthorized_reads_nested_response_status() -> None:
    error = Exception("wrapped")
    error.response = SimpleNamespace(status_code=403)  # type: ignore[attr-defined]

    with pytest.raises(RedirectToLogin):
        raise_for_unauthorized(error)


def test_plain_value_collapses_sdk_types() -> None:
    assert plain_value(Decimal("1.50")) == 1.5
    assert plain_value(InvoiceStatus.PAID) == "PAID"
    assert plain_value(date(2024, 1, 2)) == "2024-01-02"
    assert plain_value(None) is None


def test_serializers_tolerate_missing_attributes() -> None:
    assert invoice_to_dict(SimpleNamespace())["contact_name"] is None
    assert account_to_dict(SimpleNamespace())["class"] is None
