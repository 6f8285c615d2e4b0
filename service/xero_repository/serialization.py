from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional


def fmt_date(value: Any) -> Optional[str]:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str):
        return value
    if value is None:
        return None
    candidate = getattr(value, "isoformat", None)
    if callable(candidate):
        try:
            result = candidate()
            return result if isinstance(result, str) else None
        except Exception:
            return None
    return None


def plain_value(value: Any) -> Any:
    """Collapse SDK enums, decimals and UUIDs into template-friendly primitives."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return fmt_date(value)
    enum_value = getattr(value, "value", None)
    if enum_value is not None:
        return enum_value
    return str(value)


def _pick(item: Any, fields: Dict[str, str]) -> Dict[str, Any]:
    return {key: plain_value(getattr(item, attr, None)) for key, attr in fields.items()}


_ORGANISATION_FIELDS = {
    "organisation_id": "organisation_id",
    "name": "name",
    "legal_name": "legal_name",
    "short_code": "short_code",
    "organisation_type": "organisation_type",
    "base_currency": "base_currency",
    "country_code": "country_code",
    "timezone": "timezone",
    "financial_year_end_day": "financial_year_end_day",
    "financial_year_end_month": "financial_year_end_month",
}

_INVOICE_FIELDS = {
    "invoice_id": "invoice_id",
    "invoice_number": "invoice_number",
    "type": "type",
    "reference": "reference",
    "status": "status",
    "currency_code": "currency_code",
    "sub_total": "sub_total",
    "total_tax": "total_tax",
    "total": "total",
    "amount_due": "amount_due",
    "amount_paid": "amount_paid",
}

_CONTACT_FIELDS = {
    "contact_id": "contact_id",
    "name": "name",
    "first_name": "first_name",
    "last_name": "last_name",
    "email_address": "email_address",
    "contact_status": "contact_status",
    "is_customer": "is_customer",
    "is_supplier": "is_supplier",
}

_ACCOUNT_FIELDS = {
    "account_id": "account_id",
    "code": "code",
    "name": "name",
    "type": "type",
    "status": "status",
    "tax_type": "tax_type",
    "description": "description",
    "bank_account_number": "bank_account_number",
    # The SDK exposes the reserved word "Class" as ``_class``.
    "class": "_class",
}


def organisation_to_dict(item: Any) -> Dict[str, Any]:
    if item is None:
        return {}
    return _pick(item, _ORGANISATION_FIELDS)


def invoice_to_dict(item: Any) -> Dict[str, Any]:
    data = _pick(item, _INVOICE_FIELDS)
    contact = getattr(item, "contact", None)
    data["contact_name"] = getattr(contact, "name", None) if contact is not None else None
    data["date"] = fmt_date(getattr(item, "date", None))
    data["due_date"] = fmt_date(getattr(item, "due_date", None))
    return data


def contact_to_dict(item: Any) -> Dict[str, Any]:
    return _pick(item, _CONTACT_FIELDS)


def account_to_dict(item: Any) -> Dict[str, Any]:
    return _pick(item, _ACCOUNT_FIELDS)
