"""Read-only Xero accounting queries behind the dashboard report views."""

import re
from typing import Any, Dict, List, Optional

from xero_python.accounting import AccountingApi

from logger import logger
from utils.auth import raise_for_unauthorized

from .serialization import account_to_dict, contact_to_dict, invoice_to_dict, organisation_to_dict

INVOICE_ORDER = "Date DESC"
CONTACT_ORDER = "Name"
DASHBOARD_INVOICE_COUNT = 10
INVOICE_PAGE_SIZE = 50
INVOICE_STATUSES = ("DRAFT", "SUBMITTED", "AUTHORISED", "PAID", "VOIDED", "DELETED")
_ACCOUNT_TYPE_RE = re.compile(r"^[A-Z]+$")


def invoice_status_where(status_filter: Optional[str]) -> Optional[str]:
    """Build the Xero ``where`` clause for an invoice status filter; unknown statuses yield None."""
    status = (status_filter or "").strip().upper()
    if status not in INVOICE_STATUSES:
        return None
    return f'Status=="{status}"'


def account_type_where(account_type: Optional[str]) -> Optional[str]:
    account_type = (account_type or "").strip().upper()
    if not _ACCOUNT_TYPE_RE.match(account_type):
        return None
    return f'Type=="{account_type}"'


def get_organisation(api: AccountingApi, tenant_id: str) -> Dict[str, Any]:
    """Fetch the first organisation for the tenant."""
    try:
        result = api.get_organisations(tenant_id)
    except Exception as e:
        raise_for_unauthorized(e)
        logger.exception("Failed to fetch organisation", tenant_id=tenant_id, error=e)
        raise

    organisations = getattr(result, "organisations", None) or []
    return organisation_to_dict(organisations[0]) if organisations else {}


def get_invoices(api: AccountingApi, tenant_id: str, status_filter: Optional[str] = None, page_size: int = INVOICE_PAGE_SIZE) -> List[Dict[str, Any]]:
    """Fetch one page of invoices, newest first.

    Args:
        api: Request-scoped AccountingApi client.
        tenant_id: Xero tenant to query.
        status_filter: Optional invoice status, e.g. "AUTHORISED".
        page_size: Number of invoices to return.

    Returns:
        Invoices as plain dicts.
    """
    where = invoice_status_where(status_filter)
    logger.info("Fetching invoices", tenant_id=tenant_id, where=where, page_size=page_size)
    try:
        kwargs: Dict[str, Any] = {"order": INVOICE_ORDER, "page": 1, "page_size": page_size}
        if where:
            kwargs["where"] = where
        result = api.get_invoices(tenant_id, **kwargs)
    except Exception as e:
        raise_for_unauthorized(e)
        logger.exception("Failed to fetch invoices", tenant_id=tenant_id, error=e)
        raise

    invoices = [invoice_to_dict(item) for item in (getattr(result, "invoices", None) or [])]
    logger.info("Fetched invoices", tenant_id=tenant_id, returned=len(invoices))
    return invoices


def get_recent_invoices(api: AccountingApi, tenant_id: str) -> List[Dict[str, Any]]:
    return get_invoices(api, tenant_id, page_size=DASHBOARD_INVOICE_COUNT)


def get_contacts(api: AccountingApi, tenant_id: str, search_term: Optional[str] = None) -> List[Dict[str, Any]]:
    """Fetch contacts ordered by name, optionally narrowed by a search term."""
    search_term = (search_term or "").strip() or None
    logger.info("Fetching contacts", tenant_id=tenant_id, search=bool(search_term))
    try:
        kwargs: Dict[str, Any] = {"order": CONTACT_ORDER}
        if search_term:
            kwargs["search_term"] = search_term
        result = api.get_contacts(tenant_id, **kwargs)
    except Exception as e:
        raise_for_unauthorized(e)
        logger.exception("Failed to fetch contacts", tenant_id=tenant_id, error=e)
        raise

    contacts = [contact_to_dict(item) for item in (getattr(result, "contacts", None) or [])]
    logger.info("Fetched contacts", tenant_id=tenant_id, returned=len(contacts))
    return contacts


def get_accounts(api: AccountingApi, tenant_id: str, account_type: Optional[str] = None) -> List[Dict[str, Any]]:
    """Fetch the chart of accounts, optionally filtered to one account type."""
    where = account_type_where(account_type)
    try:
        result = api.get_accounts(tenant_id, where=where) if where else api.get_accounts(tenant_id)
    except Exception as e:
        raise_for_unauthorized(e)
        logger.exception("Failed to fetch accounts", tenant_id=tenant_id, error=e)
        raise

    accounts = [account_to_dict(item) for item in (getattr(result, "accounts", None) or [])]
    logger.info("Fetched accounts", tenant_id=tenant_id, returned=len(accounts))
    return accounts
