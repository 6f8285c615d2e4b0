"""Module for all Xero data API calls"""

from .reports import (
    INVOICE_STATUSES,
    get_accounts,
    get_contacts,
    get_invoices,
    get_organisation,
    get_recent_invoices,
)

__all__ = [
    "INVOICE_STATUSES",
    "get_accounts",
    "get_contacts",
    "get_invoices",
    "get_organisation",
    "get_recent_invoices",
]
