import secrets
from typing import Any

from flask import Blueprint, Flask, jsonify, redirect, render_template, request, session, url_for
from werkzeug.exceptions import HTTPException

from core.models import ConnectionStatus, StatusReason
from exceptions import XeroAuthError
from logger import logger
from utils.auth import (
    current_status,
    get_token_manager,
    get_xero_api_client,
    route_handler_logging,
    xero_token_required,
)
from xero_repository import (
    INVOICE_STATUSES,
    get_accounts,
    get_contacts,
    get_invoices,
    get_organisation,
    get_recent_invoices,
)

OAUTH_STATE_KEY = "oauth_state"


def _safe_status() -> ConnectionStatus:
    try:
        return current_status()
    except Exception:
        logger.exception("Unable to resolve Xero status for error page")
        return ConnectionStatus.disconnected(StatusReason.NOT_AUTHENTICATED)


def render_error(error: Any, active: str = "home", status_code: int = 200):
    """Render the error page alongside the current connection status."""
    message = str(error) or error.__class__.__name__
    return render_template("error.html", error=message, active=active, **_safe_status().to_context()), status_code


def _api_for_status():
    status = current_status()
    tokens = status.tokens or {}
    manager = get_token_manager()
    return get_xero_api_client(tokens, token_saver=lambda new_tokens: manager.save_rotated_tokens(tokens, new_tokens)), status


def _settings_context() -> dict[str, Any]:
    manager = get_token_manager()
    settings = manager.oauth.settings
    return {
        "clientId": "✓ Set" if settings.client_id else "✗ Not Set",
        "clientSecret": "✓ Set" if settings.client_secret else "✗ Not Set",
        "redirectUri": settings.redirect_uri,
        "scopes": list(settings.scopes),
        "tokenStore": manager.store.describe(),
    }


def register_routes(app: Flask, base_path: str = "", callback_path: str = "/callback") -> None:
    dashboard = Blueprint("dashboard", __name__)

    @dashboard.route("/")
    @route_handler_logging
    def index():
        return render_template("index.html", active="home", **current_status().to_context())

    @dashboard.route("/login")
    @route_handler_logging
    def login():
        logger.info("Login initiated")
        # Create and store a CSRF state
        state = secrets.token_urlsafe(24)
        session[OAUTH_STATE_KEY] = state
        try:
            consent_url = get_token_manager().begin_login(state)
        except XeroAuthError as e:
            logger.error("Login error", error=str(e))
            return render_error(e, "home", 500)
        return redirect(consent_url)

    @dashboard.route("/refresh")
    @route_handler_logging
    def refresh():
        try:
            get_token_manager().refresh()
        except XeroAuthError as e:
            logger.warning("Refresh error", error=str(e), error_type=e.__class__.__name__)
            return redirect(url_for("dashboard.login"))
        return redirect(url_for("dashboard.index"))

    @dashboard.route("/dashboard")
    @route_handler_logging
    @xero_token_required
    def dashboard_view():
        try:
            api, status = _api_for_status()
            organisation = get_organisation(api, status.tenant_id)
            invoices = get_recent_invoices(api, status.tenant_id)
        except HTTPException:
            raise
        except Exception as e:
            logger.error("Dashboard error", error=str(e))
            return render_error(e, "dashboard")
        return render_template("dashboard.html", active="dashboard", organisation=organisation, invoices=invoices, **status.to_context())

    @dashboard.route("/invoices")
    @route_handler_logging
    @xero_token_required
    def invoices():
        status_filter = (request.args.get("status") or "").strip().upper()
        try:
            api, status = _api_for_status()
            invoice_rows = get_invoices(api, status.tenant_id, status_filter=status_filter)
        except HTTPException:
            raise
        except Exception as e:
            logger.error("Invoices error", error=str(e))
            return render_error(e, "invoices")
        return render_template(
            "invoices.html",
            active="invoices",
            invoices=invoice_rows,
            statusFilter=status_filter if status_filter in INVOICE_STATUSES else "",
            statuses=INVOICE_STATUSES,
            **status.to_context(),
        )

    @dashboard.route("/contacts")
    @route_handler_logging
    @xero_token_required
    def contacts():
        search = (request.args.get("search") or "").strip()
        try:
            api, status = _api_for_status()
            contact_rows = get_contacts(api, status.tenant_id, search_term=search)
        except HTTPException:
            raise
        except Exception as e:
            logger.error("Contacts error", error=str(e))
            return render_error(e, "contacts")
        return render_template("contacts.html", active="contacts", contacts=contact_rows, search=search, **status.to_context())

    @dashboard.route("/accounts")
    @route_handler_logging
    @xero_token_required
    def accounts():
        account_type = (request.args.get("type") or "").strip().upper()
        try:
            api, status = _api_for_status()
            account_rows = get_accounts(api, status.tenant_id, account_type=account_type)
        except HTTPException:
            raise
        except Exception as e:
            logger.error("Accounts error", error=str(e))
            return render_error(e, "accounts")
        return render_template("accounts.html", active="accounts", accounts=account_rows, accountType=account_type, **status.to_context())

    @dashboard.route("/tokens")
    @route_handler_logging
    def tokens():
        return render_template("tokens.html", active="tokens", **current_status().to_context())

    @dashboard.route("/tokens/full")
    def tokens_full():
        record = get_token_manager().get_raw_token_record()
        return jsonify(record or {"error": "No tokens saved"})

    @dashboard.route("/settings")
    @route_handler_logging
    def settings():
        return render_template("settings.html", active="settings", **_settings_context(), **current_status().to_context())

    @dashboard.route("/disconnect")
    @route_handler_logging
    def disconnect():
        get_token_manager().disconnect()
        session.pop(OAUTH_STATE_KEY, None)
        return redirect(url_for("dashboard.index"))

    @dashboard.route("/favicon.ico")
    def ignore_favicon():
        return "", 204  # Empty response, no content

    app.register_blueprint(dashboard, url_prefix=base_path or None)

    # Xero redirects to the exact registered URI, so the callback lives outside the prefix.
    @app.route(callback_path, endpoint="oauth_callback")
    @route_handler_logging
    def callback():
        # A missing stored state never matches, so an unsolicited callback is rejected.
        expected_state = session.pop(OAUTH_STATE_KEY, None) or ""
        try:
            get_token_manager().handle_callback(request.url, expected_state=expected_state)
        except XeroAuthError as e:
            logger.error("Callback error", error=str(e), error_code=e.status_code)
            return render_error(e, "home", e.status_code or 400)
        return redirect(url_for("dashboard.index"))

    @app.route("/.well-known/<path:path>")
    def chrome_devtools_ping(path):
        # Avoids 404 error being logged when chrome developer tools is open
        # /.well-known/appspecific/com.chrome.devtools.json
        return "", 204  # No content, indicates "OK but nothing here"
