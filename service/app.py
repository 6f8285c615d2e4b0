import os
from typing import Any, Dict, Optional

from cachelib.file import FileSystemCache
from flask import Flask, render_template
from flask_caching import Cache
from flask_session import Session
from werkzeug.exceptions import HTTPException

import cache_provider
from config import (
    BASE_PATH,
    CALLBACK_PATH,
    PORT,
    STAGE,
    TENANT_CACHE_SECONDS,
    TOKEN_FILE,
    TOKEN_S3_BUCKET,
    TOKEN_S3_KEY,
    TOKEN_STORE_BACKEND,
    get_s3_client,
    load_xero_settings,
)
from core.models import ConnectionStatus, StatusReason
from logger import logger
from routes import register_routes
from token_manager import TokenLifecycleManager
from utils.auth import TOKEN_MANAGER_EXTENSION
from utils.storage import build_token_store
from xero_oauth import XeroOAuthClient


def build_token_manager() -> TokenLifecycleManager:
    """Wire the token store and Xero identity client from configuration."""
    s3_client = get_s3_client() if TOKEN_STORE_BACKEND == "s3" else None
    store = build_token_store(TOKEN_STORE_BACKEND, TOKEN_FILE, bucket=TOKEN_S3_BUCKET, key=TOKEN_S3_KEY, s3_client=s3_client)
    return TokenLifecycleManager(store, XeroOAuthClient(load_xero_settings()))


def create_app(token_manager: Optional[TokenLifecycleManager] = None, config_overrides: Optional[Dict[str, Any]] = None) -> Flask:
    """Build the dashboard app.

    Args:
        token_manager: Token lifecycle manager to use instead of the configured one.
        config_overrides: Flask config values applied before extensions initialise.

    Returns:
        Configured Flask app.
    """
    app = Flask(__name__)
    app.secret_key = os.getenv("FLASK_SECRET_KEY", os.urandom(16))

    app.config.update(
        SESSION_TYPE="cachelib",
        SESSION_PERMANENT=False,
        SESSION_SERIALIZATION_FORMAT="json",
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SECURE=STAGE == "prod",
        SESSION_COOKIE_SAMESITE="Lax",
    )
    if config_overrides:
        app.config.update(config_overrides)
    if "SESSION_CACHELIB" not in app.config:
        session_dir = os.path.join(app.instance_path, "flask_session")
        os.makedirs(session_dir, exist_ok=True)
        app.config["SESSION_CACHELIB"] = FileSystemCache(cache_dir=session_dir, threshold=500)
    Session(app)

    cache = Cache(app, config={"CACHE_TYPE": "SimpleCache", "CACHE_DEFAULT_TIMEOUT": 0})
    cache_provider.set_cache(cache, TENANT_CACHE_SECONDS)

    app.extensions[TOKEN_MANAGER_EXTENSION] = token_manager or build_token_manager()

    @app.context_processor
    def _inject_paths() -> Dict[str, Any]:
        return {"basePath": BASE_PATH, "redirectUri": app.extensions[TOKEN_MANAGER_EXTENSION].oauth.settings.redirect_uri}

    @app.errorhandler(Exception)
    def _handle_unexpected_error(error: Exception):
        if isinstance(error, HTTPException):
            return error
        logger.exception("Unhandled error", error=str(error))
        context = ConnectionStatus.disconnected(StatusReason.NOT_AUTHENTICATED).to_context()
        return render_template("error.html", error="Internal Server Error", active="home", **context), 500

    register_routes(app, base_path=BASE_PATH, callback_path=CALLBACK_PATH)
    return app


app = create_app()


if __name__ == "__main__":
    logger.info("Starting Xero dashboard", base_path=BASE_PATH or "/", callback_path=CALLBACK_PATH, port=PORT)
    app.run(host="0.0.0.0", port=PORT, debug=STAGE == "dev")
