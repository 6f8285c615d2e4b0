"""Configuration module for the Xero dashboard."""

import os
import urllib.parse
from dataclasses import dataclass, field

import boto3
from dotenv import load_dotenv
from mypy_boto3_ssm import SSMClient

from logger import logger

load_dotenv()

AWS_PROFILE = os.getenv("AWS_PROFILE")
AWS_REGION = os.getenv("AWS_REGION")
STAGE = os.getenv("STAGE")
PORT = int(os.getenv("PORT", "5000"))

# Prefix for every dashboard route, e.g. "/demo". Empty string mounts at the root.
BASE_PATH = os.getenv("BASE_PATH", "").rstrip("/")

XERO_REDIRECT_URI = os.getenv("XERO_REDIRECT_URI", f"http://localhost:{PORT}/callback")
# Xero calls back on the exact path registered for the app, independent of BASE_PATH.
CALLBACK_PATH = urllib.parse.urlparse(XERO_REDIRECT_URI).path or "/callback"

TOKEN_STORE_BACKEND = os.getenv("TOKEN_STORE_BACKEND", "file").strip().lower()
TOKEN_FILE = os.getenv("TOKEN_FILE", os.path.join(os.path.dirname(os.path.abspath(__file__)), "xero_tokens.json"))
TOKEN_S3_BUCKET = os.getenv("TOKEN_S3_BUCKET")
TOKEN_S3_KEY = os.getenv("TOKEN_S3_KEY", "xero/xero_tokens.json")

TENANT_CACHE_SECONDS = int(os.getenv("TENANT_CACHE_SECONDS", "60"))
XERO_HTTP_TIMEOUT_SECONDS = float(os.getenv("XERO_HTTP_TIMEOUT_SECONDS", "20"))
XERO_TOKEN_EXPIRY_SKEW_SECONDS = int(os.getenv("XERO_TOKEN_EXPIRY_SKEW_SECONDS", "0"))

DEFAULT_SCOPES = (
    "openid",
    "profile",
    "email",
    "offline_access",
    "accounting.transactions.read",
    "accounting.contacts.read",
    "accounting.settings.read",
    "accounting.reports.read",
)

_aws_session: boto3.session.Session | None = None


def _get_aws_session() -> boto3.session.Session:
    """Return the shared boto3 session, creating it on first use."""
    global _aws_session
    if _aws_session is None:
        if STAGE == "dev":
            _aws_session = boto3.session.Session(profile_name=AWS_PROFILE, region_name=AWS_REGION)
        else:
            _aws_session = boto3.session.Session()  # Use the default session (e.g., in AppRunner)
    return _aws_session


def get_s3_client():
    return _get_aws_session().client("s3")


def fetch_parameter(name: str) -> str:
    """Fetches a single parameter from AWS SSM Parameter Store."""
    ssm_client: SSMClient = _get_aws_session().client("ssm")
    try:
        response = ssm_client.get_parameter(Name=name, WithDecryption=True)
        return response["Parameter"]["Value"]
    except ssm_client.exceptions.ParameterNotFound as e:
        logger.error("Parameter not found in SSM.", parameter=name)
        raise ValueError("Parameter not found in SSM.") from e
    except ssm_client.exceptions.ClientError as e:
        logger.error("Error fetching parameter", parameter=name)
        raise RuntimeError("Error fetching parameter") from e


def _secret_from_env(value_var: str, path_var: str) -> str | None:
    """Read a secret from the environment, or from SSM when only its parameter path is set."""
    value = os.getenv(value_var)
    if value:
        return value
    path = os.getenv(path_var)
    if path:
        return fetch_parameter(path)
    return None


CLIENT_ID = _secret_from_env("XERO_CLIENT_ID", "XERO_CLIENT_ID_PATH")
CLIENT_SECRET = _secret_from_env("XERO_CLIENT_SECRET", "XERO_CLIENT_SECRET_PATH")


def _scopes_from_env() -> tuple[str, ...]:
    raw = os.getenv("XERO_SCOPES", "")
    scopes = tuple(scope for scope in raw.replace(",", " ").split() if scope)
    return scopes or DEFAULT_SCOPES


@dataclass(frozen=True)
class XeroSettings:
    """
    OAuth client settings handed to the token lifecycle components.

    Attributes:
        client_id: Xero app client ID.
        client_secret: Xero app client secret.
        redirect_uri: Callback URL registered with the Xero app.
        scopes: Scopes requested at consent time.
        http_timeout: Timeout in seconds for identity and connections calls.
        expiry_skew_seconds: Seconds subtracted from token lifetime when checking expiry.
    """

    client_id: str | None
    client_secret: str | None
    redirect_uri: str | None
    scopes: tuple[str, ...] = field(default=DEFAULT_SCOPES)
    http_timeout: float = 20.0
    expiry_skew_seconds: int = 0

    @property
    def is_complete(self) -> bool:
        return bool(self.client_id and self.client_secret and self.redirect_uri)

    def scope_str(self) -> str:
        """Space-separated scope string for OAuth requests."""
        return " ".join(self.scopes)


def load_xero_settings() -> XeroSettings:
    """Build XeroSettings from the environment-backed module globals."""
    return XeroSettings(
        client_id=CLIENT_ID,
        client_secret=CLIENT_SECRET,
        redirect_uri=XERO_REDIRECT_URI,
        scopes=_scopes_from_env(),
        http_timeout=XERO_HTTP_TIMEOUT_SECONDS,
        expiry_skew_seconds=XERO_TOKEN_EXPIRY_SKEW_SECONDS,
    )
