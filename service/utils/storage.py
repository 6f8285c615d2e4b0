"""Storage for the single persisted Xero token record."""

import json
import os
import threading
from datetime import UTC, datetime
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError
from pydantic import ValidationError

from core.models import TokenRecord
from exceptions import PersistenceError
from logger import logger

EMPTY_RECORD = "{}"


class TokenStore:
    """
    Holds at most one token record on some durable medium.

    "Missing", "empty" and "{}" all mean there are no credentials. Disconnecting
    writes "{}" rather than removing the location, so a pre-created path or
    mounted volume stays valid across restarts.

    Subclasses implement the raw text reads and writes.
    """

    backend = "unknown"

    def __init__(self) -> None:
        self._lock = threading.Lock()

    def _exists(self) -> bool:
        raise NotImplementedError

    def _read_text(self) -> str | None:
        """Return the stored text, or None when the location does not exist."""
        raise NotImplementedError

    def _write_text(self, body: str) -> None:
        raise NotImplementedError

    def describe(self) -> str:
        return self.backend

    def save(self, record: dict[str, Any]) -> dict[str, Any] | None:
        """Replace the stored record with ``record`` stamped with ``saved_at``.

        Args:
            record: Token set as returned by Xero identity.

        Returns:
            The stored form, or None if it could not be written.
        """
        data = {**record, "saved_at": datetime.now(UTC).isoformat()}
        try:
            body = json.dumps(data, indent=2, default=str)
            with self._lock:
                self._write_text(body)
        except (PersistenceError, TypeError, ValueError) as e:
            logger.error("Error saving tokens", store=self.describe(), error=str(e))
            return None

        logger.info("Tokens saved successfully", store=self.describe())
        return data

    def load(self) -> dict[str, Any] | None:
        """Return the stored record, or None when there is nothing usable."""
        try:
            with self._lock:
                raw = self._read_text()
        except PersistenceError as e:
            logger.error("Error loading tokens", store=self.describe(), error=str(e))
            return None

        if raw is None:
            return None
        content = raw.strip()
        if not content or content == EMPTY_RECORD:
            logger.info("Token store is empty", store=self.describe())
            return None

        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            logger.warning("Token store content is not valid JSON", store=self.describe(), error=str(e))
            return None

        if not isinstance(data, dict) or not data:
            logger.warning("Token store content is not a token record", store=self.describe())
            return None

        try:
            TokenRecord.model_validate(data)
        except ValidationError as e:
            logger.warning("Token store content failed validation", store=self.describe(), errors=e.error_count())
            return None

        return data

    def clear(self) -> None:
        """Overwrite the stored record with the empty sentinel."""
        try:
            with self._lock:
                if not self._exists():
                    return
                self._write_text(EMPTY_RECORD)
        except PersistenceError as e:
            logger.error("Error clearing tokens", store=self.describe(), error=str(e))
            return
        logger.info("Tokens cleared", store=self.describe())


class FileTokenStore(TokenStore):
    """Token record kept in a local JSON file."""

    backend = "file"

    def __init__(self, path: str) -> None:
        super().__init__()
        self.path = path

    def describe(self) -> str:
        return f"file:{self.path}"

    def _exists(self) -> bool:
        return os.path.exists(self.path)

    def _read_text(self) -> str | None:
        try:
            with open(self.path, encoding="utf-8") as handle:
                return handle.read()
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise PersistenceError(f"Unable to read {self.path}: {e}") from e

    def _write_text(self, body: str) -> None:
        # Rewrite in place; the path may be a bind-mounted file that cannot be replaced.
        try:
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as handle:
                handle.write(body)
        except OSError as e:
            raise PersistenceError(f"Unable to write {self.path}: {e}") from e


class S3TokenStore(TokenStore):
    """Token record kept as a single JSON object in S3."""

    backend = "s3"

    def __init__(self, bucket: str, key: str, s3_client: Any) -> None:
        super().__init__()
        if not bucket:
            raise ValueError("bucket is required for the S3 token store")
        self._bucket = bucket
        self._key = key.strip("/")
        self._s3 = s3_client

    def describe(self) -> str:
        return f"s3://{self._bucket}/{self._key}"

    def _exists(self) -> bool:
        try:
            self._s3.head_object(Bucket=self._bucket, Key=self._key)
            return True
        except ClientError as exc:
            if exc.response["Error"].get("Code") in {"NoSuchKey", "404"}:
                return False
            raise PersistenceError(f"Unable to inspect {self.describe()}: {exc}") from exc
        except BotoCoreError as exc:
            raise PersistenceError(f"Unable to inspect {self.describe()}: {exc}") from exc

    def _read_text(self) -> str | None:
        try:
            obj = self._s3.get_object(Bucket=self._bucket, Key=self._key)
        except ClientError as exc:
            if exc.response["Error"].get("Code") in {"NoSuchKey", "404"}:
                return None
            raise PersistenceError(f"Unable to read {self.describe()}: {exc}") from exc
        except BotoCoreError as exc:
            raise PersistenceError(f"Unable to read {self.describe()}: {exc}") from exc

        body = obj.get("Body")
        if body is None:
            return None
        try:
            return body.read().decode("utf-8")
        except UnicodeDecodeError as exc:
            raise PersistenceError(f"Unable to decode {self.describe()}: {exc}") from exc

    def _write_text(self, body: str) -> None:
        try:
            self._s3.put_object(Bucket=self._bucket, Key=self._key, Body=body.encode("utf-8"), ContentType="application/json")
        except (BotoCoreError, ClientError) as exc:
            raise PersistenceError(f"Unable to write {self.describe()}: {exc}") from exc


def build_token_store(backend: str, token_file: str, bucket: str | None = None, key: str | None = None, s3_client: Any = None) -> TokenStore:
    """Create the token store for the configured backend.

    Args:
        backend: "file" or "s3".
        token_file: Path used by the file backend.
        bucket: Bucket used by the S3 backend.
        key: Object key used by the S3 backend.
        s3_client: boto3 S3 client for the S3 backend.

    Returns:
        A TokenStore instance.
    """
    if backend == "s3":
        if s3_client is None:
            raise ValueError("s3_client is required for the S3 token store")
        return S3TokenStore(bucket=bucket or "", key=key or "xero_tokens.json", s3_client=s3_client)
    if backend != "file":
        raise ValueError(f"Unknown token store backend: {backend}")
    return FileTokenStore(token_file)
