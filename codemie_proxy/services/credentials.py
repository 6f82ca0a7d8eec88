"""SSO credential store backed by a JSON file."""

import asyncio
import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError
from structlog import get_logger


logger = get_logger(__name__)


class SSOCredentials(BaseModel):
    """Cookies issued by the SSO login flow."""

    cookies: dict[str, str] = Field(description="Cookie name to value")
    api_url: str | None = Field(default=None, description="API the cookies are for")
    expires_at: datetime | None = Field(default=None, description="Expiry time")

    @property
    def is_expired(self) -> bool:
        if self.expires_at is None:
            return False
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=UTC)
        return expires_at <= datetime.now(UTC)

    def cookie_header(self) -> str:
        """Serialize cookies as a ``Cookie`` header value."""
        return "; ".join(f"{name}={value}" for name, value in self.cookies.items())


class CredentialStore:
    """Reads SSO credentials written by the login command."""

    def __init__(self, file_path: Path):
        """Initialize the store.

        Args:
            file_path: Path to the JSON credentials file
        """
        self.file_path = file_path

    async def retrieve_sso_credentials(self) -> SSOCredentials | None:
        """Load SSO credentials.

        Returns:
            Parsed credentials, or None if missing, unreadable, invalid,
            expired or empty
        """
        if not self.file_path.exists():
            logger.debug("sso_credentials_file_not_found", path=str(self.file_path))
            return None

        def read_file() -> dict[str, Any]:
            with self.file_path.open(encoding="utf-8") as f:
                return json.load(f)  # type: ignore[no-any-return]

        try:
            data = await asyncio.to_thread(read_file)
            credentials = SSOCredentials.model_validate(data)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(
                "sso_credentials_unreadable", path=str(self.file_path), error=str(e)
            )
            return None
        except ValidationError as e:
            logger.warning(
                "sso_credentials_invalid", path=str(self.file_path), error=str(e)
            )
            return None

        if credentials.is_expired:
            logger.info("sso_credentials_expired", expires_at=credentials.expires_at)
            return None

        if not credentials.cookies:
            logger.debug("sso_credentials_empty", path=str(self.file_path))
            return None

        logger.debug("sso_credentials_loaded", cookie_count=len(credentials.cookies))
        return credentials

    async def store_sso_credentials(self, credentials: SSOCredentials) -> None:
        """Persist credentials with owner-only permissions."""

        def write_file() -> None:
            self.file_path.parent.mkdir(parents=True, exist_ok=True)
            self.file_path.write_text(
                credentials.model_dump_json(indent=2, exclude_none=True),
                encoding="utf-8",
            )
            self.file_path.chmod(0o600)

        await asyncio.to_thread(write_file)
        logger.debug("sso_credentials_stored", path=str(self.file_path))

    async def clear_sso_credentials(self) -> bool:
        """Delete stored credentials. Returns True if a file was removed."""
        try:
            await asyncio.to_thread(self.file_path.unlink)
        except FileNotFoundError:
            return False
        logger.debug("sso_credentials_cleared", path=str(self.file_path))
        return True
