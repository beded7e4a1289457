"""
Klaviyo implementation of the CustomerProfile collaborator.

Creates or updates the participant's profile through the profile-import
endpoint and, when a list is configured, subscribes the profile to it.
Timeouts, transport errors, rate limits and 5xx responses are retried with
exponential backoff; other 4xx responses fail immediately.
"""

import asyncio
from typing import Any, Dict, Optional

import httpx
import structlog

from src.core.config import settings
from src.core.exceptions import ConfigurationError, ProfileSyncError

log = structlog.get_logger(__name__)

KLAVIYO_BASE_URL = "https://a.klaviyo.com/api"
KLAVIYO_API_REVISION = "2024-10-15"
PROFILE_SOURCE = "participation_funnel"


class _RetryableError(Exception):
    pass


def split_name(name: Optional[str]) -> tuple[Optional[str], Optional[str]]:
    """Split a free-form name into (first, last). Single words are first names."""
    if not name or not name.strip():
        return None, None
    parts = name.strip().split(maxsplit=1)
    return parts[0], parts[1] if len(parts) > 1 else None


class KlaviyoProfileClient:
    """Upserts participant profiles into Klaviyo."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        list_id: Optional[str] = None,
        max_retries: Optional[int] = None,
        timeout: Optional[float] = None,
        base_delay: float = 1.0,
        base_url: str = KLAVIYO_BASE_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize Klaviyo client.

        Args:
            api_key: Private API key (defaults to settings.klaviyo_api_key)
            list_id: List to subscribe profiles to (optional)
            max_retries: Retries after the first attempt (defaults to settings)
            timeout: Per-request timeout in seconds
            base_delay: First backoff delay; doubles on each retry
            base_url: API root
            transport: Custom httpx transport (for testing)

        Raises:
            ConfigurationError: If no API key is configured
        """
        self.api_key = api_key or settings.klaviyo_api_key
        self.list_id = list_id if list_id is not None else settings.klaviyo_list_id
        self.max_retries = (
            max_retries if max_retries is not None else settings.klaviyo_max_retries
        )
        self.timeout = timeout if timeout is not None else settings.klaviyo_timeout
        self.base_delay = base_delay
        self.base_url = base_url.rstrip("/")
        self.transport = transport

        if not self.api_key:
            raise ConfigurationError("KLAVIYO_API_KEY not configured. Set it in .env.")

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Klaviyo-API-Key {self.api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
            "revision": KLAVIYO_API_REVISION,
        }

    def _profile_payload(
        self, email: str, name: Optional[str], session_id: str
    ) -> Dict[str, Any]:
        first_name, last_name = split_name(name)
        attributes: Dict[str, Any] = {
            "email": email,
            "properties": {"session_id": session_id, "source": PROFILE_SOURCE},
        }
        if first_name:
            attributes["first_name"] = first_name
        if last_name:
            attributes["last_name"] = last_name
        return {"data": {"type": "profile", "attributes": attributes}}

    async def _post(self, client: httpx.AsyncClient, path: str, payload: dict) -> httpx.Response:
        try:
            response = await client.post(
                f"{self.base_url}{path}", headers=self._headers(), json=payload
            )
        except (httpx.TimeoutException, httpx.TransportError) as e:
            raise _RetryableError(f"{type(e).__name__}: {e}") from e

        if response.status_code == 429 or response.status_code >= 500:
            raise _RetryableError(f"HTTP {response.status_code}")
        if response.is_error:
            log.error(
                "klaviyo_http_error",
                path=path,
                status_code=response.status_code,
                body=response.text[:500],
            )
            raise ProfileSyncError(
                f"Klaviyo rejected {path} with HTTP {response.status_code}"
            )
        return response

    async def _upsert_once(self, email: str, name: Optional[str], session_id: str) -> None:
        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self.transport
        ) as client:
            response = await self._post(
                client, "/profile-import/", self._profile_payload(email, name, session_id)
            )
            if not self.list_id:
                return

            try:
                profile_id = response.json()["data"]["id"]
            except (KeyError, TypeError, ValueError) as e:
                raise ProfileSyncError(
                    "Klaviyo profile-import response has no profile id"
                ) from e
            await self._post(
                client,
                f"/lists/{self.list_id}/relationships/profiles/",
                {"data": [{"type": "profile", "id": profile_id}]},
            )

    async def upsert(self, email: str, name: Optional[str], session_id: str) -> None:
        """
        Create or update the profile, retrying transient failures.

        Raises:
            ProfileSyncError: Non-retryable rejection or retries exhausted
        """
        for attempt in range(self.max_retries + 1):
            try:
                await self._upsert_once(email, name, session_id)
            except _RetryableError as e:
                log.warning(
                    "klaviyo_attempt_failed",
                    session_id=session_id,
                    attempt=attempt + 1,
                    max_retries=self.max_retries,
                    error=str(e),
                )
                if attempt < self.max_retries:
                    delay = self.base_delay * (2**attempt)
                    log.info(
                        "klaviyo_retry_scheduled",
                        delay_seconds=delay,
                        next_attempt=attempt + 2,
                    )
                    await asyncio.sleep(delay)
                else:
                    raise ProfileSyncError(
                        f"Klaviyo profile sync failed after {self.max_retries + 1} attempts: {e}"
                    ) from e
            else:
                log.info(
                    "klaviyo_profile_synced",
                    session_id=session_id,
                    list_subscribed=bool(self.list_id),
                    attempt=attempt + 1,
                )
                return
