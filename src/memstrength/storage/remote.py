"""Remote strength store client with async httpx.

This module provides an async HTTP client for the canonical strength record,
held in a PostgREST-style `profiles` table:
- Compare-and-swap writes keyed on a monotonic `strength_version` column
- Exponential backoff retry logic for network resilience
- Configurable timeout handling
"""

import asyncio
import logging
from typing import Any, Optional

import httpx

from memstrength.strength.types import StrengthRecord

logger = logging.getLogger(__name__)


class RemoteStoreError(Exception):
    """Raised when the remote store cannot be reached or rejects a request."""

    pass


class StrengthConflictError(RemoteStoreError):
    """Raised when a compare-and-swap write finds a different version."""

    def __init__(self, user_id: str, expected_version: Optional[int]):
        super().__init__(
            f"Strength for user {user_id} changed remotely "
            f"(expected version {expected_version})"
        )
        self.user_id = user_id
        self.expected_version = expected_version


class RemoteStrengthClient:
    """Async HTTP client for the remote strength record.

    Args:
        base_url: Server URL; requests go to {base_url}/rest/v1/{table}
        api_key: API key sent as `apikey` and bearer token (optional)
        table: Table holding `user_id`, `memory_strength`, `strength_version`
        timeout: Request timeout in seconds (default: 10)
        max_retries: Attempts for connection and request errors (default: 3)

    Example:
        >>> async with RemoteStrengthClient("https://db.example.com", api_key="...") as client:
        ...     record = await client.get_strength("user-1")
        ...     version = await client.set_strength("user-1", 42, record.version if record else None)
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        table: str = "profiles",
        timeout: float = 10.0,
        max_retries: int = 3,
        base_delay: float = 1.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.table = table
        self.timeout = timeout
        self.max_retries = max_retries
        self.base_delay = base_delay
        self._client: httpx.AsyncClient | None = None

    @property
    def endpoint(self) -> str:
        """Full URL of the strength table."""
        return f"{self.base_url}/rest/v1/{self.table}"

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout, headers=self._headers())
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "RemoteStrengthClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit - close client."""
        await self.close()

    async def _request_with_retry(
        self,
        method: str,
        params: dict[str, str],
        json: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> httpx.Response:
        """Send a request with exponential backoff on connection errors.

        HTTP 409 is returned to the caller untouched; other error statuses
        raise.

        Raises:
            RemoteStoreError: If the request fails after all retries
        """
        client = await self._get_client()
        last_error: Exception | None = None

        for attempt in range(self.max_retries):
            try:
                response = await client.request(
                    method,
                    self.endpoint,
                    params=params,
                    json=json,
                    headers=headers,
                )
                if response.status_code == 409:
                    return response
                response.raise_for_status()
                return response

            except httpx.TimeoutException as e:
                raise RemoteStoreError(
                    f"Remote store request timed out after {self.timeout}s"
                ) from e

            except httpx.HTTPStatusError as e:
                raise RemoteStoreError(
                    f"Remote store error: {e.response.status_code} - {e.response.text}"
                ) from e

            except httpx.RequestError as e:
                last_error = e
                if attempt < self.max_retries - 1:
                    delay = self.base_delay * (2**attempt)
                    logger.warning(
                        f"Remote store request error (attempt {attempt + 1}/{self.max_retries}), "
                        f"retrying in {delay}s: {e}"
                    )
                    await asyncio.sleep(delay)
                else:
                    raise RemoteStoreError(
                        f"Remote store unreachable after {self.max_retries} attempts: {e}"
                    ) from e

        raise RemoteStoreError(f"Unexpected error: {last_error}")

    @staticmethod
    def _parse_rows(response: httpx.Response) -> list[dict[str, Any]]:
        try:
            rows = response.json()
        except ValueError as e:
            raise RemoteStoreError(f"Invalid JSON from remote store: {e}") from e
        if not isinstance(rows, list):
            raise RemoteStoreError(f"Expected a list of rows, got {type(rows).__name__}")
        return rows

    @staticmethod
    def _row_to_record(row: dict[str, Any]) -> StrengthRecord:
        return StrengthRecord(
            strength=int(row.get("memory_strength") or 0),
            version=int(row.get("strength_version") or 0),
        )

    async def get_strength(self, user_id: str) -> Optional[StrengthRecord]:
        """Read the canonical strength record.

        Returns:
            StrengthRecord, or None if the user has no record yet

        Raises:
            RemoteStoreError: If the remote store is unavailable
        """
        response = await self._request_with_retry(
            "GET",
            params={
                "user_id": f"eq.{user_id}",
                "select": "memory_strength,strength_version",
            },
        )
        rows = self._parse_rows(response)
        if not rows:
            return None
        return self._row_to_record(rows[0])

    async def set_strength(
        self,
        user_id: str,
        value: int,
        expected_version: Optional[int],
    ) -> int:
        """Compare-and-swap write of the strength value.

        Args:
            user_id: Owner of the record
            value: New strength in [0, 100]
            expected_version: Version last read; None means the record must
                not exist yet and is inserted

        Returns:
            The new version

        Raises:
            StrengthConflictError: If the remote version differs
            RemoteStoreError: If the remote store is unavailable
        """
        new_version = (expected_version or 0) + 1
        body = {"memory_strength": value, "strength_version": new_version}
        prefer = {"Prefer": "return=representation"}

        if expected_version is None:
            response = await self._request_with_retry(
                "POST",
                params={},
                json={"user_id": user_id, **body},
                headers=prefer,
            )
            if response.status_code == 409:
                raise StrengthConflictError(user_id, expected_version)
        else:
            response = await self._request_with_retry(
                "PATCH",
                params={
                    "user_id": f"eq.{user_id}",
                    "strength_version": f"eq.{expected_version}",
                },
                json=body,
                headers=prefer,
            )
            if response.status_code == 409 or not self._parse_rows(response):
                raise StrengthConflictError(user_id, expected_version)

        logger.debug(f"Remote strength for {user_id} set to {value} (v{new_version})")
        return new_version
