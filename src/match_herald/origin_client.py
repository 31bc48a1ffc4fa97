"""
Match data provider client for Match Herald.

This module wraps the HenrikDev VALORANT API. It separates "not found"
answers, which are an expected outcome for unknown players, from transient
failures that the poller retries on its next cycle.
"""

import re
from typing import Any
from urllib.parse import quote

import httpx
import structlog

from .config import OriginConfig
from .exceptions import (
    ConfigurationError,
    NotFoundError,
    OriginAPIError,
    OriginAuthenticationError,
    OriginRateLimitError,
    TransientOriginError,
)

logger = structlog.get_logger(__name__)

_AUTH_PREFIX = re.compile(r"^authorization\s*:\s*", re.IGNORECASE)
_BEARER_PREFIX = re.compile(r"^bearer\s+", re.IGNORECASE)


def sanitize_api_key(raw: str | None) -> str | None:
    """
    Normalize an API key pasted in one of the common header formats.

    Accepts the bare key, ``Bearer <key>``, ``Authorization: Bearer <key>``
    and an accidentally doubled ``Bearer Bearer <key>``.

    Returns:
        The bare key, or None when nothing usable is left
    """
    if not raw:
        return None
    cleaned = str(raw).strip()
    cleaned = _AUTH_PREFIX.sub("", cleaned).strip()
    cleaned = _BEARER_PREFIX.sub("", cleaned).strip()
    cleaned = _BEARER_PREFIX.sub("", cleaned).strip()
    return cleaned or None


def _segment(value: str) -> str:
    return quote(str(value), safe="")


class OriginClient:
    """
    Async client for the match data provider.

    Records are returned most recent first, and ``metadata.matchid`` stably
    identifies a match.
    """

    def __init__(
        self,
        config: OriginConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the provider client.

        Args:
            config: Provider configuration
            transport: Optional httpx transport (used by tests)
        """
        self.config = config
        self._api_key = sanitize_api_key(config.api_key)
        self._client = httpx.AsyncClient(
            base_url=config.api_url.rstrip("/"),
            timeout=config.timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> "OriginClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    def _auth_headers(self) -> dict[str, str]:
        if not self._api_key:
            raise ConfigurationError(
                "Missing HENRIK_API_KEY. Set it in the environment or .env file."
            )
        return {"Authorization": f"Bearer {self._api_key}"}

    async def _get_json(
        self, path: str, params: dict[str, Any] | None = None
    ) -> Any:
        """Perform a GET request and map failures onto the error taxonomy."""
        headers = self._auth_headers()
        try:
            response = await self._client.get(path, params=params, headers=headers)
        except httpx.TimeoutException as e:
            raise TransientOriginError(
                f"Timed out contacting match provider: {e}", context={"path": path}
            ) from e
        except httpx.HTTPError as e:
            raise TransientOriginError(
                f"Network error contacting match provider: {e}",
                context={"path": path},
            ) from e

        if response.status_code == 401:
            # The provider also accepts the key as a query parameter
            response = await self._retry_with_query_key(path, params, response)

        if response.is_success:
            return response.json()

        status = response.status_code
        if status == 404:
            raise NotFoundError("Not found", context={"path": path})
        if status == 429:
            raise OriginRateLimitError(
                "Match provider rate limit exceeded",
                retry_after=_parse_retry_after(response),
                context={"path": path},
            )
        if status == 401:
            raise OriginAuthenticationError(
                "Match provider returned 401 (Unauthorized). "
                "HENRIK_API_KEY is missing, invalid, or not a VALORANT key.",
                context={"path": path},
            )
        if status >= 500:
            raise TransientOriginError(
                f"Match provider error: {status}",
                status_code=status,
                context={"path": path},
            )
        raise OriginAPIError(
            f"Match provider error: {status}",
            status_code=status,
            context={"path": path},
        )

    async def _retry_with_query_key(
        self,
        path: str,
        params: dict[str, Any] | None,
        original: httpx.Response,
    ) -> httpx.Response:
        retry_params = dict(params or {})
        retry_params["api_key"] = self._api_key
        try:
            return await self._client.get(path, params=retry_params)
        except httpx.HTTPError as e:
            logger.debug("Query key retry failed", path=path, error=str(e))
            return original

    async def get_account(self, name: str, tag: str) -> dict[str, Any]:
        """
        Look up a player account.

        Returns:
            Account data with ``puuid``, ``region`` and ``account_level``
        """
        data = await self._get_json(
            f"/valorant/v1/account/{_segment(name)}/{_segment(tag)}"
        )
        return data.get("data") or {}

    async def get_standing(self, region: str, name: str, tag: str) -> dict[str, Any]:
        """Get current rank standing (MMR) for a player."""
        data = await self._get_json(
            f"/valorant/v2/mmr/{_segment(region)}/{_segment(name)}/{_segment(tag)}"
        )
        return data.get("data") or {}

    async def get_recent_matches(
        self,
        region: str,
        name: str,
        tag: str,
        size: int = 5,
        mode: str | None = "competitive",
    ) -> list[dict[str, Any]]:
        """
        Get recent matches for a player, most recent first.

        When ``mode`` is set, extra matches are requested and filtered
        client-side in case the provider ignores the filter.
        """
        request_size = min(size * 3, 20) if mode else size
        params: dict[str, Any] = {"size": request_size, "start": 0}
        if mode:
            params["filter"] = mode

        logger.debug(
            "Fetching match history",
            region=region,
            player=f"{name}#{tag}",
            mode=mode,
            request_size=request_size,
        )

        data = await self._get_json(
            f"/valorant/v3/matches/{_segment(region)}/{_segment(name)}/{_segment(tag)}",
            params=params,
        )
        matches = data.get("data") or []
        if not isinstance(matches, list):
            return []

        if mode:
            wanted = mode.lower()
            filtered = [
                m
                for m in matches
                if str((m.get("metadata") or {}).get("mode") or "").lower() == wanted
            ]
            return filtered[:size]

        return matches

    async def get_match(self, region: str, match_id: str) -> dict[str, Any]:
        """Get a single match by id."""
        data = await self._get_json(
            f"/valorant/v4/match/{_segment(region)}/{_segment(match_id)}"
        )
        return data.get("data") or {}

    async def get_standing_history(
        self, region: str, name: str, tag: str
    ) -> list[dict[str, Any]]:
        """
        Get rank standing changes per match, most recent first.

        Returns:
            Entries with ``match_id`` and ``mmr_change_to_last_game``; empty
            when the player has no ranked history
        """
        try:
            data = await self._get_json(
                f"/valorant/v1/mmr-history/{_segment(region)}/"
                f"{_segment(name)}/{_segment(tag)}"
            )
        except NotFoundError:
            return []
        history = data.get("data") or []
        return history if isinstance(history, list) else []


def _parse_retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("retry-after")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None
