"""Steam storefront catalog provider.

Fetches game details from the public storefront endpoints:

    GET {base}/api/appdetails?appids=<id>       -> {"<id>": {"success": bool, "data": {...}}}
    GET {base}/api/storesearch/?term=<title>    -> {"items": [{"id": int, "name": str}, ...]}

Every outbound request first takes a slot from the shared
:class:`RateLimiter`, so all processes together stay under the store's
request budget.  429 and 5xx responses are retried with exponential
backoff; ``success: false`` and non-game app types (DLC, demos,
soundtracks) are reported as :class:`NotFoundError`.

Follows the adapter pattern of the other HTTP providers: injected
``httpx.AsyncClient``, structured logging, typed Pydantic output.
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx

from src.coordination.rate_limiter import RateLimiter
from src.interfaces.cache_provider import ICacheProvider
from src.interfaces.catalog_provider import ICatalogProvider
from src.models.catalog import CatalogEntry
from src.utils.errors import NotFoundError, RateLimitError, TransientExternalError
from src.utils.logging import get_logger
from src.utils.text_normalizer import normalize_title, strip_html

_PROVIDER_NAME = "steam"
_USER_AGENT = "vibefinder/0.1 (+catalog ingestion)"
_ACCEPTED_TYPES = frozenset({"game"})


class SteamStoreProvider(ICatalogProvider):
    """Catalog adapter for the Steam storefront API.

    Parameters
    ----------
    http_client:
        Injected ``httpx.AsyncClient`` for testability and connection pooling.
    rate_limiter:
        Shared cross-process limiter; every request acquires ``rate_limit_key``.
    search_cache:
        Caches title -> id search results (including "no match").
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        rate_limiter: RateLimiter,
        search_cache: ICacheProvider | None = None,
        *,
        base_url: str = "https://store.steampowered.com",
        country: str = "US",
        rate_limit_key: str = "catalog_api",
        min_delay_ms: int = 2000,
        max_attempts: int = 5,
        initial_backoff_ms: int = 3000,
        max_backoff_ms: int = 30000,
    ) -> None:
        self._http = http_client
        self._rate_limiter = rate_limiter
        self._search_cache = search_cache
        self._base_url = base_url.rstrip("/")
        self._country = country
        self._rate_limit_key = rate_limit_key
        self._min_delay_ms = min_delay_ms
        self._max_attempts = max_attempts
        self._initial_backoff = initial_backoff_ms / 1000.0
        self._max_backoff = max_backoff_ms / 1000.0
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # HTTP with shared rate limit + retry
    # ------------------------------------------------------------------

    async def _get_json(self, path: str, params: dict[str, Any]) -> Any:
        """GET ``path`` and decode JSON, retrying 429/5xx/network errors."""
        url = f"{self._base_url}{path}"
        backoff = self._initial_backoff
        last_error: TransientExternalError | None = None

        for attempt in range(1, self._max_attempts + 1):
            await self._rate_limiter.acquire(self._rate_limit_key, self._min_delay_ms)
            try:
                response = await self._http.get(
                    url,
                    params=params,
                    headers={"User-Agent": _USER_AGENT, "Accept": "application/json"},
                    timeout=30.0,
                )
            except httpx.HTTPError as exc:
                last_error = TransientExternalError(
                    message=f"request to {path} failed: {exc}",
                    provider_name=_PROVIDER_NAME,
                )
                self._logger.warning("steam_request_failed", path=path, attempt=attempt, error=str(exc))
            else:
                if response.status_code == 200:
                    try:
                        return response.json()
                    except ValueError as exc:
                        raise TransientExternalError(
                            message=f"invalid JSON from {path}",
                            provider_name=_PROVIDER_NAME,
                        ) from exc
                if response.status_code == 404:
                    raise NotFoundError(
                        message=f"{path} returned 404",
                        provider_name=_PROVIDER_NAME,
                    )
                if response.status_code == 429:
                    last_error = RateLimitError(
                        message=f"{path} rate limited",
                        provider_name=_PROVIDER_NAME,
                    )
                    self._logger.warning("steam_rate_limited", path=path, attempt=attempt)
                elif response.status_code >= 500:
                    last_error = TransientExternalError(
                        message=f"{path} returned {response.status_code}",
                        provider_name=_PROVIDER_NAME,
                    )
                    self._logger.warning(
                        "steam_server_error",
                        path=path,
                        status=response.status_code,
                        attempt=attempt,
                    )
                else:
                    raise TransientExternalError(
                        message=f"{path} returned unexpected status {response.status_code}",
                        provider_name=_PROVIDER_NAME,
                    )

            if attempt < self._max_attempts:
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, self._max_backoff)

        assert last_error is not None
        raise last_error

    # ------------------------------------------------------------------
    # ICatalogProvider implementation
    # ------------------------------------------------------------------

    async def fetch_entry(self, external_id: int) -> CatalogEntry:
        payload = await self._get_json(
            "/api/appdetails",
            {"appids": str(external_id), "cc": self._country, "l": "en"},
        )
        envelope = (payload or {}).get(str(external_id)) or {}
        if not envelope.get("success") or not envelope.get("data"):
            raise NotFoundError(
                message=f"App {external_id} not found or unavailable",
                provider_name=_PROVIDER_NAME,
                external_id=external_id,
            )

        data: dict[str, Any] = envelope["data"]
        app_type = data.get("type", "game")
        if app_type not in _ACCEPTED_TYPES:
            raise NotFoundError(
                message=f"App {external_id} is a {app_type}, not a game",
                provider_name=_PROVIDER_NAME,
                external_id=external_id,
            )

        entry = self._to_entry(external_id, data)
        self._logger.info("steam_entry_fetched", external_id=external_id, title=entry.title)
        return entry

    async def search_by_title(self, title: str) -> int | None:
        cache_key = f"steam_search:{normalize_title(title)}"
        if self._search_cache is not None:
            cached = await self._search_cache.get(cache_key)
            if cached is not None:
                return cached.get("id")

        payload = await self._get_json(
            "/api/storesearch/",
            {"term": title, "cc": self._country, "l": "en"},
        )
        items = [item for item in (payload or {}).get("items", []) if item.get("id")]
        match_id: int | None = None
        if items:
            # Prefer an exact title match; otherwise trust the store's ranking.
            wanted = normalize_title(title)
            exact = [item for item in items if normalize_title(item.get("name", "")) == wanted]
            match_id = int((exact or items)[0]["id"])

        if self._search_cache is not None:
            await self._search_cache.set(cache_key, {"id": match_id})
        self._logger.info("steam_title_search", title=title, external_id=match_id)
        return match_id

    def get_provider_name(self) -> str:
        return _PROVIDER_NAME

    # ------------------------------------------------------------------
    # Mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _to_entry(external_id: int, data: dict[str, Any]) -> CatalogEntry:
        screenshots = [
            shot.get("path_full") or shot.get("path_thumbnail")
            for shot in data.get("screenshots") or []
        ]
        tags = [g.get("description", "") for g in data.get("genres") or []]
        tags += [c.get("description", "") for c in data.get("categories") or []]
        return CatalogEntry(
            external_id=external_id,
            title=data.get("name") or "",
            short_description=strip_html(data.get("short_description")),
            long_description=strip_html(data.get("detailed_description")),
            header_image=data.get("header_image"),
            screenshots=[s for s in screenshots if s],
            developers=list(data.get("developers") or []),
            entry_type=data.get("type", "game"),
            tags=[t for t in dict.fromkeys(tags) if t],
        )
