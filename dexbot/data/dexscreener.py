"""DexScreener data source for token discovery and pair lookups."""

import asyncio
import json
import time
from collections.abc import Awaitable, Callable, Iterable
from datetime import UTC, datetime
from typing import Any

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..core.errors import InvalidQuery, NotFound, ProviderError
from ..core.interfaces import MarketDataSource
from ..core.types import SearchFilters, SearchResult, TokenSnapshot, TrendingMode

logger = structlog.get_logger(__name__)

DEFAULT_BASE_URL = "https://api.dexscreener.com/latest/dex"
DEFAULT_CHAINS = ("solana", "ethereum", "bsc")

MIN_QUERY_LENGTH = 2
SEARCH_LIMIT = 30
TRENDING_LIMIT = 50
NEW_PAIR_MAX_AGE_HOURS = 24.0

SEARCH_CACHE_TTL = 300
DETAIL_CACHE_TTL = 1800


class TTLCache:
    """In-memory cache with a time to live per entry.

    Entries are never evicted proactively. A lookup past the TTL is a miss and
    the next ``set`` for that key overwrites the stale entry. Values are returned as
    stored, so callers cache immutable ones.
    """

    def __init__(
        self, ttl: float = SEARCH_CACHE_TTL, now_fn: Callable[[], float] | None = None
    ) -> None:
        """Initialize cache.

        Args:
            ttl: Default time to live in seconds
            now_fn: Optional clock function (for testing)
        """
        self.ttl = ttl
        self._now_fn = now_fn or time.monotonic
        self.cache: dict[str, tuple[Any, float, float]] = {}

    def get(self, key: str) -> Any | None:
        """Get item from cache, or None when missing or expired."""
        entry = self.cache.get(key)
        if entry is None:
            return None

        value, stored_at, ttl = entry
        if self._now_fn() - stored_at >= ttl:
            return None

        return value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Set item in cache."""
        self.cache[key] = (value, self._now_fn(), self.ttl if ttl is None else ttl)

    def clear(self) -> None:
        """Drop every entry."""
        self.cache.clear()

    def __len__(self) -> int:
        return len(self.cache)


class RequestSpacer:
    """Sequential rate limiter with a fixed minimum gap between requests.

    There is no burst allowance: every caller waits on the same lock, so
    concurrent callers are dispatched one after another.
    """

    def __init__(
        self,
        min_interval: float = 1.0,
        now_fn: Callable[[], float] | None = None,
        sleep_fn: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        """Initialize request spacer.

        Args:
            min_interval: Minimum seconds between two dispatched requests
            now_fn: Optional clock function (for testing)
            sleep_fn: Optional async sleep function (for testing)
        """
        self.min_interval = min_interval
        self._now_fn = now_fn or time.monotonic
        self._sleep_fn = sleep_fn or asyncio.sleep
        self._lock = asyncio.Lock()
        self.last_request_time: float | None = None

    async def acquire(self) -> None:
        """Suspend until the spacing since the last request has elapsed."""
        async with self._lock:
            if self.last_request_time is not None:
                elapsed = self._now_fn() - self.last_request_time
                if elapsed < self.min_interval:
                    await self._sleep_fn(self.min_interval - elapsed)

            self.last_request_time = self._now_fn()


def _to_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _to_int(value: Any) -> int:
    return int(_to_float(value))


def map_dexscreener_pair_to_snapshot(
    pair: dict[str, Any] | None, now: datetime | None = None
) -> TokenSnapshot | None:
    """Map a DexScreener pair object to TokenSnapshot.

    Args:
        pair: Raw pair object from the API
        now: Reference time used to compute the pair age

    Returns:
        TokenSnapshot, or None if the pair has no base token or price
    """
    if not pair or not pair.get("baseToken") or not pair.get("priceUsd"):
        return None

    now = now or datetime.now(UTC)
    base = pair["baseToken"]
    symbol = base.get("symbol") or "UNKNOWN"

    price_change = pair.get("priceChange") or {}
    volume = pair.get("volume") or {}
    liquidity = pair.get("liquidity") or {}

    # txns.h24 is {"buys": n, "sells": n}
    txns_24h = (pair.get("txns") or {}).get("h24") or {}
    if isinstance(txns_24h, dict):
        transactions_24h = _to_int(txns_24h.get("buys")) + _to_int(
            txns_24h.get("sells")
        )
    else:
        transactions_24h = _to_int(txns_24h)

    age_hours = 0.0
    created_ms = pair.get("pairCreatedAt")
    if created_ms:
        try:
            created = datetime.fromtimestamp(_to_float(created_ms) / 1000, tz=UTC)
            age_hours = max(0.0, (now - created).total_seconds() / 3600)
        except (OverflowError, OSError, ValueError):
            age_hours = 0.0

    return TokenSnapshot(
        symbol=symbol,
        name=base.get("name") or symbol,
        price_usd=_to_float(pair.get("priceUsd")),
        price_change_24h=_to_float(price_change.get("h24")),
        price_change_6h=_to_float(price_change.get("h6")),
        price_change_1h=_to_float(price_change.get("h1")),
        volume_24h=_to_float(volume.get("h24")),
        volume_1h=_to_float(volume.get("h1")),
        volume_5m=_to_float(volume.get("m5")),
        market_cap=_to_float(pair.get("marketCap") or pair.get("fdv")),
        liquidity_usd=_to_float(liquidity.get("usd")),
        age_hours=age_hours,
        holders=_to_int(pair.get("holders")),
        transactions_24h=transactions_24h,
        pair_address=pair.get("pairAddress") or "",
        chain_id=pair.get("chainId") or "solana",
        dex_id=pair.get("dexId") or "unknown",
        token_address=base.get("address"),
        ts=now,
    )


def rank_trending(
    tokens: list[TokenSnapshot], mode: TrendingMode | None = None
) -> list[TokenSnapshot]:
    """Apply a trending mode and order the tokens.

    Gainers and losers are ordered by 24h price change, everything else by
    24h volume, highest first.
    """
    if mode is TrendingMode.GAINERS:
        ranked = [t for t in tokens if t.price_change_24h > 0]
        return sorted(ranked, key=lambda t: t.price_change_24h, reverse=True)
    if mode is TrendingMode.LOSERS:
        ranked = [t for t in tokens if t.price_change_24h < 0]
        return sorted(ranked, key=lambda t: t.price_change_24h)
    if mode is TrendingMode.NEW:
        tokens = [t for t in tokens if t.age_hours < NEW_PAIR_MAX_AGE_HOURS]
    return sorted(tokens, key=lambda t: t.volume_24h, reverse=True)


def _filters_key(filters: SearchFilters) -> str:
    return json.dumps(
        filters.model_dump(mode="json", exclude_none=True), sort_keys=True
    )


class DexScreenerClient(MarketDataSource):
    """Rate-limited, cached client over the DexScreener API."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        session: httpx.AsyncClient | None = None,
        min_request_interval: float = 1.0,
        cache_ttl: float = SEARCH_CACHE_TTL,
        detail_cache_ttl: float = DETAIL_CACHE_TTL,
        chains: Iterable[str] = DEFAULT_CHAINS,
        timeout: float = 30.0,
        now_fn: Callable[[], float] | None = None,
    ) -> None:
        """Initialize DexScreener client.

        Args:
            base_url: DexScreener API base URL
            session: Optional httpx client session
            min_request_interval: Minimum seconds between outbound requests
            cache_ttl: Cache TTL in seconds for search and trending results
            detail_cache_ttl: Cache TTL in seconds for pair detail lookups
            chains: Chains queried by trending() when no chain filter is set
            timeout: Request timeout in seconds
            now_fn: Optional clock function for the cache (for testing)
        """
        self.base_url = base_url.rstrip("/")
        self.session = session or httpx.AsyncClient(timeout=timeout)
        self.timeout = timeout
        self.chains = tuple(chains)
        self.detail_cache_ttl = detail_cache_ttl

        self.cache = TTLCache(ttl=cache_ttl, now_fn=now_fn)
        self.rate_limiter = RequestSpacer(min_interval=min_request_interval)

        # Only transport failures are retried; HTTP status errors are final
        self.retry_config = AsyncRetrying(
            stop=stop_after_attempt(3),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception_type((httpx.NetworkError, httpx.TimeoutException)),
            reraise=True,
        )

        logger.info(
            "DexScreener client initialized",
            base_url=self.base_url,
            min_request_interval=min_request_interval,
            chains=self.chains,
        )

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP session."""
        await self.session.aclose()

    async def _make_request(
        self, endpoint: str, params: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Make HTTP request with rate limiting and retries.

        Args:
            endpoint: API endpoint path
            params: Query parameters

        Returns:
            API response data

        Raises:
            NotFound: On 404 responses
            ProviderError: On any other non-2xx response or invalid JSON
            httpx.HTTPError: When network retries are exhausted
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}"

        async for attempt in self.retry_config.copy():
            with attempt:
                await self.rate_limiter.acquire()
                try:
                    response = await self.session.get(
                        url, params=params, timeout=self.timeout
                    )
                except (httpx.NetworkError, httpx.TimeoutException) as e:
                    logger.warning(
                        "Network error in DexScreener request",
                        endpoint=endpoint,
                        error=str(e),
                        attempt=attempt.retry_state.attempt_number,
                    )
                    raise

                if response.status_code == 404:
                    raise NotFound(endpoint)

                if not response.is_success:
                    logger.warning(
                        "HTTP error in DexScreener request",
                        endpoint=endpoint,
                        status_code=response.status_code,
                    )
                    raise ProviderError(response.status_code, response.reason_phrase)

                try:
                    data = response.json()
                except ValueError as e:
                    raise ProviderError(response.status_code, "invalid JSON") from e

                return data if isinstance(data, dict) else {}

    @staticmethod
    def _map_pairs(pairs: list[dict[str, Any]]) -> list[TokenSnapshot]:
        now = datetime.now(UTC)
        snapshots = []
        for pair in pairs:
            snapshot = map_dexscreener_pair_to_snapshot(pair, now=now)
            if snapshot is not None:
                snapshots.append(snapshot)
        return snapshots

    async def search(
        self, query: str, filters: SearchFilters | None = None
    ) -> SearchResult:
        """Search tokens by free text.

        Filters are applied client-side after the provider responds.

        Args:
            query: Search text, at least two characters
            filters: Optional client-side filters

        Returns:
            Search result with at most 30 tokens

        Raises:
            InvalidQuery: If the query is too short (no request is made)
            ProviderError: On provider failure
        """
        normalized = (query or "").strip()
        if len(normalized) < MIN_QUERY_LENGTH:
            raise InvalidQuery(
                f"Search query must be at least {MIN_QUERY_LENGTH} characters"
            )

        filters = filters or SearchFilters()
        cache_key = f"search:{normalized.lower()}:{_filters_key(filters)}"
        cached_result = self.cache.get(cache_key)
        if cached_result is not None:
            logger.debug("Cache hit for search", query=normalized)
            return cached_result

        data = await self._make_request("search", params={"q": normalized})

        tokens = [t for t in self._map_pairs(data.get("pairs") or []) if filters.matches(t)]
        tokens = tokens[:SEARCH_LIMIT]

        result = SearchResult(
            tokens=tokens,
            total_count=len(tokens),
            has_more=len(tokens) >= SEARCH_LIMIT,
        )
        self.cache.set(cache_key, result)

        logger.info("Searched tokens", query=normalized, count=len(tokens))
        return result

    async def trending(
        self, filters: SearchFilters | None = None
    ) -> list[TokenSnapshot]:
        """Fetch trending tokens across chains.

        One request is issued per chain (only the filtered chain when
        ``filters.chain_id`` is set). Results are merged, filtered, ranked and
        truncated to the top 50.

        Raises:
            ProviderError: On provider failure for any chain
        """
        filters = filters or SearchFilters()
        chains = (filters.chain_id,) if filters.chain_id else self.chains

        cache_key = f"trending:{','.join(chains)}:{_filters_key(filters)}"
        cached_result = self.cache.get(cache_key)
        if cached_result is not None:
            logger.debug("Cache hit for trending", chains=chains)
            return list(cached_result)

        merged: dict[tuple[str, str], TokenSnapshot] = {}
        for chain in chains:
            data = await self._make_request("search", params={"q": chain})
            for snapshot in self._map_pairs(data.get("pairs") or []):
                if snapshot.chain_id == chain:
                    merged[(snapshot.chain_id, snapshot.pair_address)] = snapshot

        tokens = [t for t in merged.values() if filters.matches(t)]
        tokens = rank_trending(tokens, filters.trending)[:TRENDING_LIMIT]

        self.cache.set(cache_key, tuple(tokens))

        logger.info("Fetched trending tokens", chains=chains, count=len(tokens))
        return tokens

    async def detail(
        self, pair_address: str, chain_id: str = "solana"
    ) -> TokenSnapshot | None:
        """Look up a single pair.

        Args:
            pair_address: Pair address
            chain_id: Chain identifier

        Returns:
            Token snapshot or None if not found or the provider failed
        """
        cache_key = f"detail:{chain_id.lower()}:{pair_address}"
        cached_result = self.cache.get(cache_key)
        if cached_result is not None:
            logger.debug("Cache hit for pair", pair_address=pair_address)
            return cached_result

        try:
            data = await self._make_request(f"pairs/{chain_id}/{pair_address}")
        except NotFound:
            logger.info("Pair not found", pair_address=pair_address, chain_id=chain_id)
            return None
        except (ProviderError, httpx.HTTPError) as e:
            logger.error(
                "Failed to look up pair", pair_address=pair_address, error=str(e)
            )
            return None

        pair = data.get("pair") or next(iter(data.get("pairs") or []), None)
        snapshot = map_dexscreener_pair_to_snapshot(pair)
        if snapshot is None:
            logger.info("Pair not found", pair_address=pair_address, chain_id=chain_id)
            return None

        self.cache.set(cache_key, snapshot, ttl=self.detail_cache_ttl)

        logger.info("Looked up pair", pair_address=pair_address, chain_id=chain_id)
        return snapshot

    async def token_by_symbol(
        self, symbol: str, chain_id: str | None = None
    ) -> TokenSnapshot | None:
        """Look up the most liquid pair whose base token has this symbol.

        Args:
            symbol: Token symbol (case-insensitive)
            chain_id: Optional chain restriction

        Returns:
            Token snapshot or None if not found or the provider failed
        """
        normalized = (symbol or "").strip().upper()
        if not normalized:
            return None

        cache_key = f"symbol:{normalized}:{chain_id or '*'}"
        cached_result = self.cache.get(cache_key)
        if cached_result is not None:
            logger.debug("Cache hit for symbol", symbol=normalized)
            return cached_result

        try:
            data = await self._make_request("search", params={"q": normalized})
        except (ProviderError, httpx.HTTPError) as e:
            logger.error("Failed to look up symbol", symbol=normalized, error=str(e))
            return None

        matches = [
            t
            for t in self._map_pairs(data.get("pairs") or [])
            if t.symbol.upper() == normalized
            and (chain_id is None or t.chain_id == chain_id)
        ]
        if not matches:
            logger.info("Symbol not found", symbol=normalized, chain_id=chain_id)
            return None

        snapshot = max(matches, key=lambda t: t.liquidity_usd)
        self.cache.set(cache_key, snapshot)

        logger.info(
            "Looked up symbol", symbol=normalized, pair_address=snapshot.pair_address
        )
        return snapshot

    def clear_cache(self) -> None:
        """Clear all cached responses."""
        self.cache.clear()

    def cache_stats(self) -> dict[str, Any]:
        """Return cache size and keys."""
        return {"size": len(self.cache), "keys": list(self.cache.cache)}
