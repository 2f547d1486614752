"""
Instant search suggestions from a local cache of previously seen assets.

The cache is seeded with popular Brazilian assets, grows with server results,
and keeps the 100 most-searched entries. A memo keyed by the normalized query
returns the last server results for that exact query without scoring; it
holds at most ``max_memo_queries`` recent queries, each valid for ``memo_ttl``
seconds, and the stored key itself expires after ``memo_ttl``.
"""

from __future__ import annotations

import re
import time
import unicodedata
from typing import Callable, Iterable, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from investrisk.core.logging import get_logger

from .state import KeyValueStore, MemoryStore, PersistedState


logger = get_logger("search.suggestions")

CACHE_KEY = "investia_searchCache"
QUERIES_KEY = "investia_lastSearchQueries"
MAX_CACHE_SIZE = 100
MAX_RESULTS_PER_QUERY = 10
MIN_QUERY_LENGTH = 2
MAX_MEMO_QUERIES = 50
MEMO_TTL_SECONDS = 60 * 30

_COMBINING_MARKS = re.compile("[\u0300-\u036f]")


class CachedAsset(BaseModel):
    """A suggestion entry; persisted with camelCase keys."""

    model_config = ConfigDict(populate_by_name=True)

    ticker: str
    name: str
    type: str
    emissor: Optional[str] = None
    last_searched: Optional[int] = Field(default=None, alias="lastSearched")
    search_count: Optional[int] = Field(default=None, alias="searchCount")


class QueryMemo(BaseModel):
    """Server results last seen for one normalized query."""

    model_config = ConfigDict(populate_by_name=True)

    results: list[CachedAsset]
    cached_at: int = Field(alias="cachedAt")


def _popular(ticker: str, name: str, type_: str, emissor: str) -> CachedAsset:
    return CachedAsset(ticker=ticker, name=name, type=type_, emissor=emissor)


POPULAR_ASSETS: tuple[CachedAsset, ...] = (
    # Most traded stocks
    _popular("PETR4", "Petrobras PN", "stock", "Petrobras"),
    _popular("VALE3", "Vale ON", "stock", "Vale"),
    _popular("ITUB4", "Itaú Unibanco PN", "stock", "Itaú Unibanco"),
    _popular("BBDC4", "Bradesco PN", "stock", "Bradesco"),
    _popular("ABEV3", "Ambev ON", "stock", "Ambev"),
    _popular("WEGE3", "WEG ON", "stock", "WEG"),
    _popular("BBAS3", "Banco do Brasil ON", "stock", "Banco do Brasil"),
    _popular("RENT3", "Localiza ON", "stock", "Localiza"),
    # Real estate funds
    _popular("MXRF11", "Maxi Renda FII", "fii", "XP Asset"),
    _popular("XPML11", "XP Malls FII", "fii", "XP Asset"),
    _popular("HGLG11", "CSHG Logística FII", "fii", "Credit Suisse"),
    _popular("KNRI11", "Kinea Renda Imobiliária", "fii", "Kinea"),
    _popular("VISC11", "Vinci Shopping Centers", "fii", "Vinci Partners"),
    # Units
    _popular("TAEE11", "Taesa Unit", "unit", "Taesa"),
    _popular("SAPR11", "Sanepar Unit", "unit", "Sanepar"),
    # ETFs
    _popular("BOVA11", "iShares Ibovespa", "etf", "BlackRock"),
    _popular("IVVB11", "iShares S&P 500", "etf", "BlackRock"),
    # Treasury bonds
    _popular("TESOURO SELIC", "Tesouro Selic 2029", "titulo_publico", "Tesouro Nacional"),
    _popular("TESOURO IPCA+", "Tesouro IPCA+ 2035", "titulo_publico", "Tesouro Nacional"),
)


def normalize_text(value: str) -> str:
    """Lowercase and strip diacritics (NFD + combining-mark removal)."""
    return _COMBINING_MARKS.sub("", unicodedata.normalize("NFD", value.lower()))


def match_score(asset: CachedAsset, query: str) -> int:
    """
    Relevance of an entry for an already-normalized query (0 = no match).

    Tickers are only lowercased; names and issuers are also diacritic-stripped.
    """
    ticker = asset.ticker.lower()
    name = normalize_text(asset.name)
    emissor = normalize_text(asset.emissor) if asset.emissor else ""

    if ticker.startswith(query):
        return 100
    if name.startswith(query):
        return 85
    if emissor.startswith(query):
        return 75
    if query in ticker:
        return 60
    if query in name:
        return 40
    if query in emissor:
        return 30
    return 0


def _default_assets() -> list[CachedAsset]:
    return [asset.model_copy() for asset in POPULAR_ASSETS]


def _now_ms() -> int:
    return int(time.time() * 1000)


class SearchCache:
    """
    Suggestion cache over a key-value store.

    Usage:
        cache = SearchCache(ValkeyStore())
        cache.get_instant_suggestions("petr")
        cache.update_cache("petr", [{"code": "PETR4", "emissor": "Petrobras", "asset_type": "stock"}])
    """

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        clock: Callable[[], int] = _now_ms,
        *,
        max_memo_queries: int = MAX_MEMO_QUERIES,
        memo_ttl: int = MEMO_TTL_SECONDS,
    ):
        store = store or MemoryStore()
        self._clock = clock
        self.max_memo_queries = max_memo_queries
        self.memo_ttl = memo_ttl
        self._assets: PersistedState[list[CachedAsset]] = PersistedState(
            store, CACHE_KEY, list[CachedAsset], _default_assets
        )
        self._queries: PersistedState[dict[str, QueryMemo]] = PersistedState(
            store, QUERIES_KEY, dict[str, QueryMemo], dict, ttl=memo_ttl
        )
        if not self._assets.load():
            self._assets.save(_default_assets())

    @property
    def cached_assets(self) -> list[CachedAsset]:
        return self._assets.load()

    @property
    def popular_assets(self) -> tuple[CachedAsset, ...]:
        return POPULAR_ASSETS

    def _is_fresh(self, memo: QueryMemo, now: int) -> bool:
        return now - memo.cached_at < self.memo_ttl * 1000

    def get_instant_suggestions(self, query: str, limit: int = 5) -> list[CachedAsset]:
        if not query or len(query) < MIN_QUERY_LENGTH:
            return []

        normalized = normalize_text(query)
        memo = self._queries.load().get(normalized)
        if memo is not None and self._is_fresh(memo, self._clock()):
            return memo.results[:limit]

        scored = [
            (match_score(asset, normalized), asset)
            for asset in self._assets.load()
        ]
        scored = [item for item in scored if item[0] > 0]
        scored.sort(key=lambda item: (item[0], item[1].search_count or 0), reverse=True)
        return [asset for _, asset in scored[:limit]]

    def _remember(self, normalized: str, results: list[CachedAsset], now: int) -> None:
        """Store a query's results, dropping expired entries and the oldest beyond the bound."""
        queries = {
            key: memo
            for key, memo in self._queries.load().items()
            if key != normalized and self._is_fresh(memo, now)
        }
        queries[normalized] = QueryMemo(results=results, cached_at=now)
        newest = sorted(queries.items(), key=lambda item: item[1].cached_at, reverse=True)
        self._queries.save(dict(newest[: self.max_memo_queries]))

    def update_cache(self, query: str, results: Iterable[Mapping[str, str]]) -> None:
        """
        Record server results for a query.

        Each result carries ``code``, ``emissor`` and ``asset_type``. Only the
        first ten are kept; known tickers get their search count bumped.
        """
        results = list(results)
        if not query or len(query) < MIN_QUERY_LENGTH or not results:
            return

        normalized = normalize_text(query)
        now = self._clock()
        fresh = [
            CachedAsset(
                ticker=r["code"],
                name=r["emissor"],
                type=r["asset_type"],
                emissor=r["emissor"],
                last_searched=now,
                search_count=1,
            )
            for r in results[:MAX_RESULTS_PER_QUERY]
        ]
        self._remember(normalized, fresh, now)

        by_ticker = {asset.ticker: asset for asset in self._assets.load()}
        for asset in fresh:
            existing = by_ticker.get(asset.ticker)
            if existing is not None:
                by_ticker[asset.ticker] = existing.model_copy(
                    update={
                        "last_searched": now,
                        "search_count": (existing.search_count or 0) + 1,
                    }
                )
            else:
                by_ticker[asset.ticker] = asset

        merged = sorted(by_ticker.values(), key=lambda a: a.search_count or 0, reverse=True)
        self._assets.save(merged[:MAX_CACHE_SIZE])
        logger.debug(f"Cached {len(fresh)} results for '{normalized}'")

    def clear_cache(self) -> None:
        self._assets.save(_default_assets())
        self._queries.save({})
