"""Asset search: server query, client-side refinement, suggestions and adaptive debounce."""

from .cards import InvestmentCard, card_from_row, format_asset_type
from .debounce import AdaptiveDebouncer
from .filters import FilterPreferences, apply_filters, available_options
from .query import PAGE_SIZE, SearchPage, search_assets
from .session import AssetSearchSession
from .state import KeyValueStore, MemoryStore, PersistedState, ValkeyStore
from .suggestions import CachedAsset, SearchCache


__all__ = [
    "AdaptiveDebouncer",
    "AssetSearchSession",
    "CachedAsset",
    "FilterPreferences",
    "InvestmentCard",
    "KeyValueStore",
    "MemoryStore",
    "PAGE_SIZE",
    "PersistedState",
    "SearchCache",
    "SearchPage",
    "ValkeyStore",
    "apply_filters",
    "available_options",
    "card_from_row",
    "format_asset_type",
    "search_assets",
]
