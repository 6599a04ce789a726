"""ローカルキャッシュ."""

from .ttl_cache import CacheEntry, ConversationCache, TTLCache

__all__ = ["CacheEntry", "TTLCache", "ConversationCache"]
