from src.cache.ttl_cache import CacheSweeper, TTLCache

__all__ = ["TTLCache", "CacheSweeper"]
