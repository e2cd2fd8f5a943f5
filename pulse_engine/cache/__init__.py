from .snapshot_cache import CacheEntry, CacheState, Snapshot

__all__ = ["CacheEntry", "CacheState", "Snapshot"]
