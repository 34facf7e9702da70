from .archive import pack_dir, unpack_into
from .models import CacheEntry
from .stage import CacheRestoreStage
from .store import CacheStore, FsCacheStore

__all__ = [
    "CacheEntry",
    "CacheRestoreStage",
    "CacheStore",
    "FsCacheStore",
    "pack_dir",
    "unpack_into",
]
