"""Protocol interfaces for pluggable backends."""

from embedkv.protocols.cache import Cache
from embedkv.protocols.kv_store import KVStore

__all__ = [
    "Cache",
    "KVStore",
]
