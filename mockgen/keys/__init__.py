"""API key pooling and failover.

Usage:
    from mockgen.keys import KeyPool, load_api_keys

    pool = KeyPool.create(load_api_keys("api_key.txt"))
    key = pool.assign(job_id=1)
"""
from mockgen.keys.key_pool import KeyAssignment, KeyPool, PoolStats
from mockgen.keys.key_source import keys_from_settings, load_api_keys, mask_key

__all__ = [
    "KeyAssignment",
    "KeyPool",
    "PoolStats",
    "keys_from_settings",
    "load_api_keys",
    "mask_key",
]
