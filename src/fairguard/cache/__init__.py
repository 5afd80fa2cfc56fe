"""
In-memory caches for FairGuard.

- **pending_cache.py**: ``TTLCache``, the lock-guarded TTL map holding manual
  warns that await a second moderator's decision. Entries are process-local
  and intentionally not durable.
"""
