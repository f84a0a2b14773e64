"""
Stale cache service package.

Structure:
- app.main: FastAPI demo service wiring the cache into routes and middleware.
- app.caching: Timed envelopes, the multi-backend orchestrator, HTTP response capture.
- app.stores: Storage backends (memory, LRU, Redis, no-op, error).
"""
