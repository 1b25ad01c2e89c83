"""
Premium Tiers package.

This package manages time-bounded premium entitlements for users and the
gift codes that grant them. It provides:

- app.system: EntitlementSystem façade (tier/feature checks, events).
- app.factory: Bootstrap from a validated PremiumConfig.
- app.services: User and gift code stores plus the expiry sweeper.
- app.cache: In-process lookaside cache with TTL and FIFO eviction.
- app.persistence: Storage drivers (memory, PostgreSQL).

Guidelines:
- Single process; per-user writes are serialized with asyncio locks.
- Writes go to storage first, then refresh or invalidate cache keys.
- Redemption failures are results, not exceptions.
"""
