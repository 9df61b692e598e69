"""
EU VAT engine for the storefront.

Components:
- rate_cache: thread-safe in-memory table of active VAT rates
- sources: EC TEDB (primary) and euvatrates.com (fallback) rate fetchers
- sync: RateSyncer that persists rate history and refreshes the cache
- vies: VIES VAT number validation with a persisted TTL cache
- scheduler: daily UTC-midnight background sync
- services: VATService, the per-line and per-cart calculation engine
- tasks: Django-Q2 task and schedule for queue-driven deployments
"""
