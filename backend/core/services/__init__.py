"""
Core Service — Services Layer
===============================

Service Inventory:
    - RateLimiter: per-client token buckets with idle eviction
    - JWTSessionVerifier: bearer token → Session
    - image_store: Cloudinary client configured from a cloudinary:// URL
    - monitoring: Sentry initialization and flushing
"""
