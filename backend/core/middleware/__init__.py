"""
Core Service — Middleware Package
===================================

What:  Cross-cutting concerns applied to every request.

Middleware Chain (outermost first):
    Request → [CORS] → [Logging] → [Rate Limit] → [Auth] → [Monitoring] → Route Handler

    1. CORS: answers preflight requests and adds the allow-origin headers
    2. Logging: one access line per request, including rejected ones
    3. Rate Limit: per-client token bucket; 429 before any auth work
    4. Auth: bearer session check, only for paths under the auth prefix
    5. Monitoring: Sentry error capture, non-local environments only
"""
