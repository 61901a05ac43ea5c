"""
Core Service — Application Package Initializer
================================================

What: The `core` package: an HTTP service skeleton with a rate-limited,
      authenticated request pipeline and a generic persistence layer.
Who:  Imported by the server entry point (`core httpd`), pytest, and uvicorn.

Architecture Note:

    ┌─────────────────────────────────────┐
    │   Server (listener + shutdown)      │  ← core.server
    ├─────────────────────────────────────┤
    │   Middleware chain + Routes         │  ← core.main, core.middleware, core.routes
    ├─────────────────────────────────────┤
    │   Services (limiter, auth, images)  │  ← core.services
    ├─────────────────────────────────────┤
    │   Persistence (Repository[T])       │  ← core.persistence, core.database
    └─────────────────────────────────────┘

    Every long-lived collaborator lives on one AppContext (core.context).
"""

__version__ = "1.0.0"
