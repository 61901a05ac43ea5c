"""
Core Service — API Routes Package
===================================

Route Inventory:
    - probe.py:    GET /api/probe                 (liveness, no auth)
    - session.py:  GET <auth prefix>/session      (verified session of the caller)
"""
