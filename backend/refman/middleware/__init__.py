# Middleware package init
"""
RefMan Backend — Middleware Package
=====================================

What:  Cross-cutting concerns applied to every request.

Middleware Chain (order matters):
    Request → [Request ID] → [Logging] → [GZip] → [CORS] → Route Handler

    1. Request ID: correlation id stored in a ContextVar, echoed in X-Request-ID
    2. Logging: one access log line per request, tagged with that id

    Responses travel back through the chain in reverse order.
"""
