# Middleware package init
"""
NoteTaker Backend - Middleware Package
======================================

What:  Cross-cutting concerns applied to every request.

Middleware Chain (last added runs first):
    Request → [Request ID] → [Logging] → [GZip] → [CORS] → Route Handler

    - Request ID runs first so every later log line can carry the id
    - Logging measures the full handler time, including exception handlers
"""
