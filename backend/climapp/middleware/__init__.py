"""
Climapp Backend: Middleware Package
====================================

Middleware Chain:
    Request → [Request ID] → [Logging] → [GZip] → [CORS] → Route Handler

    Request ID runs first so every later log line, including the access
    line written by the logging middleware, carries the correlation ID.
"""
