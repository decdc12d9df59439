# Middleware package init
"""
TalentDesk Backend: Middleware Package
======================================

Cross-cutting concerns applied to every request.

Middleware chain (last added runs first):
    Request → [Rate Limit] → [Request ID] → [Logging] → [GZip] → [CORS] → Route

    1. Rate Limit rejects abusive clients before anything else runs; the
       login endpoint has its own, much smaller budget.
    2. Request ID sets the correlation id used by every log line and error body.
    3. Logging records method, path, status and duration once the response exists.
"""
