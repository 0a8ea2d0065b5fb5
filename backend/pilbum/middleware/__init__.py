"""
Pilbum Backend — Middleware Package
=====================================

Middleware Chain:
    Request → [Rate Limit] → [Request ID] → [Logging] → [GZip] → [CORS] → Route Handler

    Rate limiting runs first so rejected requests cost nothing downstream;
    the request id exists before the access log line is written.
"""
