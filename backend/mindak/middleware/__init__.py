"""
Mindak Reservations Backend — Middleware Package
================================================

Middleware Chain (request direction):
    Request → [Request ID] → [Logging] → [Rate Limit] → [GZip] → [CORS] → Router

Request ID runs first so that access log lines and 429 bodies carry the
correlation id. Rate limiting only looks at anonymous public submissions;
every other path passes straight through.
"""
