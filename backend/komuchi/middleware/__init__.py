"""
Komuchi API — Middleware Package
=================================

Request path (outermost first):
    RateLimit → RequestID → RequestLogging → GZip → CORS → route

Request ID must be set before the logging middleware reads it, and the
rate limiter rejects early so that rejected calls cost nothing further.
"""
