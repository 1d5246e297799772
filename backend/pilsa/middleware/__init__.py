"""
Pilsa Backend — Middleware Package
===================================

Execution order for an incoming request (outermost first):
    CORS → GZip → RequestID → AccessLog → RateLimit → route

    - RequestID runs before the access log and the rate limiter so both can
      tag their output with the request's correlation id
    - RateLimit sits innermost of the three so rejected requests are still
      logged and still carry X-Request-ID and CORS headers
"""
