"""
Security headers middleware.

Every response gets the static header set below; auth and invitation
responses (tokens, cookies, invite lookups) are also marked ``no-store``.
"""

from flask import request

_NO_STORE_PREFIXES = ("/api/v1/auth/", "/api/v1/invitations")

# JSON API only: nothing may be framed, embedded or executed
SECURITY_HEADERS = {
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=(), payment=()",
}


def init_security_headers(app):
    """Register the after_request hook that applies ``SECURITY_HEADERS``."""

    @app.after_request
    def _apply_security_headers(response):
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        if request.path.startswith(_NO_STORE_PREFIXES):
            response.headers["Cache-Control"] = "no-store"
        response.headers.pop("Server", None)
        return response
