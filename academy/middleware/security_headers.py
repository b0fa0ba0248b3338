"""
Security headers middleware.

The API serves JSON only, so the Content-Security-Policy denies every
resource type. JSON responses are marked ``no-store``: they carry session
tokens and payment links.
"""

SECURITY_HEADERS = {
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "Referrer-Policy": "no-referrer",
}


def init_security_headers(app):
    """Register the after_request hook that stamps ``SECURITY_HEADERS``."""

    @app.after_request
    def _add_security_headers(response):
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        if response.mimetype == "application/json":
            response.headers.setdefault("Cache-Control", "no-store")
        response.headers.pop("Server", None)
        return response
