"""
Security headers middleware.

The service only serves JSON, so the policy is locked down: nothing may be
framed, sniffed or loaded from a response.

Usage:
    from app.middleware.security_headers import init_security_headers
    init_security_headers(app)
"""


def init_security_headers(app):
    """Register after_request handler that injects security headers."""

    @app.after_request
    def _add_security_headers(response):
        response.headers.setdefault("Content-Security-Policy", "default-src 'none'; frame-ancestors 'none'")

        # Prevent MIME-type sniffing
        response.headers.setdefault("X-Content-Type-Options", "nosniff")

        # Clickjacking protection
        response.headers.setdefault("X-Frame-Options", "DENY")

        # HTTPS enforcement (ignored over HTTP, but ready for production)
        response.headers.setdefault(
            "Strict-Transport-Security", "max-age=31536000; includeSubDomains"
        )

        response.headers.setdefault("Referrer-Policy", "no-referrer")

        # Ledger responses carry approval state; never cache them
        if response.mimetype == "application/json":
            response.headers.setdefault("Cache-Control", "no-store")

        # Remove server identification
        response.headers.pop("Server", None)

        return response
