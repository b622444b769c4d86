"""
Domain errors raised by the entitlement services.

Each error carries the HTTP status it maps to and a stable `code` that
callers can branch on; app.main renders them as {"detail", "code"}.
"""


class EntitlementError(Exception):
    status_code = 500
    code = "internal"
    default_detail = "Internal server error"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class Unauthenticated(EntitlementError):
    status_code = 401
    code = "unauthenticated"
    default_detail = "Unauthorized"


class Forbidden(EntitlementError):
    status_code = 403
    code = "forbidden"
    default_detail = "Not allowed"


class ValidationFailed(EntitlementError):
    status_code = 400
    code = "validation"
    default_detail = "Invalid request"


class NotFound(EntitlementError):
    status_code = 404
    code = "not_found"
    default_detail = "Not found"


class UpstreamFailure(EntitlementError):
    """Credential issuer, email sender or identity provider unreachable or refused."""
    status_code = 500
    code = "upstream_failure"
    default_detail = "Upstream service failed"


class InternalFailure(EntitlementError):
    code = "internal"
