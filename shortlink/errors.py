"""Domain error taxonomy for the shortlink service.

Every business-rule failure raised by the service layer derives from
``ShortLinkError`` and carries a stable ``kind`` plus the HTTP status the API
layer maps it to. Anything that is not a ``ShortLinkError`` is an unexpected
failure and is reported to callers as a generic internal error.

Error Hierarchy
===============
::
    ShortLinkError
    ├─ ValidationError        400  malformed URL, alias, short code or date
    ├─ ConflictError          409  alias or code already held by an active link
    ├─ NotFoundError          404  no active link for the code
    ├─ ExpiredError           410  link exists but is past its expiry
    ├─ PermissionDeniedError  403  delete attempted by a non-owner
    └─ InternalError          500  generation exhausted, store failure
"""

__all__ = [
    "ShortLinkError",
    "ValidationError",
    "ConflictError",
    "NotFoundError",
    "ExpiredError",
    "PermissionDeniedError",
    "InternalError",
]


class ShortLinkError(Exception):
    kind: str = "error"
    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(ShortLinkError):
    kind = "validation_error"
    status_code = 400


class ConflictError(ShortLinkError):
    kind = "conflict"
    status_code = 409


class NotFoundError(ShortLinkError):
    kind = "not_found"
    status_code = 404


class ExpiredError(ShortLinkError):
    kind = "expired"
    status_code = 410


class PermissionDeniedError(ShortLinkError):
    kind = "permission_denied"
    status_code = 403


class InternalError(ShortLinkError):
    kind = "internal_error"
    status_code = 500
