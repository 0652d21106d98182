"""
Typed errors surfaced by the call server.

Every error carries a stable ``code`` that ends up in the JSON body as
``{"error": code, "message": message}`` and the HTTP status it maps to.
"""


class CallServerError(Exception):
    status = 500
    code = "internal"

    def __init__(self, message: str = "", code: str = None):
        super().__init__(message or self.code)
        self.message = message or self.code
        if code:
            self.code = code

    def as_dict(self):
        return {"error": self.code, "message": self.message}


class Unauthenticated(CallServerError):
    status = 401
    code = "unauthenticated"


class InvalidArgument(CallServerError):
    status = 400
    code = "invalid_argument"


class PermissionDenied(CallServerError):
    status = 403
    code = "permission_denied"


class NotFound(CallServerError):
    status = 404
    code = "not_found"


class FailedPrecondition(CallServerError):
    status = 409
    code = "failed_precondition"


class Internal(CallServerError):
    status = 500
    code = "internal"


class ConfigurationError(Internal):
    code = "configuration_error"


class DeliveryError(Internal):
    status = 502
    code = "delivery_failed"
