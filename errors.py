"""
Error taxonomy shared by services and routers.
Every error carries a stable machine-readable kind and a human message.
"""


class ServiceError(Exception):
    kind = "error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {"status": "error", "kind": self.kind, "message": self.message}


class ValidationError(ServiceError):
    kind = "validation_error"
    status_code = 422


class Conflict(ValidationError):
    kind = "conflict"
    status_code = 409


class NotFound(ServiceError):
    kind = "not_found"
    status_code = 404


class PackageClosed(ServiceError):
    kind = "package_closed"
    status_code = 409


class DispatchFailed(ServiceError):
    kind = "dispatch_failed"
    status_code = 502


class PaymentGatewayError(ServiceError):
    kind = "payment_gateway_error"
    status_code = 502
