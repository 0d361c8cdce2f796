class GatewayError(Exception):
    """Base class for failures talking to the payment gateway."""

    error_type = 'gateway_error'

    def __init__(self, message, code=None):
        super().__init__(message)
        self.code = code
        self.description = message


class AuthFailure(GatewayError):
    """Gateway credentials were rejected."""

    error_type = 'auth_failure'


class TransientFailure(GatewayError):
    """Network error, timeout or 5xx. Retried until the attempt budget runs out."""

    error_type = 'transient_failure'


class Rejected(GatewayError):
    """The gateway explicitly declined the request. Never retried."""

    error_type = 'rejected'

    def __init__(self, code, description):
        super().__init__(description or 'Request rejected by gateway', code=code)

    def __str__(self):
        return f"{self.code}: {self.description}"


class MalformedCallback(ValueError):
    pass
