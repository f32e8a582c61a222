# ======================================
# Domain Errors
# ======================================


class HMSError(Exception):
    """Base class for failures the caller can act on."""

    status_code = 500

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class NotFound(HMSError):
    """A referenced patient, doctor, ward, admission, appointment or bill is missing."""

    status_code = 404


class Conflict(HMSError):
    """The write would break a domain invariant."""

    status_code = 409


class ValidationError(HMSError):
    """Malformed input; fixable by the client."""

    status_code = 400
