"""
Error taxonomy shared by the store, services and API layer.

Each error carries the HTTP status the API answers with.
"""


class ConnectUError(Exception):
    """Base class for all domain errors"""

    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__


class ValidationError(ConnectUError):
    """Malformed or missing input"""

    status_code = 400


class InvalidOperation(ConnectUError):
    """Well-formed request that makes no sense (e.g. chatting with yourself)"""

    status_code = 400


class Unauthorized(ConnectUError):
    """Missing or invalid credentials"""

    status_code = 401


class Forbidden(ConnectUError):
    """Authenticated but not entitled"""

    status_code = 403


class NotFound(ConnectUError):
    """Entity absent"""

    status_code = 404


class Conflict(ConnectUError):
    """Uniqueness violation"""

    status_code = 409


class ContactExists(Conflict):
    """Phone already saved in the owner's contact list"""

    status_code = 400


class UpstreamError(ConnectUError):
    """External SMS provider failed or timed out"""

    status_code = 500


class InternalError(ConnectUError):
    """Unclassified failure"""

    status_code = 500
