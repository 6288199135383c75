# certledger/errors.py
"""
Typed failures raised by the services and rendered by the app's error handlers.
"""


class CertLedgerError(Exception):
    """Base class for every failure the API reports to its caller."""
    status_code = 500

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self):
        return {"error": self.message}


class ValidationError(CertLedgerError):
    status_code = 400


class BadRequestError(ValidationError):
    pass


class AuthorizationError(CertLedgerError):
    status_code = 401


class NotFoundError(CertLedgerError):
    status_code = 404


class IntegrityError(CertLedgerError):
    """The recomputed content hash does not match the stored one."""
    status_code = 409


class ExternalServiceError(CertLedgerError):
    status_code = 500


class StorageError(ExternalServiceError):
    pass


class ExtractionParseError(CertLedgerError):
    status_code = 500
