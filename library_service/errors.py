"""
Errors raised by the library services.

Every error is user-facing: the HTTP layer renders it as JSON with the
status code attached to the class.
"""


class LibraryError(Exception):
    status_code = 400

    def __init__(self, message=None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__

    def to_dict(self):
        return {"error": self.message, "code": self.__class__.__name__}


class NotFound(LibraryError):
    status_code = 404


class OutOfStock(LibraryError):
    status_code = 409


class MemberNotEligible(LibraryError):
    status_code = 409


class LoanLimitExceeded(LibraryError):
    status_code = 409


class DuplicateLoan(LibraryError):
    status_code = 409


class AlreadyReturned(LibraryError):
    status_code = 409


class ExtensionNotAllowed(LibraryError):
    status_code = 409


class InvalidQuantity(LibraryError):
    status_code = 400


class ConflictState(LibraryError):
    """Delete blocked by rows that still reference the entity."""
    status_code = 409


class DuplicateEntry(LibraryError):
    """Unique field (ISBN, email, username) already taken."""
    status_code = 409


class AuthenticationFailed(LibraryError):
    status_code = 401
