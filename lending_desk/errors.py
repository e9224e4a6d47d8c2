"""Error kinds raised by the lending workflow.

Every failure is a local validation or state error reported straight back
to the caller. Each class carries the HTTP status the API answers with, so
the transport layer maps them with a single handler.
"""

from __future__ import annotations


class LendingError(Exception):
    status_code = 400
    message = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.message
        super().__init__(self.message)


class MissingFields(LendingError, ValueError):
    message = "Missing fields"


class InvalidRole(LendingError, ValueError):
    message = "Invalid role"


class UsernameExists(LendingError, ValueError):
    message = "Username exists"


class InvalidCredentials(LendingError, ValueError):
    message = "Invalid credentials"


class Unauthenticated(LendingError):
    status_code = 401
    message = "Not logged in"


class Forbidden(LendingError):
    status_code = 403
    message = "Forbidden"


class BookNotFound(LendingError, LookupError):
    status_code = 404
    message = "Book not found"


class NoCopiesAvailable(LendingError):
    message = "No copies available"


class DuplicatePendingRequest(LendingError):
    message = "You already have a pending request for this book"


class NoActiveIssue(LendingError):
    message = "No active issue for this book"


class RequestNotFoundOrNotPending(LendingError, LookupError):
    status_code = 404
    message = "Request not found"


class BookUnavailable(LendingError):
    message = "Book not available"


class NoOpenIssueFound(LendingError):
    message = "No open issue found"


class ActiveIssuesExist(LendingError):
    message = "Cannot delete: book has active issues"


class PersistenceFailure(LendingError):
    status_code = 500
    message = "Could not save library data"
