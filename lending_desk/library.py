import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from lending_desk.accounts import Caller, require_login, require_role
from lending_desk.errors import (
    ActiveIssuesExist,
    BookNotFound,
    BookUnavailable,
    DuplicatePendingRequest,
    MissingFields,
    NoActiveIssue,
    NoCopiesAvailable,
    NoOpenIssueFound,
    RequestNotFoundOrNotPending,
)
from lending_desk.records import ADMIN, APPROVED, BORROW, REJECTED, RETURN, STUDENT, Book, Loan, Request
from lending_desk.storage import Storage, next_id

logger = logging.getLogger(__name__)


def _today() -> str:
    return datetime.now(timezone.utc).date().isoformat()


def _now() -> str:
    stamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
    return stamp.replace("+00:00", "Z")


class Library:
    """Catalog, loan ledger and request queue, and the workflow tying them together.

    Every operation loads the collections it needs, validates against that
    snapshot, mutates in memory and writes back every collection it touched.
    Nothing is written before validation passes, so a refused operation
    leaves the files unchanged. There is no locking: two processes working on
    the same data directory can overwrite each other.

    Borrow requests do not hold a copy. Several students can ask for the last
    copy; the first request an admin approves gets it and later approvals
    fail with BookUnavailable. A student holds at most one open loan per book,
    so approving a borrow for a book they already have fails the same way.
    """

    def __init__(self, data_dir: Optional[str] = None, storage: Optional[Storage] = None) -> None:
        self.storage = storage or Storage(data_dir)
        self.storage.initialize()

    # ------------------------- Catalog ------------------------- #
    def list_books(self, caller: Optional[Caller]) -> List[Book]:
        require_login(caller)
        return self._load_books()

    def find_book(self, caller: Optional[Caller], book_id: int) -> Optional[Book]:
        require_login(caller)
        return self._find(self._load_books(), book_id)

    def add_book(self, caller: Optional[Caller], title: Optional[str], author: Optional[str],
                 available: Optional[int] = None) -> Book:
        """Add a title to the catalog. `available` defaults to 1 and never goes below 0."""
        require_role(caller, ADMIN)
        title = (title or "").strip()
        author = (author or "").strip()
        if not title or not author:
            raise MissingFields("title & author required")

        copies = 1 if available is None else max(0, int(available))
        books = self._load_books()
        book = Book(id=next_id(books), title=title, author=author, available=copies)
        books.append(book)
        self._save_books(books)
        logger.info("Added book %d %r (%d copies)", book.id, book.title, book.available)
        return book

    def remove_book(self, caller: Optional[Caller], book_id: int) -> bool:
        """Delete a book unless someone still holds a copy. Returns False if no such book existed."""
        require_role(caller, ADMIN)
        loans = self._load_loans()
        if any(loan.book_id == book_id and loan.is_open for loan in loans):
            logger.warning("Refused to delete book %d, it has open loans", book_id)
            raise ActiveIssuesExist()

        books = self._load_books()
        remaining = [b for b in books if b.id != book_id]
        self._save_books(remaining)
        removed = len(remaining) != len(books)
        if removed:
            logger.info("Removed book %d", book_id)
        return removed

    # ------------------------- Student requests ------------------------- #
    def request_borrow(self, caller: Optional[Caller], book_id: int) -> Request:
        caller = require_role(caller, STUDENT)
        book = self._find(self._load_books(), book_id)
        if not book:
            raise BookNotFound()
        if book.available <= 0:
            raise NoCopiesAvailable()

        requests = self._load_requests()
        if self._pending(requests, caller.username, book.id, BORROW):
            raise DuplicatePendingRequest("You already have a pending borrow request")

        request = Request(
            id=next_id(requests),
            type=BORROW,
            username=caller.username,
            book_id=book.id,
            title=book.title,
            requested_at=_now(),
        )
        requests.append(request)
        self._save_requests(requests)
        logger.info("%s requested to borrow book %d (request %d)", caller.username, book.id, request.id)
        return request

    def request_return(self, caller: Optional[Caller], book_id: int) -> Request:
        caller = require_role(caller, STUDENT)
        loan = self._open_loan(self._load_loans(), caller.username, book_id)
        if not loan:
            raise NoActiveIssue()

        requests = self._load_requests()
        if self._pending(requests, caller.username, book_id, RETURN):
            raise DuplicatePendingRequest("You already have a pending return request")

        request = Request(
            id=next_id(requests),
            type=RETURN,
            username=caller.username,
            book_id=book_id,
            title=loan.title,
            requested_at=_now(),
        )
        requests.append(request)
        self._save_requests(requests)
        logger.info("%s requested to return book %d (request %d)", caller.username, book_id, request.id)
        return request

    def my_books(self, caller: Optional[Caller]) -> List[Loan]:
        """Open loans held by the caller."""
        caller = require_role(caller, STUDENT)
        return [l for l in self._load_loans() if l.username == caller.username and l.is_open]

    def my_requests(self, caller: Optional[Caller]) -> List[Request]:
        """The caller's requests still awaiting a decision."""
        caller = require_role(caller, STUDENT)
        return [r for r in self._load_requests() if r.username == caller.username and r.is_pending]

    # ------------------------- Admin resolution ------------------------- #
    def approve(self, caller: Optional[Caller], request_id: int) -> Request:
        """Approve a pending request and apply it to the catalog and the loan ledger.

        A borrow takes one copy and opens a loan; availability is checked
        again here because the request did not reserve anything. A return
        closes the matching open loan and gives the copy back. If either
        check fails the request stays pending and nothing is written.
        """
        require_role(caller, ADMIN)
        requests = self._load_requests()
        request = self._pending_by_id(requests, request_id)
        books = self._load_books()
        loans = self._load_loans()
        book = self._find(books, request.book_id)

        if request.type == BORROW:
            if not book or book.available <= 0:
                logger.warning("Cannot approve request %d, book %d unavailable", request.id, request.book_id)
                raise BookUnavailable()
            if self._open_loan(loans, request.username, book.id):
                logger.warning("Cannot approve request %d, %s already holds book %d",
                               request.id, request.username, book.id)
                raise BookUnavailable(f"{request.username} already has this book on loan")
            book.available -= 1
            loan = Loan(
                id=next_id(loans),
                username=request.username,
                book_id=book.id,
                title=book.title,
                issue_date=_today(),
            )
            loans.append(loan)
        elif request.type == RETURN:
            loan = self._open_loan(loans, request.username, request.book_id)
            if not loan:
                logger.warning("Cannot approve request %d, no open loan", request.id)
                raise NoOpenIssueFound()
            loan.return_date = _today()
            if book:
                book.available += 1

        request.status = APPROVED
        self._save_requests(requests)
        self._save_books(books)
        self._save_loans(loans)
        logger.info("Approved %s request %d for %s", request.type, request.id, request.username)
        return request

    def reject(self, caller: Optional[Caller], request_id: int) -> Request:
        require_role(caller, ADMIN)
        requests = self._load_requests()
        request = self._pending_by_id(requests, request_id)
        request.status = REJECTED
        self._save_requests(requests)
        logger.info("Rejected %s request %d for %s", request.type, request.id, request.username)
        return request

    def list_issued(self, caller: Optional[Caller]) -> List[Loan]:
        require_role(caller, ADMIN)
        return self._load_loans()

    def list_pending_requests(self, caller: Optional[Caller]) -> List[Request]:
        require_role(caller, ADMIN)
        return [r for r in self._load_requests() if r.is_pending]

    def get_statistics(self, caller: Optional[Caller]) -> Dict[str, Any]:
        """Counts across the catalog, the ledger and the queue."""
        require_login(caller)
        books = self._load_books()
        loans = self._load_loans()
        requests = self._load_requests()
        return {
            "total_titles": len(books),
            "available_copies": sum(b.available for b in books),
            "open_loans": sum(1 for l in loans if l.is_open),
            "pending_requests": sum(1 for r in requests if r.is_pending),
        }

    # ------------------------- Persistence ------------------------- #
    def _load_books(self) -> List[Book]:
        return [Book.from_dict(item) for item in self.storage.load("books")]

    def _save_books(self, books: List[Book]) -> None:
        self.storage.save("books", [b.to_dict() for b in books])

    def _load_loans(self) -> List[Loan]:
        return [Loan.from_dict(item) for item in self.storage.load("issued")]

    def _save_loans(self, loans: List[Loan]) -> None:
        self.storage.save("issued", [l.to_dict() for l in loans])

    def _load_requests(self) -> List[Request]:
        return [Request.from_dict(item) for item in self.storage.load("requests")]

    def _save_requests(self, requests: List[Request]) -> None:
        self.storage.save("requests", [r.to_dict() for r in requests])

    # ------------------------- Lookups ------------------------- #
    @staticmethod
    def _find(books: List[Book], book_id: int) -> Optional[Book]:
        return next((b for b in books if b.id == book_id), None)

    @staticmethod
    def _open_loan(loans: List[Loan], username: str, book_id: int) -> Optional[Loan]:
        return next((l for l in loans if l.username == username and l.book_id == book_id and l.is_open), None)

    @staticmethod
    def _pending(requests: List[Request], username: str, book_id: int, type: str) -> bool:
        return any(
            r.username == username and r.book_id == book_id and r.type == type and r.is_pending
            for r in requests
        )

    @staticmethod
    def _pending_by_id(requests: List[Request], request_id: int) -> Request:
        request = next((r for r in requests if r.id == request_id and r.is_pending), None)
        if not request:
            raise RequestNotFoundOrNotPending()
        return request
