from __future__ import annotations

ADMIN = "admin"
STUDENT = "student"
ROLES = (ADMIN, STUDENT)

BORROW = "borrow"
RETURN = "return"

PENDING = "pending"
APPROVED = "approved"
REJECTED = "rejected"


class Account:
    """A login account with its role (admin or student)."""

    def __init__(self, id: int, username: str, password: str, role: str) -> None:
        self.id = id
        self.username = username
        self.password = password
        self.role = role

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.username} ({self.role})"

    def to_dict(self) -> dict:
        return {"id": self.id, "username": self.username, "password": self.password, "role": self.role}

    @staticmethod
    def from_dict(data: dict) -> "Account":
        return Account(
            id=int(data["id"]),
            username=data["username"],
            password=data["password"],
            role=data["role"],
        )


class Book:
    """A catalog entry. `available` counts the copies that can still be lent."""

    def __init__(self, id: int, title: str, author: str, available: int = 1) -> None:
        self.id = id
        self.title = title.strip()
        self.author = author.strip()
        self.available = available

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} by {self.author} ({self.available} available)"

    def to_dict(self) -> dict:
        return {"id": self.id, "title": self.title, "author": self.author, "available": self.available}

    @staticmethod
    def from_dict(data: dict) -> "Book":
        return Book(
            id=int(data["id"]),
            title=data["title"],
            author=data["author"],
            available=int(data.get("available", 0)),
        )


class Loan:
    """An issued copy. The loan is open while `return_date` is None."""

    def __init__(self, id: int, username: str, book_id: int, title: str,
                 issue_date: str, return_date: str | None = None) -> None:
        self.id = id
        self.username = username
        self.book_id = book_id
        self.title = title
        self.issue_date = issue_date
        self.return_date = return_date

    @property
    def is_open(self) -> bool:
        return not self.return_date

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "bookId": self.book_id,
            "title": self.title,
            "issue_date": self.issue_date,
            "return_date": self.return_date,
        }

    @staticmethod
    def from_dict(data: dict) -> "Loan":
        return Loan(
            id=int(data["id"]),
            username=data["username"],
            book_id=int(data["bookId"]),
            title=data.get("title", ""),
            issue_date=data.get("issue_date", ""),
            return_date=data.get("return_date"),
        )


class Request:
    """A borrow or return request waiting for (or past) an admin decision."""

    def __init__(self, id: int, type: str, username: str, book_id: int, title: str,
                 requested_at: str, status: str = PENDING) -> None:
        self.id = id
        self.type = type
        self.username = username
        self.book_id = book_id
        self.title = title
        self.requested_at = requested_at
        self.status = status

    @property
    def is_pending(self) -> bool:
        return self.status == PENDING

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "username": self.username,
            "bookId": self.book_id,
            "title": self.title,
            "requested_at": self.requested_at,
            "status": self.status,
        }

    @staticmethod
    def from_dict(data: dict) -> "Request":
        return Request(
            id=int(data["id"]),
            type=data["type"],
            username=data["username"],
            book_id=int(data["bookId"]),
            title=data.get("title", ""),
            requested_at=data.get("requested_at", ""),
            status=data.get("status", PENDING),
        )
