"""HTTP API for the lending desk.

Log in with ``POST /login`` and send the returned token in the
``X-Session-Token`` header on later calls. Errors come back as
``{"error": "<message>"}``.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import Depends, FastAPI, Request as HTTPRequest, Security
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader
from pydantic import BaseModel

from lending_desk import accounts
from lending_desk.accounts import Caller
from lending_desk.config import configure_logging, settings
from lending_desk.errors import LendingError, MissingFields
from lending_desk.library import Library
from lending_desk.records import ADMIN, STUDENT
from lending_desk.sessions import SessionRegistry

logger = logging.getLogger(__name__)

library = Library()
sessions = SessionRegistry(ttl_seconds=settings.session_ttl_minutes * 60)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    logger.info("%s %s serving data from %s", settings.app_name, settings.app_version, library.storage.data_dir)
    yield


app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LendingError)
async def lending_error_handler(request: HTTPRequest, exc: LendingError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: HTTPRequest, exc: RequestValidationError):
    """Malformed bodies and parameters answer 400 in the same `{error}` shape."""
    errors = exc.errors()
    field = errors[0]["loc"][-1] if errors and errors[0].get("loc") else None
    message = f"Invalid {field}" if isinstance(field, str) and field != "body" else "Invalid request body"
    logger.warning("Rejected %s %s: %s", request.method, request.url.path, message)
    return JSONResponse(status_code=400, content={"error": message})


# --- Security ---
session_header = APIKeyHeader(name="X-Session-Token", auto_error=False)


def get_caller(token: Optional[str] = Security(session_header)) -> Optional[Caller]:
    """Resolve the session token; None when missing or expired."""
    return sessions.resolve(token)


# --- Models ---
class CredentialsModel(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None


class SignupModel(CredentialsModel):
    role: Optional[str] = None


class BookIdModel(BaseModel):
    bookId: Optional[int] = None


class RequestIdModel(BaseModel):
    requestId: Optional[int] = None


class BookCreateModel(BaseModel):
    title: Optional[str] = None
    author: Optional[str] = None
    available: Optional[int] = None


class BookModel(BaseModel):
    id: int
    title: str
    author: str
    available: int


class LoanModel(BaseModel):
    id: int
    username: str
    bookId: int
    title: str
    issue_date: str
    return_date: Optional[str] = None


class RequestModel(BaseModel):
    id: int
    type: str
    username: str
    bookId: int
    title: str
    requested_at: str
    status: str


class StatsModel(BaseModel):
    total_titles: int
    available_copies: int
    open_loans: int
    pending_requests: int


# --- Helpers ---
def _book_id(payload: Optional[BookIdModel]) -> int:
    if payload is None or not payload.bookId:
        raise MissingFields("bookId required")
    return payload.bookId


def _request_id(payload: Optional[RequestIdModel]) -> int:
    if payload is None or not payload.requestId:
        raise MissingFields("requestId required")
    return payload.requestId


# --- Auth ---
@app.post("/login")
def login(payload: Optional[CredentialsModel] = None):
    payload = payload or CredentialsModel()
    account = accounts.authenticate(library.storage, payload.username, payload.password)
    token = sessions.open(Caller.from_account(account))
    return {"success": True, "role": account.role, "token": token}


@app.post("/signup")
def signup(payload: Optional[SignupModel] = None):
    payload = payload or SignupModel()
    accounts.register(library.storage, payload.username, payload.password, payload.role)
    return {"success": True}


@app.post("/logout")
def logout(token: Optional[str] = Security(session_header)):
    sessions.close(token)
    return {"success": True}


@app.get("/whoami")
def whoami(caller: Optional[Caller] = Depends(get_caller)):
    return {"user": caller.to_dict() if caller else None}


# --- Books ---
@app.get("/api/books", response_model=List[BookModel])
def list_books(caller: Optional[Caller] = Depends(get_caller)):
    return [b.to_dict() for b in library.list_books(caller)]


@app.post("/api/books")
def add_book(payload: Optional[BookCreateModel] = None, caller: Optional[Caller] = Depends(get_caller)):
    payload = payload or BookCreateModel()
    book = library.add_book(caller, payload.title, payload.author, payload.available)
    return {"success": True, "book": book.to_dict()}


@app.delete("/api/books/{book_id}")
def remove_book(book_id: int, caller: Optional[Caller] = Depends(get_caller)):
    library.remove_book(caller, book_id)
    return {"success": True}


# --- Student ---
@app.get("/api/mybooks", response_model=List[LoanModel])
def my_books(caller: Optional[Caller] = Depends(get_caller)):
    return [l.to_dict() for l in library.my_books(caller)]


@app.get("/api/myrequests", response_model=List[RequestModel])
def my_requests(caller: Optional[Caller] = Depends(get_caller)):
    return [r.to_dict() for r in library.my_requests(caller)]


@app.post("/api/request-borrow")
def request_borrow(payload: Optional[BookIdModel] = None, caller: Optional[Caller] = Depends(get_caller)):
    accounts.require_role(caller, STUDENT)
    request = library.request_borrow(caller, _book_id(payload))
    return {"success": True, "request": request.to_dict()}


@app.post("/api/request-return")
def request_return(payload: Optional[BookIdModel] = None, caller: Optional[Caller] = Depends(get_caller)):
    accounts.require_role(caller, STUDENT)
    request = library.request_return(caller, _book_id(payload))
    return {"success": True, "request": request.to_dict()}


# --- Admin ---
@app.get("/api/issued", response_model=List[LoanModel])
def list_issued(caller: Optional[Caller] = Depends(get_caller)):
    return [l.to_dict() for l in library.list_issued(caller)]


@app.get("/api/requests", response_model=List[RequestModel])
def list_requests(caller: Optional[Caller] = Depends(get_caller)):
    return [r.to_dict() for r in library.list_pending_requests(caller)]


@app.post("/api/requests/approve")
def approve_request(payload: Optional[RequestIdModel] = None, caller: Optional[Caller] = Depends(get_caller)):
    accounts.require_role(caller, ADMIN)
    request = library.approve(caller, _request_id(payload))
    return {"success": True, "request": request.to_dict()}


@app.post("/api/requests/reject")
def reject_request(payload: Optional[RequestIdModel] = None, caller: Optional[Caller] = Depends(get_caller)):
    accounts.require_role(caller, ADMIN)
    request = library.reject(caller, _request_id(payload))
    return {"success": True, "request": request.to_dict()}


@app.get("/stats", response_model=StatsModel)
def get_stats(caller: Optional[Caller] = Depends(get_caller)):
    return library.get_statistics(caller)


@app.get("/health")
def health():
    """Lightweight liveness check."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "data_dir": str(library.storage.data_dir),
    }
