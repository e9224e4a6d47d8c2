import importlib

import pytest
from fastapi.testclient import TestClient

from lending_desk.storage import Storage


@pytest.fixture
def client(tmp_path, monkeypatch):
    # Per-test data directory with the default accounts and books
    data_dir = tmp_path / "data"
    Storage(str(data_dir)).initialize(seed=True)
    monkeypatch.setenv("LENDING_DATA_DIR", str(data_dir))

    import lending_desk.api as api_module
    # Reload so the module-level Library and session registry start fresh
    importlib.reload(api_module)

    return TestClient(api_module.app)


def _login(client, username, password):
    response = client.post("/login", json={"username": username, "password": password})
    assert response.status_code == 200
    return {"X-Session-Token": response.json()["token"]}


@pytest.fixture
def admin_headers(client):
    return _login(client, "admin", "admin123")


@pytest.fixture
def student_headers(client):
    return _login(client, "student1", "stud123")


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_login_and_whoami(client):
    response = client.post("/login", json={"username": "admin", "password": "admin123"})
    body = response.json()
    assert body["success"] is True
    assert body["role"] == "admin"

    me = client.get("/whoami", headers={"X-Session-Token": body["token"]})
    assert me.json() == {"user": {"id": 1, "username": "admin", "role": "admin"}}


def test_login_invalid_credentials(client):
    response = client.post("/login", json={"username": "admin", "password": "nope"})
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid credentials"}


def test_whoami_anonymous(client):
    assert client.get("/whoami").json() == {"user": None}


def test_logout_ends_session(client, student_headers):
    assert client.post("/logout", headers=student_headers).json() == {"success": True}
    assert client.get("/api/books", headers=student_headers).status_code == 401


def test_signup(client):
    response = client.post("/signup", json={"username": "reader", "password": "pw", "role": "student"})
    assert response.json() == {"success": True}
    assert client.post("/login", json={"username": "reader", "password": "pw"}).status_code == 200


@pytest.mark.parametrize("payload, message", [
    ({"username": "x", "password": "pw"}, "Missing fields"),
    ({"username": "x", "password": "pw", "role": "librarian"}, "Invalid role"),
    ({"username": "admin", "password": "pw", "role": "admin"}, "Username exists"),
])
def test_signup_errors(client, payload, message):
    response = client.post("/signup", json=payload)
    assert response.status_code == 400
    assert response.json() == {"error": message}


def test_books_require_login(client):
    response = client.get("/api/books")
    assert response.status_code == 401
    assert response.json() == {"error": "Not logged in"}


def test_list_seeded_books(client, student_headers):
    books = client.get("/api/books", headers=student_headers).json()
    assert [b["title"] for b in books] == ["Clean Code", "Atomic Habits", "The Pragmatic Programmer"]


def test_student_cannot_add_book(client, student_headers):
    response = client.post("/api/books", headers=student_headers, json={"title": "T", "author": "A"})
    assert response.status_code == 403


def test_add_book(client, admin_headers):
    response = client.post("/api/books", headers=admin_headers, json={"title": "Dune", "author": "Frank Herbert", "available": 2})
    assert response.status_code == 200
    assert response.json() == {"success": True, "book": {"id": 4, "title": "Dune", "author": "Frank Herbert", "available": 2}}


def test_add_book_missing_fields(client, admin_headers):
    response = client.post("/api/books", headers=admin_headers, json={"title": "Dune"})
    assert response.status_code == 400
    assert response.json() == {"error": "title & author required"}


def test_borrow_approve_return_flow(client, admin_headers, student_headers):
    book = client.post("/api/books", headers=admin_headers, json={"title": "Dune", "author": "Frank Herbert", "available": 2}).json()["book"]

    borrow = client.post("/api/request-borrow", headers=student_headers, json={"bookId": book["id"]})
    assert borrow.status_code == 200
    request_id = borrow.json()["request"]["id"]
    assert [r["id"] for r in client.get("/api/myrequests", headers=student_headers).json()] == [request_id]
    assert [r["id"] for r in client.get("/api/requests", headers=admin_headers).json()] == [request_id]

    approve = client.post("/api/requests/approve", headers=admin_headers, json={"requestId": request_id})
    assert approve.json()["request"]["status"] == "approved"

    books = {b["id"]: b for b in client.get("/api/books", headers=student_headers).json()}
    assert books[book["id"]]["available"] == 1
    mine = client.get("/api/mybooks", headers=student_headers).json()
    assert [(l["bookId"], l["return_date"]) for l in mine] == [(book["id"], None)]

    # Cannot delete while the loan is open
    blocked = client.delete(f"/api/books/{book['id']}", headers=admin_headers)
    assert blocked.status_code == 400
    assert blocked.json() == {"error": "Cannot delete: book has active issues"}

    ret = client.post("/api/request-return", headers=student_headers, json={"bookId": book["id"]})
    client.post("/api/requests/approve", headers=admin_headers, json={"requestId": ret.json()["request"]["id"]})

    assert client.get("/api/mybooks", headers=student_headers).json() == []
    issued = client.get("/api/issued", headers=admin_headers).json()
    assert issued[0]["return_date"] is not None

    assert client.delete(f"/api/books/{book['id']}", headers=admin_headers).json() == {"success": True}
    titles = [b["title"] for b in client.get("/api/books", headers=admin_headers).json()]
    assert "Dune" not in titles


def test_request_borrow_errors(client, admin_headers, student_headers):
    assert client.post("/api/request-borrow", headers=student_headers, json={}).status_code == 400
    missing = client.post("/api/request-borrow", headers=student_headers, json={"bookId": 99})
    assert missing.status_code == 404
    assert missing.json() == {"error": "Book not found"}

    assert client.post("/api/request-borrow", headers=student_headers, json={"bookId": 3}).status_code == 200
    duplicate = client.post("/api/request-borrow", headers=student_headers, json={"bookId": 3})
    assert duplicate.status_code == 400
    assert duplicate.json() == {"error": "You already have a pending borrow request"}

    # Admins do not borrow
    assert client.post("/api/request-borrow", headers=admin_headers, json={"bookId": 1}).status_code == 403


def test_request_borrow_accepts_numeric_string(client, student_headers):
    response = client.post("/api/request-borrow", headers=student_headers, json={"bookId": "2"})
    assert response.json()["request"]["bookId"] == 2


def test_request_return_without_loan(client, student_headers):
    response = client.post("/api/request-return", headers=student_headers, json={"bookId": 1})
    assert response.status_code == 400
    assert response.json() == {"error": "No active issue for this book"}


def test_approve_without_copies_keeps_request_pending(client, admin_headers, student_headers):
    client.post("/signup", json={"username": "student2", "password": "pw", "role": "student"})
    other_headers = _login(client, "student2", "pw")
    # "The Pragmatic Programmer" has a single copy
    first = client.post("/api/request-borrow", headers=student_headers, json={"bookId": 3}).json()["request"]
    second = client.post("/api/request-borrow", headers=other_headers, json={"bookId": 3}).json()["request"]

    client.post("/api/requests/approve", headers=admin_headers, json={"requestId": second["id"]})
    response = client.post("/api/requests/approve", headers=admin_headers, json={"requestId": first["id"]})

    assert response.status_code == 400
    assert response.json() == {"error": "Book not available"}
    pending = client.get("/api/requests", headers=admin_headers).json()
    assert [r["id"] for r in pending] == [first["id"]]


def test_reject(client, admin_headers, student_headers):
    request = client.post("/api/request-borrow", headers=student_headers, json={"bookId": 1}).json()["request"]

    response = client.post("/api/requests/reject", headers=admin_headers, json={"requestId": request["id"]})
    assert response.json()["request"]["status"] == "rejected"

    again = client.post("/api/requests/reject", headers=admin_headers, json={"requestId": request["id"]})
    assert again.status_code == 404
    assert again.json() == {"error": "Request not found"}
    assert client.get("/api/issued", headers=admin_headers).json() == []


def test_resolution_requires_admin(client, student_headers):
    response = client.post("/api/requests/approve", headers=student_headers, json={"requestId": 1})
    assert response.status_code == 403
    assert client.post("/api/requests/reject", json={"requestId": 1}).status_code == 401


def test_approve_requires_request_id(client, admin_headers):
    response = client.post("/api/requests/approve", headers=admin_headers, json={})
    assert response.status_code == 400
    assert response.json() == {"error": "requestId required"}

    rejected = client.post("/api/requests/reject", headers=admin_headers, json={})
    assert rejected.status_code == 400
    assert rejected.json() == {"error": "requestId required"}


def test_stats(client, student_headers):
    stats = client.get("/stats", headers=student_headers).json()
    assert stats == {"total_titles": 3, "available_copies": 6, "open_loans": 0, "pending_requests": 0}


@pytest.mark.parametrize("path, payload, message", [
    ("/api/request-borrow", {"bookId": "abc"}, "Invalid bookId"),
    ("/api/books", {"title": "Dune", "author": "Frank Herbert", "available": "many"}, "Invalid available"),
])
def test_malformed_body_uses_error_shape(client, admin_headers, student_headers, path, payload, message):
    headers = student_headers if path == "/api/request-borrow" else admin_headers
    response = client.post(path, headers=headers, json=payload)
    assert response.status_code == 400
    assert response.json() == {"error": message}


def test_invalid_json_uses_error_shape(client, student_headers):
    response = client.post(
        "/api/request-borrow",
        headers={**student_headers, "Content-Type": "application/json"},
        content="{not json",
    )
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid request body"}


def test_invalid_path_parameter(client, admin_headers):
    response = client.delete("/api/books/abc", headers=admin_headers)
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid book_id"}


def test_write_failure_is_a_server_error(client, admin_headers, monkeypatch):
    def broken_open(*args, **kwargs):
        raise OSError("disk full")

    monkeypatch.setattr("lending_desk.storage.open", broken_open, raising=False)
    response = client.post("/api/books", headers=admin_headers, json={"title": "Dune", "author": "Frank Herbert"})

    assert response.status_code == 500
    assert response.json() == {"error": "Could not save library data"}
