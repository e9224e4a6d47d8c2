import pytest

from lending_desk.accounts import Caller
from lending_desk.library import Library
from lending_desk.storage import Storage


@pytest.fixture
def storage(tmp_path):
    # Each test gets its own empty data directory (no seeded accounts or books)
    store = Storage(str(tmp_path / "data"))
    store.initialize(seed=False)
    return store


@pytest.fixture
def lib(storage):
    return Library(storage=storage)


@pytest.fixture
def admin():
    return Caller(id=1, username="admin", role="admin")


@pytest.fixture
def student():
    return Caller(id=2, username="student1", role="student")


@pytest.fixture
def other_student():
    return Caller(id=3, username="student2", role="student")
