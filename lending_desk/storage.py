import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from lending_desk.config import settings
from lending_desk.errors import PersistenceFailure

logger = logging.getLogger(__name__)

# Collection name -> file name inside the data directory.
COLLECTIONS = {
    "users": "users.json",
    "books": "books.json",
    "issued": "issued.json",
    "requests": "requests.json",
}

DEFAULT_USERS = [
    {"id": 1, "username": "admin", "password": "admin123", "role": "admin"},
    {"id": 2, "username": "student1", "password": "stud123", "role": "student"},
]

DEFAULT_BOOKS = [
    {"id": 1, "title": "Clean Code", "author": "Robert C. Martin", "available": 3},
    {"id": 2, "title": "Atomic Habits", "author": "James Clear", "available": 2},
    {"id": 3, "title": "The Pragmatic Programmer", "author": "Andrew Hunt", "available": 1},
]


def resolve_data_dir(data_dir: Optional[str] = None) -> Path:
    """Pick the data directory.

    Priority:
    1) an explicit argument
    2) LENDING_DATA_DIR read at call time (lets tests swap directories)
    3) settings.data_dir
    """
    return Path(data_dir or os.environ.get("LENDING_DATA_DIR") or settings.data_dir)


def next_id(records: Iterable[Any]) -> int:
    """Return max existing id + 1, or 1 for an empty collection.

    Not safe with concurrent writers: two processes can hand out the same id.
    """
    return max((r.id for r in records), default=0) + 1


class Storage:
    """Reads and rewrites whole JSON collections in a data directory."""

    def __init__(self, data_dir: Optional[str] = None) -> None:
        self.data_dir = resolve_data_dir(data_dir)

    def path_for(self, name: str) -> Path:
        try:
            return self.data_dir / COLLECTIONS[name]
        except KeyError:
            raise ValueError(f"Unknown collection: {name}") from None

    def exists(self, name: str) -> bool:
        return self.path_for(name).exists()

    def load(self, name: str) -> List[Dict[str, Any]]:
        """Return every record in the collection; a missing or unreadable file reads as empty."""
        path = self.path_for(name)
        if not path.exists():
            return []
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Could not read %s, treating it as empty: %s", path, e)
            return []
        if not isinstance(data, list):
            logger.warning("%s does not hold a list, treating it as empty", path)
            return []
        return data

    def save(self, name: str, records: List[Dict[str, Any]]) -> None:
        """Rewrite the whole collection.

        The records go to a temporary file that then replaces the collection,
        so a failed write leaves the previous contents in place.
        """
        path = self.path_for(name)
        tmp_path = path.with_suffix(".tmp")
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(records, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, path)
        except OSError as e:
            logger.error("Failed to write %s: %s", path, e)
            if tmp_path.exists():
                tmp_path.unlink()
            raise PersistenceFailure() from e

    def initialize(self, seed: Optional[bool] = None) -> None:
        """Create the data directory and any missing collection files.

        With seeding enabled the first start writes the default accounts and
        books; loans and requests always start empty. Existing files are left
        alone.
        """
        seed = settings.seed_defaults if seed is None else seed
        self.data_dir.mkdir(parents=True, exist_ok=True)
        defaults = {
            "users": DEFAULT_USERS if seed else [],
            "books": DEFAULT_BOOKS if seed else [],
            "issued": [],
            "requests": [],
        }
        for name, records in defaults.items():
            if not self.exists(name):
                self.save(name, [dict(r) for r in records])
                if records:
                    logger.info("Seeded %s with %d records", name, len(records))
