"""Account registration, authentication and role checks.

Passwords are compared as given: the stored value must match exactly.
Once an account is authenticated the boundary (HTTP session or CLI
options) hands a `Caller` to every `Library` operation; nothing in this
module remembers who is logged in.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from lending_desk.errors import Forbidden, InvalidCredentials, InvalidRole, MissingFields, Unauthenticated, UsernameExists
from lending_desk.records import ROLES, Account
from lending_desk.storage import Storage, next_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Caller:
    """Identity attached to one operation."""

    id: int
    username: str
    role: str

    @classmethod
    def from_account(cls, account: Account) -> "Caller":
        return cls(id=account.id, username=account.username, role=account.role)

    def to_dict(self) -> dict:
        return {"id": self.id, "username": self.username, "role": self.role}


def load_accounts(storage: Storage) -> List[Account]:
    return [Account.from_dict(item) for item in storage.load("users")]


def register(storage: Storage, username: Optional[str], password: Optional[str], role: Optional[str]) -> Account:
    """Create a new account. Usernames are unique across all roles."""
    if not username or not password or not role:
        raise MissingFields()
    if role not in ROLES:
        raise InvalidRole()

    accounts = load_accounts(storage)
    if any(a.username == username for a in accounts):
        logger.warning("Signup refused, username %r already taken", username)
        raise UsernameExists()

    account = Account(id=next_id(accounts), username=username, password=password, role=role)
    accounts.append(account)
    storage.save("users", [a.to_dict() for a in accounts])
    logger.info("Registered %s account %r", role, username)
    return account


def authenticate(storage: Storage, username: Optional[str], password: Optional[str]) -> Account:
    """Return the account whose username and password both match."""
    for account in load_accounts(storage):
        if account.username == username and account.password == password:
            return account
    logger.warning("Failed login for %r", username)
    raise InvalidCredentials()


def require_login(caller: Optional[Caller]) -> Caller:
    if caller is None:
        raise Unauthenticated()
    return caller


def require_role(caller: Optional[Caller], role: str) -> Caller:
    """Allow the call only for a logged-in caller holding `role`."""
    caller = require_login(caller)
    if caller.role != role:
        raise Forbidden()
    return caller
