from dataclasses import dataclass
from typing import Protocol

from login_guard import db
from login_guard.models import User


@dataclass(frozen=True)
class ResolvedAccount:
    account_id: int
    username: str

    @property
    def tracking_key(self) -> str:
        return f"account:{self.account_id}"


class AccountResolver(Protocol):
    def resolve(self, identifier: str) -> ResolvedAccount | None:
        ...


def normalize_identifier(identifier: str) -> str:
    return identifier.strip().lower()


def tracking_key_for(identifier: str, account: ResolvedAccount | None) -> str:
    """Key attempt state on the stable account id once the account is known.

    The submitted string is only a fallback for unresolved identifiers, so a
    login name and its email share one counter and one lock.
    """
    if account is not None:
        return account.tracking_key
    return f"ident:{normalize_identifier(identifier)}"


class DbAccountResolver:
    """Looks the identifier up as a login name first, then as an email."""

    def resolve(self, identifier: str) -> ResolvedAccount | None:
        user = self.lookup(identifier)
        if user is None or user.id is None:
            return None
        return ResolvedAccount(account_id=user.id, username=user.username)

    def lookup(self, identifier: str) -> User | None:
        if not identifier or not identifier.strip():
            return None
        user = db.get_user(identifier.strip())
        if user is None and "@" in identifier:
            user = db.get_user_by_email(identifier)
        return user
