"""Defines account concepts for the user directory."""

from typing import Optional, NamedTuple, List, Tuple
from datetime import datetime
from pytz import UTC


def now() -> datetime:
    """Get a timezone-aware timestamp for the current moment."""
    return datetime.now(tz=UTC)


def normalize(value: Optional[str]) -> str:
    """
    Produce the lookup form of a username or e-mail address.

    Upper-cased, matching the index keys in deployed data.
    """
    if not value:
        return ''
    return value.strip().upper()


class Account(NamedTuple):
    """Represents a user account as persisted in the directory."""

    user_id: str = ''
    """Unique identifier. Assigned by the store on creation if empty."""

    username: str = ''
    """Display form of the username. Not unique."""

    normalized_username: str = ''
    """Lookup form of :attr:`username`."""

    email: str = ''
    """Display form of the user's e-mail address."""

    normalized_email: str = ''
    """Lookup form of :attr:`email`. Unique across accounts when non-empty."""

    email_confirmed: bool = False

    password_hash: str = ''
    """Opaque; the directory never computes or checks hashes."""

    security_stamp: str = ''
    concurrency_stamp: str = ''

    phone_number: str = ''
    phone_number_confirmed: bool = False
    two_factor_enabled: bool = False

    lockout_end: Optional[datetime] = None
    """End of the current lockout, if any."""

    lockout_enabled: bool = False
    access_failed_count: int = 0

    first_name: str = ''
    last_name: str = ''

    created_at: Optional[datetime] = None
    """When the account was created. Set by the store if absent."""

    @property
    def exists(self) -> bool:
        """Whether or not this account has been assigned an identifier."""
        return bool(self.user_id)

    @property
    def has_password(self) -> bool:
        """Whether or not a password hash is set."""
        return bool(self.password_hash)


class StoreError(NamedTuple):
    """A single reason that a directory operation did not succeed."""

    code: str
    description: str

    DUPLICATE_EMAIL = 'DuplicateEmail'  # type: ignore
    NOT_FOUND = 'NotFound'  # type: ignore
    INVALID_ACCOUNT = 'InvalidAccount'  # type: ignore
    BACKEND_UNAVAILABLE = 'BackendUnavailable'  # type: ignore


class StoreResult(NamedTuple):
    """Outcome of a create, update, or delete operation."""

    succeeded: bool
    errors: Tuple[StoreError, ...] = ()
    account: Optional[Account] = None
    """The account as written, for successful creates and updates."""

    @classmethod
    def success(cls, account: Optional[Account] = None) -> 'StoreResult':
        """Build a successful result."""
        return cls(succeeded=True, errors=(), account=account)

    @classmethod
    def failed(cls, code: str, description: str) -> 'StoreResult':
        """Build a failed result with a single error."""
        return cls(succeeded=False, errors=(StoreError(code, description),))

    @property
    def codes(self) -> List[str]:
        """The error codes carried by this result."""
        return [error.code for error in self.errors]
