"""Provides API for registering users in the directory."""

import logging
import uuid
from typing import NamedTuple, Optional

from . import store as _store
from .domain import Account, StoreResult, normalize, now

logger = logging.getLogger(__name__)


class UserRegistration(NamedTuple):
    """Data submitted for a new account."""

    username: str
    email: str
    password_hash: str
    """Already hashed by the caller."""

    first_name: str = ''
    last_name: str = ''


def _get_store(user_store: Optional[_store.UserStore]) -> _store.UserStore:
    return user_store if user_store is not None else _store.current_store()


def email_exists(email: str,
                 user_store: Optional[_store.UserStore] = None) -> bool:
    """Determine whether or not an e-mail address is already registered."""
    return _get_store(user_store).find_by_email(normalize(email)) is not None


def register(registration: UserRegistration,
             user_store: Optional[_store.UserStore] = None) -> StoreResult:
    """
    Add a new account to the directory.

    New accounts start unconfirmed, with lockout enabled and fresh security
    and concurrency stamps.

    Parameters
    ----------
    registration : :class:`.UserRegistration`
    user_store : :class:`.UserStore`
        Defaults to the store for the current application.

    Returns
    -------
    :class:`.StoreResult`
        ``account`` carries the assigned ID on success.

    """
    account = Account(
        username=registration.username,
        normalized_username=normalize(registration.username),
        email=registration.email,
        normalized_email=normalize(registration.email),
        email_confirmed=False,
        password_hash=registration.password_hash,
        security_stamp=str(uuid.uuid4()),
        concurrency_stamp=str(uuid.uuid4()),
        lockout_enabled=True,
        first_name=registration.first_name,
        last_name=registration.last_name,
        created_at=now(),
    )
    result = _get_store(user_store).create(account)
    if not result.succeeded:
        logger.debug('Registration for %s failed: %s', registration.username,
                     ', '.join(result.codes))
    return result


def find_for_login(email: str,
                   user_store: Optional[_store.UserStore] = None) \
        -> Optional[Account]:
    """Get the account to authenticate for an e-mail address, if any."""
    return _get_store(user_store).find_by_email(normalize(email))
