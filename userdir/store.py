"""
Redis-backed storage for user accounts.

Each account is kept as a hash at ``User:{user_id}`` (the primary record).
E-mail uniqueness is enforced by a secondary index: a plain string at
``User:Email:{normalized_email}`` holding the owning account's ID. There is
no username index; usernames are not unique.

Redis gives us atomicity per key only. Create, update, and delete each touch
two keys in a fixed order, and nothing here makes that sequence atomic:

- Two concurrent :meth:`UserStore.create` calls for the same e-mail can both
  pass the existence check before either writes the index. Both primary
  records get written, and the index points at whichever was written last;
  the other account can still be loaded by ID but not by e-mail. Setting
  ``USER_STORE_ATOMIC_EMAIL_CLAIM`` closes this window by claiming the index
  with ``SET NX`` instead of checking first. In that mode an index entry
  whose account is gone is taken over rather than treated as a duplicate.
- :meth:`UserStore.update` does not check whether a changed e-mail is
  already claimed by another account, and will take over that index entry.
- If a call is interrupted after its first write, the remaining writes are
  not performed and nothing is rolled back.
"""

import logging
import uuid
from functools import wraps
from typing import Any, Mapping, Optional

import fakeredis
import redis
import redis.cluster
from flask import current_app, g, has_app_context

from . import codec, config as default_config
from .domain import Account, StoreError, StoreResult, now
from .exceptions import BackendUnavailable, CorruptRecord

logger = logging.getLogger(__name__)

USER_KEY = 'User:{user_id}'
EMAIL_KEY = 'User:Email:{normalized_email}'


def user_key(user_id: str) -> str:
    """Key of the primary record for an account."""
    return USER_KEY.format(user_id=user_id)


def email_key(normalized_email: str) -> str:
    """Key of the e-mail index entry."""
    return EMAIL_KEY.format(normalized_email=normalized_email)


def _differs(old: str, new: Optional[str]) -> bool:
    return old.casefold() != (new or '').casefold()


class UserStore(object):
    """
    Manages user accounts in Redis.

    The Redis client is thread safe, and connections are drawn from its pool
    when a command is executed. This class holds the client and implements
    the multi-step protocols on top of it. It keeps no state of its own, so
    a single instance may be shared between concurrent requests.
    """

    def __init__(self, host: str, port: int, db: int,
                 token: Optional[str] = None, cluster: bool = False,
                 fake: bool = False,
                 atomic_email_claim: bool = False) -> None:
        """Open the connection to Redis."""
        if fake:
            logger.debug('Using FakeRedis in place of Redis')
            self.r = fakeredis.FakeRedis(decode_responses=True)
        elif cluster:
            logger.debug('New Redis cluster connection at %s, port %s',
                         host, port)
            self.r = redis.cluster.RedisCluster(host=host, port=port,
                                                password=token,
                                                decode_responses=True)
        else:
            logger.debug('New Redis connection at %s, port %s', host, port)
            self.r = redis.Redis(host=host, port=port, db=db, password=token,
                                 decode_responses=True)
        self._atomic_email_claim = atomic_email_claim

    # Backend primitives. Each is a single Redis command, atomic on its own.

    def _hash_set(self, key: str, fields: list) -> None:
        try:
            self.r.hset(key, mapping=dict(fields))
        except (redis.exceptions.ConnectionError,
                redis.exceptions.TimeoutError) as e:
            raise BackendUnavailable(f'Failed to write {key}: {e}') from e

    def _hash_get_all(self, key: str) -> Mapping[str, str]:
        try:
            data: Mapping[str, str] = self.r.hgetall(key)
        except (redis.exceptions.ConnectionError,
                redis.exceptions.TimeoutError) as e:
            raise BackendUnavailable(f'Failed to read {key}: {e}') from e
        return data

    def _string_set(self, key: str, value: str, nx: bool = False) -> bool:
        try:
            return bool(self.r.set(key, value, nx=nx))
        except (redis.exceptions.ConnectionError,
                redis.exceptions.TimeoutError) as e:
            raise BackendUnavailable(f'Failed to write {key}: {e}') from e

    def _string_get(self, key: str) -> Optional[str]:
        try:
            value: Optional[str] = self.r.get(key)
        except (redis.exceptions.ConnectionError,
                redis.exceptions.TimeoutError) as e:
            raise BackendUnavailable(f'Failed to read {key}: {e}') from e
        return value

    def _key_exists(self, key: str) -> bool:
        try:
            return bool(self.r.exists(key))
        except (redis.exceptions.ConnectionError,
                redis.exceptions.TimeoutError) as e:
            raise BackendUnavailable(f'Failed to read {key}: {e}') from e

    def _key_delete(self, key: str) -> bool:
        try:
            return bool(self.r.delete(key))
        except (redis.exceptions.ConnectionError,
                redis.exceptions.TimeoutError) as e:
            raise BackendUnavailable(f'Failed to delete {key}: {e}') from e

    def create(self, account: Account) -> StoreResult:
        """
        Create a new account.

        Parameters
        ----------
        account : :class:`.Account`
            If ``user_id`` is empty, a new ID is generated. If ``created_at``
            is not set, the current time is used.

        Returns
        -------
        :class:`.StoreResult`
            On success, ``account`` holds the account as written. Fails with
            ``DuplicateEmail`` if another account already has the normalized
            e-mail address, in which case nothing is written.

        """
        try:
            if self._atomic_email_claim:
                return self._create_with_claim(account)
            return self._create(account)
        except BackendUnavailable as e:
            logger.error('Could not create account: %s', e)
            return StoreResult.failed(StoreError.BACKEND_UNAVAILABLE, str(e))

    def _assign_identity(self, account: Account) -> Account:
        if not account.user_id:
            account = account._replace(user_id=str(uuid.uuid4()))
        if account.created_at is None:
            account = account._replace(created_at=now())
        return account

    def _duplicate(self, normalized_email: str) -> StoreResult:
        logger.warning('Rejected duplicate e-mail %s', normalized_email)
        return StoreResult.failed(StoreError.DUPLICATE_EMAIL,
                                  'Email address is already in use.')

    def _create(self, account: Account) -> StoreResult:
        if account.normalized_email:
            try:
                existing = self.find_by_email(account.normalized_email)
            except CorruptRecord as e:
                # The owner's record exists even though it can't be read.
                logger.error('Account for %s is corrupt: %s',
                             account.normalized_email, e)
                return self._duplicate(account.normalized_email)
            if existing is not None:
                return self._duplicate(account.normalized_email)

        account = self._assign_identity(account)
        self._hash_set(user_key(account.user_id), codec.encode(account))
        if account.normalized_email:
            self._string_set(email_key(account.normalized_email),
                             account.user_id)
        logger.info('Created account %s', account.user_id)
        return StoreResult.success(account)

    def _create_with_claim(self, account: Account) -> StoreResult:
        account = self._assign_identity(account)
        if account.normalized_email:
            if not self._claim(account.normalized_email, account.user_id):
                return self._duplicate(account.normalized_email)
        try:
            self._hash_set(user_key(account.user_id), codec.encode(account))
        except BackendUnavailable:
            if account.normalized_email:
                self._release_claim(account.normalized_email)
            raise
        logger.info('Created account %s', account.user_id)
        return StoreResult.success(account)

    def _claim(self, normalized_email: str, user_id: str) -> bool:
        """
        Claim the index entry for ``normalized_email``.

        An entry whose account no longer exists (left behind by an
        interrupted delete, or by a create race in the default mode) is
        taken over, with one more ``SET NX``. Two creates taking over the
        same orphan at once can both succeed, as in the default mode.
        """
        key = email_key(normalized_email)
        if self._string_set(key, user_id, nx=True):
            return True
        owner = self._string_get(key)
        if owner and self._key_exists(user_key(owner)):
            return False
        logger.warning('Taking over orphaned index %s from %s',
                       normalized_email, owner)
        self._key_delete(key)
        return self._string_set(key, user_id, nx=True)

    def _release_claim(self, normalized_email: str) -> None:
        try:
            self._key_delete(email_key(normalized_email))
        except BackendUnavailable as e:
            logger.error('Could not release e-mail claim %s: %s',
                         normalized_email, e)

    def update(self, account: Account) -> StoreResult:
        """
        Overwrite an existing account.

        The stored ``user_id`` and ``created_at`` are kept regardless of what
        ``account`` carries for ``created_at``. If the normalized e-mail has
        changed, the old index entry is removed and the new one is written.
        The new e-mail is not checked against other accounts.

        Parameters
        ----------
        account : :class:`.Account`

        Returns
        -------
        :class:`.StoreResult`

        """
        if not account.user_id:
            return StoreResult.failed(StoreError.INVALID_ACCOUNT,
                                      'Account has no ID.')
        try:
            return self._update(account)
        except BackendUnavailable as e:
            logger.error('Could not update account %s: %s',
                         account.user_id, e)
            return StoreResult.failed(StoreError.BACKEND_UNAVAILABLE, str(e))

    def _update(self, account: Account) -> StoreResult:
        # Only the fields we need are parsed, so that an update can
        # overwrite a record that no longer decodes.
        stored = self._hash_get_all(user_key(account.user_id))
        if not stored:
            # Deployed services wrote the record anyway; we don't create
            # accounts through update.
            return StoreResult.failed(StoreError.NOT_FOUND,
                                      f'No such account: {account.user_id}')
        old_email: str = codec.decode_field(stored, 'NormalizedEmail')
        try:
            created_at = codec.decode_field(stored, 'CreatedAt')
        except CorruptRecord as e:
            logger.error('Account %s has a bad creation time: %s',
                         account.user_id, e)
            created_at = None
        account = account._replace(created_at=created_at or account.created_at)

        if old_email and _differs(old_email, account.normalized_email):
            logger.debug('Account %s e-mail changed; dropping index %s',
                         account.user_id, old_email)
            self._key_delete(email_key(old_email))

        self._hash_set(user_key(account.user_id), codec.encode(account))
        if account.normalized_email:
            self._string_set(email_key(account.normalized_email),
                             account.user_id)
        return StoreResult.success(account)

    def delete(self, user_id: str,
               normalized_email: Optional[str] = None) -> StoreResult:
        """
        Delete an account and its e-mail index entry.

        Parameters
        ----------
        user_id : str
        normalized_email : str
            The account's normalized e-mail. If not provided, it is read
            from the stored record. The index entry for this address is
            removed even if it no longer points at ``user_id``.

        Returns
        -------
        :class:`.StoreResult`

        """
        if not user_id:
            return StoreResult.failed(StoreError.INVALID_ACCOUNT,
                                      'Account has no ID.')
        try:
            if normalized_email is None:
                stored = self._hash_get_all(user_key(user_id))
                if not stored:
                    return StoreResult.failed(StoreError.NOT_FOUND,
                                              f'No such account: {user_id}')
                normalized_email = codec.decode_field(stored,
                                                      'NormalizedEmail')

            self._key_delete(user_key(user_id))
            if normalized_email:
                self._key_delete(email_key(normalized_email))
        except BackendUnavailable as e:
            logger.error('Could not delete account %s: %s', user_id, e)
            return StoreResult.failed(StoreError.BACKEND_UNAVAILABLE, str(e))
        logger.info('Deleted account %s', user_id)
        return StoreResult.success()

    def find_by_id(self, user_id: str) -> Optional[Account]:
        """
        Load an account by ID.

        Returns ``None`` if there is no such account.

        Raises
        ------
        :class:`.BackendUnavailable`
        :class:`.CorruptRecord`

        """
        if not user_id:
            return None
        return codec.decode(self._hash_get_all(user_key(user_id)))

    def find_by_email(self, normalized_email: str) -> Optional[Account]:
        """Load an account by its normalized e-mail address."""
        if not normalized_email:
            return None
        user_id = self._string_get(email_key(normalized_email))
        if not user_id:
            return None
        return self.find_by_id(user_id)

    def find_by_username(self, normalized_username: str) -> Optional[Account]:
        """
        Always ``None``.

        Usernames are not unique and are not indexed. Callers that need to
        look accounts up by username have to maintain their own index.
        """
        return None


def _flag(value: Any) -> bool:
    return str(value).lower() in ('1', 'true')


def _application_config(app: Any = None) -> Mapping[str, Any]:
    if app is not None:
        return app.config       # type: ignore
    if has_app_context():
        return current_app.config
    return {key: getattr(default_config, key)
            for key in dir(default_config) if key.isupper()}


def init_app(app: Any) -> None:
    """Set default configuration parameters for an application instance."""
    config = app.config
    config.setdefault('REDIS_HOST', default_config.REDIS_HOST)
    config.setdefault('REDIS_PORT', default_config.REDIS_PORT)
    config.setdefault('REDIS_DATABASE', default_config.REDIS_DATABASE)
    config.setdefault('REDIS_TOKEN', default_config.REDIS_TOKEN)
    config.setdefault('REDIS_CLUSTER', default_config.REDIS_CLUSTER)
    config.setdefault('REDIS_FAKE', default_config.REDIS_FAKE)
    config.setdefault('USER_STORE_ATOMIC_EMAIL_CLAIM',
                      default_config.USER_STORE_ATOMIC_EMAIL_CLAIM)


def get_user_store(app: Any = None) -> UserStore:
    """Get a new :class:`.UserStore` configured for the application."""
    config = _application_config(app)
    return UserStore(
        host=config.get('REDIS_HOST', 'localhost'),
        port=int(config.get('REDIS_PORT', '6379')),
        db=int(config.get('REDIS_DATABASE', '0')),
        token=config.get('REDIS_TOKEN', None),
        cluster=_flag(config.get('REDIS_CLUSTER', '0')),
        fake=_flag(config.get('REDIS_FAKE', False)),
        atomic_email_claim=_flag(
            config.get('USER_STORE_ATOMIC_EMAIL_CLAIM', '0')
        )
    )


def current_store() -> UserStore:
    """Get/create the :class:`.UserStore` for this application context."""
    if not has_app_context():
        return get_user_store()
    if 'user_store' not in g:
        g.user_store = get_user_store()
    return g.user_store     # type: ignore


@wraps(UserStore.create)
def create(account: Account) -> StoreResult:
    """Create a new account."""
    return current_store().create(account)


@wraps(UserStore.update)
def update(account: Account) -> StoreResult:
    """Overwrite an existing account."""
    return current_store().update(account)


@wraps(UserStore.delete)
def delete(user_id: str, normalized_email: Optional[str] = None) \
        -> StoreResult:
    """Delete an account and its e-mail index entry."""
    return current_store().delete(user_id, normalized_email)


@wraps(UserStore.find_by_id)
def find_by_id(user_id: str) -> Optional[Account]:
    """Load an account by ID."""
    return current_store().find_by_id(user_id)


@wraps(UserStore.find_by_email)
def find_by_email(normalized_email: str) -> Optional[Account]:
    """Load an account by its normalized e-mail address."""
    return current_store().find_by_email(normalized_email)


@wraps(UserStore.find_by_username)
def find_by_username(normalized_username: str) -> Optional[Account]:
    """Always ``None``; usernames are not indexed."""
    return current_store().find_by_username(normalized_username)
