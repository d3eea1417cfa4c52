"""Configuration for the user directory, from the environment."""
import os

REDIS_HOST = os.environ.get('REDIS_HOST', 'localhost')
REDIS_PORT = os.environ.get('REDIS_PORT', '6379')
REDIS_DATABASE = os.environ.get('REDIS_DATABASE', '0')
REDIS_TOKEN = os.environ.get('REDIS_TOKEN', None)
"""This is the token used in the AUTH procedure."""

REDIS_CLUSTER = os.environ.get('REDIS_CLUSTER', '0')
"""Set to ``'1'`` to connect to a Redis cluster rather than a single node."""

REDIS_FAKE = os.environ.get('REDIS_FAKE', False)
"""Use the FakeRedis library instead of a redis service.

Useful for testing and dev."""

USER_STORE_ATOMIC_EMAIL_CLAIM = os.environ.get(
    'USER_STORE_ATOMIC_EMAIL_CLAIM',
    '0'
)
"""Claim the e-mail index with ``SET NX`` when creating accounts.

When ``'0'`` (the default) account creation checks for an existing e-mail
and then writes, which is what deployed services have always done. Two
concurrent sign-ups with the same e-mail can both succeed in that mode, and
the index ends up pointing at whichever was written last. When ``'1'`` the
index key itself arbitrates, and the loser gets ``DuplicateEmail``.
"""
