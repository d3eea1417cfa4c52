"""
User directory backed by Redis.

This package stores user accounts in a key-value store, and keeps e-mail
addresses unique across accounts with a secondary index. See
:mod:`userdir.store` for the storage protocols and their limits under
concurrent use.

Quick start
-----------

.. code-block:: python

   from flask import Flask
   from userdir import store, registration

   app = Flask('foo')
   store.init_app(app)

   with app.app_context():
       result = registration.register(registration.UserRegistration(
           username='alice',
           email='alice@example.com',
           password_hash=hashed,
       ))
       if result.succeeded:
           user_id = result.account.user_id

Outside of an application context, configuration is read from the
environment (see :mod:`userdir.config`).
"""

from .domain import Account, StoreError, StoreResult, normalize
