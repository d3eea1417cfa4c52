"""Integration tests for the user store with Redis."""

from unittest import TestCase
import os
import uuid

from userdir import store
from userdir.domain import Account, StoreError


class TestUserStoreIntegration(TestCase):
    """Test integration with Redis."""

    __test__ = int(bool(os.environ.get('WITH_INTEGRATION', False)))

    def setUp(self):
        """Connect to the Redis configured in the environment."""
        self.store = store.get_user_store()
        self.email = f'{uuid.uuid4().hex}@EXAMPLE.COM'

    def test_lifecycle(self):
        """Create, collide, update, and delete against a live server."""
        result = self.store.create(Account(username='it', email=self.email,
                                           normalized_email=self.email))
        self.assertTrue(result.succeeded)
        user_id = result.account.user_id

        duplicate = self.store.create(Account(normalized_email=self.email))
        self.assertEqual(duplicate.codes, [StoreError.DUPLICATE_EMAIL])

        moved = f'moved-{self.email}'
        self.assertTrue(self.store.update(
            result.account._replace(normalized_email=moved)
        ).succeeded)
        self.assertIsNone(self.store.find_by_email(self.email))
        self.assertEqual(self.store.find_by_email(moved).user_id, user_id)

        self.assertTrue(self.store.delete(user_id).succeeded)
        self.assertIsNone(self.store.find_by_id(user_id))
        self.assertIsNone(self.store.find_by_email(moved))
