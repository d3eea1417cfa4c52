"""Tests for :mod:`userdir.domain`."""

from unittest import TestCase

from userdir import domain


class TestNormalize(TestCase):
    """Tests for :func:`domain.normalize`."""

    def test_case_folded(self):
        """Case variants of an address normalize to the same value."""
        self.assertEqual(domain.normalize('a@x.com'),
                         domain.normalize('A@X.com'))
        self.assertEqual(domain.normalize('a@x.com'), 'A@X.COM')

    def test_whitespace(self):
        """Surrounding whitespace is dropped."""
        self.assertEqual(domain.normalize('  bob@x.com\n'), 'BOB@X.COM')

    def test_empty(self):
        """Nothing normalizes to an empty string."""
        self.assertEqual(domain.normalize(None), '')
        self.assertEqual(domain.normalize(''), '')


class TestAccount(TestCase):
    """Tests for :class:`domain.Account`."""

    def test_defaults(self):
        """A bare account has empty text fields and no timestamps."""
        account = domain.Account()
        self.assertFalse(account.exists)
        self.assertFalse(account.has_password)
        self.assertEqual(account.email, '')
        self.assertEqual(account.access_failed_count, 0)
        self.assertIsNone(account.lockout_end)
        self.assertIsNone(account.created_at)

    def test_has_password(self):
        """An account with a hash has a password."""
        account = domain.Account(user_id='1', password_hash='xyz')
        self.assertTrue(account.exists)
        self.assertTrue(account.has_password)


class TestStoreResult(TestCase):
    """Tests for :class:`domain.StoreResult`."""

    def test_failed(self):
        """A failed result carries its error code."""
        result = domain.StoreResult.failed(domain.StoreError.NOT_FOUND, 'no')
        self.assertFalse(result.succeeded)
        self.assertEqual(result.codes, ['NotFound'])
        self.assertIsNone(result.account)

    def test_success(self):
        """A successful result has no errors."""
        account = domain.Account(user_id='1')
        result = domain.StoreResult.success(account)
        self.assertTrue(result.succeeded)
        self.assertEqual(result.errors, ())
        self.assertEqual(result.account, account)

    def test_default_errors_not_shared(self):
        """Results built directly get an immutable, empty error list."""
        first = domain.StoreResult(succeeded=True)
        second = domain.StoreResult(succeeded=False)
        self.assertEqual(first.errors, ())
        self.assertIsInstance(second.errors, tuple)
        self.assertEqual(second.codes, [])
