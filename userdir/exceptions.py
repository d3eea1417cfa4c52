"""Exceptions."""


class BackendUnavailable(RuntimeError):
    """The key-value store could not be reached, or timed out."""


class CorruptRecord(ValueError):
    """A stored account record could not be decoded."""
