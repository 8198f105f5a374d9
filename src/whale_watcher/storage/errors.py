"""Storage layer exceptions."""


class StorageError(Exception):
    """Raised when a backing store cannot be read or written."""
