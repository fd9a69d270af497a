"""Exceptions raised by the persistence layer."""


class StorageError(Exception):
    """Raised when a read or write against the store fails"""
    pass


class MigrationError(StorageError):
    """Raised when the schema cannot be brought to the target version"""

    def __init__(self, message: str, version: int = 0):
        self.version = version
        super().__init__(message)
