"""
Exceptions for the Quiet Journal core
Everything derives from JournalError so callers have one general catcher
"""


class JournalError(Exception):
    # general container for errors
    pass


class StorageError(JournalError):
    # raised if the local database fails in some way
    pass


class DerivationFailedError(JournalError):
    # raised when a key cannot be derived (bad inputs, unknown kdf version, primitive failure)
    pass


class DecryptionFailedError(JournalError):
    # raised on tag mismatch or unparsable plaintext.
    # wrong passphrase and corrupted record are indistinguishable
    pass


class RecordNotFoundError(JournalError):
    # raised when a lookup by id finds nothing
    pass


class InvalidSettingsError(JournalError):
    # raised when a settings value is out of range, before it is saved
    pass


class SessionLockedError(JournalError):
    # raised when encrypt/decrypt/backup is attempted without an active session key
    pass


class BackupValidationError(JournalError):
    # raised when a backup document fails schema checks, before any write

    def __init__(self, message, errors=None):
        super().__init__(message)
        self.errors = list(errors or [])
