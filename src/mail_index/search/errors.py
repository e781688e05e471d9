"""Error taxonomy for the mail search index."""


class MailIndexError(Exception):
    """Base class for all index errors."""


class InvalidArgumentError(MailIndexError, ValueError):
    """Raised for empty document ids or malformed pagination arguments."""


class StoreUnavailableError(MailIndexError):
    """Raised when the persisted store cannot be opened or is owned by another process."""


class CommitFailureError(MailIndexError):
    """Raised when staged changes could not be made durable.

    The staged changes stay pending and the last published snapshot stays valid.
    """
