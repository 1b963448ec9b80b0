"""Exception types raised by the Shelfs core.

Domain validation failures derive from ``LibraryError`` so the presentation
layer can catch them in one place and show the message. ``PersistenceError``
is separate: it means the snapshot on disk could not be read or
written, not that the caller asked for something invalid.
"""


class LibraryError(Exception):
    pass


class NotFoundError(LibraryError, LookupError):
    """A user, book, copy or loan id could not be resolved."""


class DuplicateKeyError(LibraryError, ValueError):
    """A username, email, ISBN or id is already taken."""


class NotAvailableError(LibraryError):
    """The copy is not in the AVAILABLE state."""


class LoanLimitExceededError(LibraryError):
    """The user already holds the maximum number of active loans."""


class InUseError(LibraryError):
    """The record is still referenced by another record."""


class PersistenceError(Exception):
    pass
