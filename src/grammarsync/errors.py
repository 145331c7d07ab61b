"""Exception taxonomy for grammar synchronization.

Unit-level errors (unsupported source, fetch, decode) abandon one source;
manifest and preparation errors abort the whole run.
"""

from __future__ import annotations


class GrammarSyncError(Exception):
    """Base class for all grammar-sync errors."""

    pass


class UnsupportedSourceError(GrammarSyncError):
    """Raised when a source descriptor matches no package kind."""

    def __init__(self, descriptor: str, reason: str = ""):
        self.descriptor = descriptor
        message = f"Unsupported source: {descriptor}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class FetchError(GrammarSyncError):
    """Raised when retrieving a package fails.

    Carries the origin being fetched and the underlying cause so the
    failure can be reproduced from the log line alone.
    """

    def __init__(self, origin: str, cause: str):
        self.origin = origin
        self.cause = cause
        super().__init__(f"Failed to fetch {origin}: {cause}")


class InvalidDocumentTypeError(GrammarSyncError):
    """Raised when a candidate file has no decoder for its extension."""

    def __init__(self, path: object):
        self.path = path
        super().__init__(f"Invalid document type {path}")


class GrammarDecodeError(GrammarSyncError):
    """Raised when a grammar file cannot be decoded into a document."""

    def __init__(self, path: object, message: str):
        self.path = path
        super().__init__(f"{path}: {message}")


class ManifestError(GrammarSyncError):
    """Raised when the manifest file is malformed."""

    pass


class PrepareError(GrammarSyncError):
    """Raised when the environment preparation command fails."""

    pass
