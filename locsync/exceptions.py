"""Application-level exception types.

Convention:
- ``ValueError``: for *business logic* validation errors that are safe to
  forward to clients (unknown format, unknown strategy, project without a
  repository).  The global ``ValueError`` handler returns ``str(exc)`` as the
  422 detail.
- ``SyncError`` subclasses: the sync taxonomy.  Remote failures abort a pull
  before any local state is touched; ``ApplyError`` means the whole pull was
  rolled back and must be retried from fetch.

Conflicts and needs-review items are *not* errors; they are returned in the
normal result types.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base class for synchronization failures."""


class RemoteError(SyncError):
    """Base class for failures talking to the remote repository host."""


class TransientRemoteError(RemoteError):
    """Network failure or rate limiting.  Retried with backoff at the fetch layer."""

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class RemoteAuthorizationError(RemoteError):
    """Remote credentials are stale or lack access.  Never retried."""


class RemoteNotFoundError(RemoteError):
    """Repository, branch, or path does not exist.  Never retried."""


class ParseError(SyncError):
    """A single remote file could not be parsed.

    Isolated per file: the pull skips the file and reports it.
    """

    def __init__(self, file_path: str, message: str) -> None:
        super().__init__(f"{file_path}: {message}")
        self.file_path = file_path
        self.message = message


class ApplyError(SyncError):
    """Storage failure while applying a pull or a conflict resolution.

    The transaction has been rolled back; nothing was applied.
    """


class StaleEntryError(ApplyError):
    """A translation entry changed between snapshot and write (version mismatch)."""

    def __init__(self, key: str, language_code: str, plural_form: str) -> None:
        label = f"{key} [{language_code}]"
        if plural_form:
            label += f" ({plural_form})"
        super().__init__(f"Translation entry was modified concurrently: {label}")
        self.key = key
        self.language_code = language_code
        self.plural_form = plural_form


class ProjectNotFoundError(LookupError):
    """Raised when a project id does not exist."""


class ProjectNotConnectedError(ValueError):
    """Raised when a project has no usable GitHub repository configured."""
