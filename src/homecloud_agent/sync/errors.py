"""Exceptions raised by the watch-and-track engine."""


class SyncAgentError(RuntimeError):
    """Base class for engine and watcher failures."""


class AlreadyRunningError(SyncAgentError):
    """Raised when starting a component that is not stopped."""


class WatchError(SyncAgentError):
    """Raised when the watch directory cannot be registered."""


class UploadError(SyncAgentError):
    """Raised by an uploader when transferring a record fails.

    The engine retries these with backoff and marks the path ``ERROR``
    once retries are exhausted.
    """
