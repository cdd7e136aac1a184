"""Exception types shared across the sync engine and routine scheduler."""


class TaskMirrorError(Exception):
    """Base class for taskmirror errors."""


class ConfigurationError(TaskMirrorError):
    """Required configuration (e.g. the API token) is missing.

    Fatal for the current cycle: nothing is persisted.
    """


class RemoteAPIError(TaskMirrorError):
    """The remote service returned an error or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class PayloadError(TaskMirrorError):
    """A remote entity payload failed validation at the ingestion boundary."""


class NotFoundError(TaskMirrorError):
    """A routine or routine task referenced by the caller does not exist."""
