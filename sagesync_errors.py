from __future__ import annotations


class SyncError(Exception):
    """Base class for every error raised by sagesync."""


class ConfigInvalidError(SyncError):
    """Static configuration is missing or malformed. Aborts the run before any I/O."""


class ConnectionUnavailableError(SyncError):
    """Pre-flight probe of Sage300 or Fracttal failed. Aborts the run."""


class SyncInProgressError(SyncError):
    """A sync pass is already running in this process."""


class RecordSkipped(SyncError):
    """Source row cannot be synced (blank fields, unmapped location). Not counted as an error."""


class RemoteError(SyncError):
    """Error talking to the Fracttal API."""

    def __init__(self, message: str, status_code: int = 0, response_body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class AuthenticationError(RemoteError):
    """Token could not be obtained, or the API kept rejecting a fresh one."""


class AuthExpiredError(RemoteError):
    """401 caused by a stale bearer token; renewable."""


class UnauthorizedEndpointError(RemoteError):
    """401 for an endpoint/module the credentials are not entitled to.

    A new token cannot fix this, so it is never retried.
    """

    def __init__(self, endpoint: str, status_code: int = 401, response_body: str = ""):
        super().__init__(f"Unauthorized endpoint: {endpoint}", status_code, response_body)
        self.endpoint = endpoint


class RemoteNotFoundError(RemoteError):
    """Resource not found (404)."""


class RemoteRequestError(RemoteError):
    """Transport failure or non-404 HTTP error."""


class WarehouseCreationDisabledError(SyncError):
    def __init__(self, code: str):
        super().__init__(f"Warehouse {code} not found and automatic creation is disabled")
        self.code = code
