"""Domain exceptions."""

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from tunecache.domain.entities import SyncState


class DomainException(Exception):
    """Base exception for all domain exceptions."""

    # Hey future me, message is kept as an attribute so handlers can log it without parsing
    # str(exception). Never raise this directly, always a subclass so callers can catch precisely.
    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class ConfigurationError(DomainException):
    """Application misconfiguration.

    Example:
        raise ConfigurationError("Jellyfin user_id is not configured")
    """

    pass


class SyncError(DomainException):
    """Base class for failures raised while synchronizing a source."""

    pass


class DriverError(SyncError):
    """The source driver failed (network, auth or remote failure).

    The driver owns retry and backoff, so by the time the engine sees this
    the call is final.
    """

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation  # e.g. "list_albums"
        self.status_code = status_code  # HTTP status if the remote answered

    @property
    def is_auth_error(self) -> bool:
        """Whether re-authentication is needed before retrying."""
        return self.status_code in (401, 403)


class PersistenceError(SyncError):
    """A write to the local store failed."""

    def __init__(self, message: str, table: str | None = None) -> None:
        super().__init__(message)
        self.table = table


class NotFoundError(SyncError):
    """A parent entity disappeared between enumeration and fetch.

    Example: an album listed in phase one was deleted on the server before
    its tracks were requested.
    """

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(f"{entity_type} with id {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class SyncFailedError(SyncError):
    """Raised by the engine when a basic or dependent phase failed.

    ``phase`` is the state the engine was in when it failed, ``__cause__``
    the first fatal error and ``failures`` every fatal error collected
    during that phase. Calling the engine again resumes from the stored
    cursors.
    """

    def __init__(
        self,
        message: str,
        phase: "SyncState",
        failures: list[BaseException] | None = None,
    ) -> None:
        super().__init__(message)
        self.phase = phase
        self.failures = failures or []


__all__ = [
    "DomainException",
    "ConfigurationError",
    "SyncError",
    "DriverError",
    "PersistenceError",
    "NotFoundError",
    "SyncFailedError",
]
