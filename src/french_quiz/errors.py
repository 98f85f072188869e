"""Error taxonomy shared by the local store, the transfer endpoints and the client."""


class TransferError(Exception):
    """Base class for errors surfaced by the transfer endpoints.

    Each subclass carries the HTTP status the endpoint answers with and a
    short message shown to the end user.
    """

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(TransferError):
    status_code = 400
    default_message = "Invalid request"


class NotFound(TransferError):
    status_code = 404
    default_message = "Code not found"


class AlreadyUsed(TransferError):
    status_code = 400
    default_message = "Code already used"


class Expired(TransferError):
    status_code = 400
    default_message = "Code expired"


class UpstreamFailure(TransferError):
    status_code = 500
    default_message = "Transfer datastore unavailable"


class RateLimited(TransferError):
    status_code = 429
    default_message = "rate_limited"


class TransferClientError(Exception):
    """A create or redeem call failed on the client side."""

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class StorageError(Exception):
    """A durable slot could not be read or written."""


class ProfileNotFound(KeyError):
    """No profile with the given id exists on this device."""


class ProfileLimitReached(Exception):
    """The device already holds the maximum number of profiles."""


class InvalidProfileName(ValueError):
    """Profile name is shorter than the minimum length after trimming."""


class SessionNotFound(KeyError):
    """No session with the given id exists on the profile."""


class SessionClosed(Exception):
    """The session already has an end time and can no longer change."""
