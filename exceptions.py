class RidePartnerError(Exception):
    """Base class for errors raised by the ride partner client."""


class InvalidInputError(RidePartnerError):
    """User input failed validation; the message is shown as-is."""


class ProfileIncompleteError(RidePartnerError):
    """The user has no profile yet, or it lacks a gender."""


class NotAuthorizedError(RidePartnerError):
    pass


class BackendError(RidePartnerError):
    """The backend rejected a query or mutation."""


class BackendUnavailableError(BackendError):
    """The backend could not be reached at all."""


class NetworkError(RidePartnerError):
    """A request made through the offline layer failed in transport."""


class StorageError(RidePartnerError):
    pass


class StorageQuotaError(StorageError):
    pass


class InstallError(RidePartnerError):
    """Pre-caching the static manifest failed."""


class BodyConsumedError(RidePartnerError):
    """A response body was read or cloned after it had been consumed."""
