"""Exception hierarchy for cdn-media."""


class MediaError(Exception):
    """Base class for all cdn-media errors."""


class ConfigError(MediaError):
    """Raised when configuration is invalid or missing."""


class UsageError(MediaError, ValueError):
    """Raised when a builder is serialized in an invalid state."""


class NotSupportedError(UsageError):
    """Raised for resource type / action combinations the CDN does not route."""


class ApiError(MediaError):
    """Raised when an API call cannot be completed."""


class UploadError(ApiError):
    """Raised when a chunk of a large upload is rejected.

    Attributes:
        status_code: HTTP status returned for the failing chunk
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
