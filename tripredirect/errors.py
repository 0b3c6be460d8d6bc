"""Exceptions raised by the redirect service."""


class TripRedirectError(Exception):
    """Base class for all service errors."""


class UpstreamError(TripRedirectError):
    """The trip API could not be reached or answered with a non-2xx status."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class MalformedPayloadError(TripRedirectError):
    """The trip API answered with something that is not a JSON object."""


class ConfigurationError(TripRedirectError):
    """The domain table or settings could not be loaded."""
