"""
Defines custom exceptions for the application to allow for more specific error handling.
"""


class SongbridgeError(Exception):
    """Base exception for all application-specific errors."""


class ValidationError(SongbridgeError):
    """Raised when a request is missing a required parameter or carries a bad one."""


class ScrapeError(SongbridgeError):
    """Raised when an upstream page or JSON payload does not have the expected shape."""


class ResolutionError(SongbridgeError):
    """Raised when no playable media URL can be derived for an id."""


class UpstreamError(SongbridgeError):
    """Raised when the media host answers with a non-2xx status."""

    def __init__(self, status: int, url: str = ""):
        self.status = status
        self.url = url
        super().__init__(f"Upstream error: {status}")


class TransportError(SongbridgeError):
    """
    Raised when the media host cannot be reached (timeout, connection failure)
    after the retry budget is exhausted.
    """


class ConfigurationError(SongbridgeError):
    """Raised for issues related to configuration loading or validation."""
