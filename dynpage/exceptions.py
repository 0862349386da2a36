"""
Core Exceptions

Custom exceptions for the dynpage rendering engine.
"""


class DynPageError(Exception):
    """Base class for all engine errors."""

    def __init__(self, message: str = "Page engine error"):
        self.message = message
        super().__init__(self.message)


class TransportError(DynPageError):
    """
    Raised when a remote call fails.

    Covers network errors, non-2xx responses, and 2xx plain-text bodies
    that carry an error message. Callers inside the engine catch this,
    notify the user, and degrade the affected list to empty.
    """

    def __init__(
        self,
        message: str = "Request failed",
        status_code: int | None = None,
        url: str | None = None,
        method: str | None = None,
    ):
        self.status_code = status_code
        self.url = url
        self.method = method
        super().__init__(message)


class DescriptorError(DynPageError):
    """Raised when a page descriptor cannot be parsed at all."""

    def __init__(self, message: str = "Invalid page descriptor"):
        super().__init__(message)


class FormValidationError(DynPageError):
    """
    Raised when a form fails local validation before submission.

    Attributes:
        errors: Mapping of form key to error message
    """

    def __init__(self, errors: dict[str, str]):
        self.errors = errors
        fields = ", ".join(sorted(errors))
        super().__init__(f"Missing required fields: {fields}")
