"""Domain exceptions for the task submission pipeline."""

from typing import Optional


class DomainException(Exception):
    """
    Base exception for all domain errors.

    ``uuid`` names the remote task the failure left behind, when one exists.
    """

    uuid: Optional[str] = None


class TransportError(DomainException):
    """Raised when a single call to the processing node fails transiently."""
    pass


class DownloadError(TransportError):
    """Raised when a download attempt returns an empty or incomplete file."""
    pass


class UnauthorizedError(DomainException):
    """Raised when the node rejects the request's credentials."""
    pass


class AuthRequiredError(UnauthorizedError):
    """Raised when the node requires a token and none was given."""
    pass


class ServiceRejectedError(DomainException):
    """Raised when the node explicitly reports an error for a request."""
    pass


class RetryExhaustedError(DomainException):
    """Raised when a bounded retry loop runs out of attempts."""

    def __init__(self, message: str, attempts: int = 0, last_error: Optional[BaseException] = None):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


class UploadError(RetryExhaustedError):
    """Raised when a file cannot be uploaded within the retry limit."""

    def __init__(
        self,
        message: str,
        uuid: Optional[str] = None,
        attempts: int = 0,
        last_error: Optional[BaseException] = None
    ):
        super().__init__(message, attempts=attempts, last_error=last_error)
        self.uuid = uuid


class TaskFailedError(DomainException):
    """Raised when a task reaches a terminal state other than completed."""

    def __init__(self, uuid: str, status):
        super().__init__(f"Task {uuid} ended with status {status.name.lower()}")
        self.uuid = uuid
        self.status = status


class LocalEnvironmentError(DomainException):
    """Raised when a local filesystem operation fails."""
    pass


class ConfigurationError(DomainException):
    """Raised when configuration is invalid."""
    pass
