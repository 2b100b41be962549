"""Error taxonomy shared by the CLI, the worker and the HTTP service."""

from typing import Optional


class StaleContainerError(Exception):
    """Base class for all errors raised by stale-container."""

    http_status: int = 500


class InvalidImageReference(StaleContainerError, ValueError):
    """The image reference cannot be parsed."""

    http_status = 400


class PrefixMismatch(StaleContainerError, ValueError):
    """A tag does not start with the configured tag prefix."""

    http_status = 400

    def __init__(self, tag: str, prefix: str):
        self.tag = tag
        self.prefix = prefix
        super().__init__(f"The tag '{tag}' doesn't start with the tag prefix '{prefix}'")


class InvalidVersion(StaleContainerError, ValueError):
    """A tag is not a valid semantic version."""

    http_status = 400


class InvalidConstraint(StaleContainerError, ValueError):
    """A constraint expression is malformed."""

    http_status = 400


class RegistryUnavailable(StaleContainerError):
    """The registry could not be reached or refused to list tags."""

    http_status = 502


class CacheUnavailable(StaleContainerError):
    """The cache store failed to read or write a key."""

    http_status = 500


class JobNotFound(StaleContainerError):
    """Neither a queued marker nor an evaluation exists for a job id."""

    http_status = 404


class EvaluationExpired(StaleContainerError):
    """The evaluation for a job id is absent or expired."""

    http_status = 404


class RemoteEvaluationError(StaleContainerError):
    """A remote server answered with an unexpected response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class RemoteEvaluationTimeout(RemoteEvaluationError):
    """The caller's deadline passed before the remote evaluation was ready."""
