"""Exception hierarchy for the deconstruction pipeline."""

from typing import Optional


class DeconstructorError(Exception):
    """Base class for all pipeline errors."""


class ParseError(DeconstructorError):
    """Source text could not be parsed into a syntax tree.

    Fatal: no units can be produced, so the run aborts.
    """


class BackendError(DeconstructorError):
    """A language-model backend call failed.

    Retryable up to a fixed ceiling by the orchestrator.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ArtifactError(DeconstructorError):
    """A required artifact could not be read or written."""


# Client errors worth retrying: request timeout and rate limiting
RETRYABLE_CLIENT_STATUSES = frozenset({408, 429})


def is_retryable(error: BackendError) -> bool:
    """Whether another attempt could succeed.

    Client errors (4xx) other than timeouts and rate limits fail the same way
    on every attempt; transport failures and server errors may not.
    """
    status = error.status_code
    if status is None or not 400 <= status < 500:
        return True
    return status in RETRYABLE_CLIENT_STATUSES
