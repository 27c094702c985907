# release_conductor/errors.py
"""
Error taxonomy for the orchestration engine.

ConfigurationError, TransientExternalError and ExternalRejection are raised by
collaborators and classified onto the failing task. InvalidStateError marks a
data-integrity bug and must propagate.
"""

import asyncio
from enum import Enum


class ErrorKind(Enum):
    """Structured failure reason attached to a FAILED task."""

    CONFIGURATION = "configuration"
    TRANSIENT = "transient"
    REJECTION = "rejection"
    TIMEOUT = "timeout"


class ReleaseConductorError(Exception):
    """Base class for all engine errors."""

    kind: ErrorKind | None = None


class ConfigurationError(ReleaseConductorError):
    """Missing or invalid release configuration or integration mapping. Never auto-retried."""

    kind = ErrorKind.CONFIGURATION


class TransientExternalError(ReleaseConductorError):
    """Network or timeout failure talking to a collaborator. Eligible for bounded retry."""

    kind = ErrorKind.TRANSIENT


class ExternalRejection(ReleaseConductorError):
    """The external system definitively failed the request (e.g. build failed)."""

    kind = ErrorKind.REJECTION


class InvalidStateError(ReleaseConductorError):
    """Persisted state violates an invariant. Programming or data-integrity bug."""


class ActionNotAllowedError(ReleaseConductorError):
    """A user action is not legal in the release's current phase."""


class ReleaseNotFoundError(ReleaseConductorError):
    """No release (or task, or cycle) with the given identifier."""


def classify_error(exception: BaseException) -> ErrorKind:
    """
    Map an exception raised by a collaborator to an ErrorKind.

    Engine errors carry their own kind. Connection and timeout errors from
    client libraries are transient. Anything else is treated as a definitive
    rejection so that a human decides between retry and skip.
    """
    if isinstance(exception, ReleaseConductorError) and exception.kind is not None:
        return exception.kind

    if isinstance(exception, (ConnectionError, TimeoutError, asyncio.TimeoutError)):
        return ErrorKind.TRANSIENT

    return ErrorKind.REJECTION
