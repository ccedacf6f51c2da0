"""Exceptions for registry synchronization."""

from __future__ import annotations

from enum import Enum

__all__ = [
    "ConfigError",
    "EngineError",
    "EngineStreamError",
    "PruneError",
    "SyncError",
    "SyncStep",
]


class SyncStep(Enum):
    """The steps of a single image synchronization, in order."""

    PULL = "pull"
    TAG = "tag"
    PUSH = "push"


class ConfigError(Exception):
    """Configuration could not be read, fetched, parsed, or validated."""

    def __init__(self, location: str, cause: str) -> None:
        super().__init__(f"Cannot load config from {location}: {cause}")
        self.location = location
        self.cause = cause


class EngineError(Exception):
    """A call to the container engine failed."""


class EngineStreamError(EngineError):
    """The container engine reported an error inside a progress stream.

    Pull and push return HTTP 200 and then report failures (bad
    credentials, unknown manifest, and so forth) as a message in the
    streamed JSON body, so these only show up once the stream is drained.
    """


class SyncError(Exception):
    """One step of an image synchronization failed.

    Parameters
    ----------
    step
        Step that failed.
    reference
        Image reference the step was operating on.
    cause
        Underlying error.
    """

    def __init__(
        self, step: SyncStep, reference: str, cause: Exception | str
    ) -> None:
        self.step = step
        self.reference = reference
        self.cause = str(cause)
        super().__init__(f"{step.value} failed: {self.cause}")


class PruneError(Exception):
    """Local images could not be listed for pruning."""
