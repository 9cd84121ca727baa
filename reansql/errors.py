from __future__ import annotations

import typing as t

if t.TYPE_CHECKING:
    from reansql.gemini import GenerationAttempt


class ReanSQLError(RuntimeError):
    pass


class ConfigError(ReanSQLError):
    pass


class NoCredentialsError(ConfigError):
    pass


class ExtractionFailure(ReanSQLError):
    """Raised when text could not be pulled out of an uploaded document."""


class NoQuestionsFound(ReanSQLError):
    """Raised when a document parsed fine but held no numbered questions."""


class MalformedResponseError(ReanSQLError):
    pass


class StorageFailure(ReanSQLError):
    pass


class GenerationExhausted(ReanSQLError):
    """Every configured key failed for a single generation call.

    `last_attempt` is the final failed attempt; `attempts` holds all of them
    in the order they were made.
    """

    def __init__(self, message: str, *, attempts: list["GenerationAttempt"] | None = None) -> None:
        super().__init__(message)
        self.attempts = list(attempts or [])

    @property
    def last_attempt(self) -> "GenerationAttempt | None":
        return self.attempts[-1] if self.attempts else None
