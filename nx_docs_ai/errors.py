"""
Error Types

Two failure families reach callers of the assistant:

- UserError: the query is at fault (empty, flagged by moderation, nothing
  relevant in the docs). Safe to show to the user.
- ApplicationError: an upstream service or the deployment is at fault
  (bad credentials, non-success status, unexpected payload). Carries the raw
  diagnostic payload in ``data``.

Every error carries an ErrorKind so callers that receive a QueryFailure
(instead of an exception) can branch on ``failure.kind``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Discriminator for assistant failures."""

    USER = "user"
    APPLICATION = "application"
    CONFIGURATION = "configuration"
    UNEXPECTED = "unexpected"


class AssistantError(Exception):
    """Base class for typed assistant errors."""

    kind: ErrorKind = ErrorKind.UNEXPECTED

    def __init__(self, message: str, data: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.data = data

    def to_failure(self) -> "QueryFailure":
        return QueryFailure(kind=self.kind, message=self.message, data=self.data)


class UserError(AssistantError):
    """The caller's query was rejected."""

    kind = ErrorKind.USER


class ApplicationError(AssistantError):
    """An upstream or infrastructure failure."""

    kind = ErrorKind.APPLICATION


class ConfigurationError(ApplicationError):
    """A required configuration value is missing."""

    kind = ErrorKind.CONFIGURATION


@dataclass
class QueryFailure:
    """
    A failed query, returned as a value rather than raised.

    Attributes:
        kind: Which family the failure belongs to
        message: Human readable message
        data: Optional diagnostic payload (never set for user errors
              raised by the pipeline except moderation categories)
    """

    kind: ErrorKind
    message: str
    data: Optional[Any] = None

    @property
    def is_user_error(self) -> bool:
        return self.kind == ErrorKind.USER

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "data": self.data,
        }

    @classmethod
    def from_exception(cls, error: BaseException) -> "QueryFailure":
        """Build a failure from any exception, typed or not."""
        if isinstance(error, AssistantError):
            return error.to_failure()
        return cls(
            kind=ErrorKind.UNEXPECTED,
            message=str(error) or error.__class__.__name__,
        )
