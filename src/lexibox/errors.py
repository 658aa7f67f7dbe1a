"""Exception types raised by the trainer."""
from enum import Enum


class LexiboxError(Exception):
    """Base class for all trainer errors."""


class ValidationError(LexiboxError):
    """Input rejected before any state was written."""


class InvalidWordError(ValidationError):
    pass


class DuplicateWordError(ValidationError):
    def __init__(self, word: str, source_language: str):
        super().__init__(f"'{word}' already exists for {source_language}")
        self.word = word
        self.source_language = source_language


class PersistenceError(LexiboxError):
    """A store write or read failed."""


class GenerationErrorKind(str, Enum):
    INVALID_CONFIG = "invalid_config"
    AUTH_REQUIRED = "auth_required"
    RATE_LIMITED = "rate_limited"
    NETWORK_ERROR = "network_error"
    DECODE_ERROR = "decode_error"
    SERVER_ERROR = "server_error"


class GenerationError(LexiboxError):
    """The external content or question generator failed."""

    def __init__(self, kind: GenerationErrorKind, message: str = ""):
        super().__init__(message or kind.value)
        self.kind = kind
