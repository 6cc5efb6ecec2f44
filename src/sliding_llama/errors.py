"""Exception types shared across the tokenizer, generation loop, and surfaces."""

from __future__ import annotations

from enum import Enum


class SlidingLlamaError(Exception):
    """Base class for every error raised by sliding-llama."""


class ConfigError(SlidingLlamaError, ValueError):
    """Raised when an engine configuration file is missing or invalid."""


class VocabErrorKind(str, Enum):
    MISSING = "missing"
    EMPTY = "empty"


class VocabError(SlidingLlamaError):
    """Raised when a vocabulary cannot be loaded. Fatal at startup.

    Attributes:
        kind: Whether the mapping was missing entirely or present but empty.
    """

    def __init__(self, kind: VocabErrorKind, message: str | None = None) -> None:
        self.kind = kind
        if message is None:
            message = (
                "Vocabulary mapping not found"
                if kind is VocabErrorKind.MISSING
                else "Vocabulary mapping has no entries"
            )
        super().__init__(message)


class ScorerError(SlidingLlamaError):
    """Raised when a scorer call fails. Recoverable at the request level."""


class ScorerTimeoutError(ScorerError):
    """Raised when a scorer call or model load exceeds its bounded wait."""

    def __init__(self, timeout: float, what: str = "Scorer call") -> None:
        self.timeout = timeout
        super().__init__(f"{what} timed out after {timeout:.1f}s")


class SessionBusyError(SlidingLlamaError):
    """Raised when a session already has a generation request in flight."""
