"""
Error taxonomy for token tracking.

Every failure raised by the tracker, registry or providers is a
TokenTrackerError carrying a kind, a message and an optional cause.
"""

from enum import Enum
from typing import List, Optional, Tuple


class ErrorKind(Enum):
    """Kinds of token tracking failures."""
    INVALID_MODEL = "invalid_model"
    INVALID_PARAMS = "invalid_params"
    PROVIDER_NOT_FOUND = "provider_not_found"
    TOKENIZATION_FAILED = "tokenization_failed"
    PRICING_NOT_FOUND = "pricing_not_found"
    PRICING_UPDATE_FAILED = "pricing_update_failed"


class TokenTrackerError(Exception):
    """Structured error raised by token tracking operations.

    The optional cause is kept both on ``cause`` and as ``__cause__`` so
    standard traceback chaining shows it.
    """

    def __init__(self, kind: ErrorKind, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.cause = cause
        self.__cause__ = cause
        # Populated by aggregate operations that collect every failure
        self.failures: List[Tuple[str, BaseException]] = []

    def __str__(self) -> str:
        if self.cause is not None:
            return f"{self.kind.value}: {self.message} (cause: {self.cause})"
        return f"{self.kind.value}: {self.message}"

    def __repr__(self) -> str:
        return f"TokenTrackerError(kind={self.kind.name}, message={self.message!r})"


def is_kind(error: Optional[BaseException], kind: ErrorKind) -> bool:
    """Check whether an error, or anything in its cause chain, has the given kind."""
    seen = set()
    while error is not None and id(error) not in seen:
        seen.add(id(error))
        if isinstance(error, TokenTrackerError) and error.kind == kind:
            return True
        error = error.__cause__
    return False
