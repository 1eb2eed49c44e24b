"""
Base Contracts and Shared Types

Foundational types used across all layers of the store.
All types here are IMMUTABLE and represent pure data.

BOUNDARY ENFORCEMENT:
=====================
- This module is READ-ONLY from all layers
- Layers may import types but MUST NOT modify this module
- Errors are data; exceptions are reserved for the fatal class
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, auto
from typing import Callable, Tuple
import uuid


# =============================================================================
# ERROR STATES
# =============================================================================

class ErrorCode(Enum):
    """
    Explicit error codes for queryable error handling.
    Every non-fatal anomaly the store can report is enumerated here.
    """
    # Initial projection
    INVALID_INITIAL_PROJECTION = auto()

    # Replay and caching
    SNAPSHOT_DRIFT = auto()
    NON_DETERMINISTIC_REPLAY = auto()

    # Log consistency
    UNNORMALIZED_PAIR_KEY = auto()
    STALE_MILESTONE = auto()

    # Storage
    STORE_CORRUPTION = auto()
    STORE_NOT_FOUND = auto()
    STORE_WRITE_FAILED = auto()


@dataclass(frozen=True)
class Error:
    """
    Immutable error representation with full context.
    Errors are data, not exceptions - they can be stored and queried.
    """
    code: ErrorCode
    message: str
    timestamp: datetime
    context: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    @staticmethod
    def create(code: ErrorCode, message: str, **context: object) -> Error:
        return Error(
            code=code,
            message=message,
            timestamp=datetime.now(timezone.utc),
            context=tuple((key, str(value)) for key, value in sorted(context.items())),
        )


class InvalidProjectionError(ValueError):
    """
    Raised when an initial projection is structurally invalid.

    This is the one fatal class of error in the store: it fails at
    set-time instead of being tolerated through every later fold.
    """

    def __init__(self, error: Error):
        super().__init__(error.message)
        self.error = error


# =============================================================================
# IDENTITY AND CLOCK
# =============================================================================

Clock = Callable[[], int]


def generate_event_id() -> str:
    """Generate a unique event identifier."""
    return str(uuid.uuid4())

