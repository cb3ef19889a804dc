"""
Exception taxonomy for the query pipeline.

Every error here is local and recoverable by the user retrying:
  QueryValidationError  -- rejected before any collaborator is contacted
  UpstreamQueryError    -- the query service failed or returned garbage
  ExportError           -- export / snapshot operations failed
"""
from __future__ import annotations

from enum import Enum


class RejectionReason(str, Enum):
    MISSING_DATE = "MissingDate"
    INVERTED_RANGE = "InvertedRange"
    RANGE_TOO_WIDE = "RangeTooWide"
    EMPTY_SELECTION = "EmptySelection"


class TrackLensError(Exception):
    """Base class for all pipeline errors."""


class QueryValidationError(TrackLensError):
    def __init__(self, reason: RejectionReason, message: str):
        super().__init__(message)
        self.reason = reason
        self.message = message

    def __repr__(self) -> str:
        return f"QueryValidationError(reason={self.reason.value!r}, message={self.message!r})"


class UpstreamQueryError(TrackLensError):
    """The external query service failed; surfaced as-is, never retried."""


class ExportError(TrackLensError):
    """An export or snapshot operation failed."""

    @property
    def is_upstream(self) -> bool:
        """True when a collaborator failed, False for a rejected request."""
        return self.__cause__ is not None


class SeriesAlignmentError(ValueError):
    """Series handed to the combiner do not share the same buckets."""
