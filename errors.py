"""
Royalty Reconciler — Error Types

Data-shape problems (unclassifiable text, junk rows, invalid candidates) are
never raised; they degrade to `unknown` / None / empty lists. Only
programmer errors at the extractor boundary surface as exceptions.
"""
from __future__ import annotations


class RoyaltyReconError(Exception):
    """Base class for errors raised by this package."""


class SourceValidationError(RoyaltyReconError, ValueError):
    """A required source argument was missing or of an unsupported type."""

    def __init__(self, message: str, source_type: str | None = None):
        super().__init__(message)
        self.source_type = source_type
