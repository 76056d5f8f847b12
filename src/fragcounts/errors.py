"""Exceptions raised by FragCounts.

Every error here is fatal for the run: the CLI reports it and exits non-zero.
Expected conditions such as duplicate or unassigned reads are never errors.
"""

from __future__ import annotations

from typing import Any, Optional


class FragCountsError(Exception):
    """Base class for all FragCounts errors."""


class InvalidFragmentError(FragCountsError, ValueError):
    """Raised when the fragment set is empty or contains a malformed interval."""

    def __init__(
        self,
        message: str,
        *,
        record: Any = None,
        index: Optional[int] = None,
        line: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.record = record
        self.index = index
        self.line = line


class ContigMismatchError(FragCountsError, ValueError):
    """Raised when a BAM and the fragment set share no chromosome names."""


class ReadSourceError(FragCountsError, RuntimeError):
    """Raised when a sample's read source cannot be opened or read.

    Picklable so that it crosses the process boundary of parallel counting intact.
    """

    def __init__(self, message: str, *, sample: Optional[str] = None, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.sample = sample
        self.path = path
