"""Error kinds shared across duet.

ValidationError and NotFoundError are raised synchronously to the caller.
UpstreamError is recorded on the failing task by the orchestrator.
HistoryUnavailable never leaves the history source; it degrades to "no history".
"""

from __future__ import annotations


class DuetError(Exception):
    """Base class for all duet errors."""


class ValidationError(DuetError, ValueError):
    """Malformed input: blank prompt, bad capacity, bad timeout, bad message record."""


class NotFoundError(DuetError, LookupError):
    """Unknown task id."""


class UpstreamError(DuetError, RuntimeError):
    """Remote completion call failed or returned an unusable result."""


class HistoryUnavailable(DuetError):
    """Editor conversation history could not be located or parsed."""
