"""
gangledger.errors — Ledger error taxonomy
==========================================

Every service raises one of these so the bot and the API can map failures
to a user-facing rejection without inspecting driver exceptions.

- :class:`NotFoundError` — referenced member or gang does not exist.
- :class:`ValidationError` — malformed delta, category, or date range.
  Raised before any side effect.
- :class:`ConflictError` — optimistic-concurrency retries exhausted.
- :class:`StoreUnavailableError` — the database could not be reached.
  Nothing was written.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for all ledger failures."""


class NotFoundError(LedgerError):
    """A member or gang that must exist was not found."""

    def __init__(self, kind: str, key: str) -> None:
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} {key!r} not found")


class ValidationError(LedgerError):
    """Input rejected before anything was written."""


class ConflictError(LedgerError):
    """Concurrent writers kept invalidating the same row."""

    def __init__(self, key: str, attempts: int) -> None:
        self.key = key
        self.attempts = attempts
        super().__init__(f"Gave up on {key!r} after {attempts} conflicting attempts")


class StoreUnavailableError(LedgerError):
    """The underlying database is unreachable."""
