"""
Error taxonomy for the time-travel analyser.

  - ElectionDataUnavailable — the voter / target providers could not
    enumerate the election data.  Never retried here.
  - SnapshotError — a stored snapshot is missing or does not read back
    with the counts that were written.
  - SolverFailure — a solver could not produce a solution, or the
    solution failed re-validation (FeasibilityError).
  - PreconditionViolation — the caller broke a hard precondition
    (wrong number of states for the ledger checks, a ledger that
    cannot be found during the migration simulation).
  - RpcError — the acquisition endpoint failed or answered with a
    JSON-RPC error object.

Structural inconsistencies found by the ledger checker are *not*
errors; they are fields of the report.
"""

from __future__ import annotations


class TimetravelError(Exception):
    """Base class for every error raised by timetravel_core."""


class ElectionDataUnavailable(TimetravelError):
    """The election data providers failed to enumerate voters or targets."""


class SnapshotError(TimetravelError):
    """The election snapshot is missing or inconsistent with its metadata."""


class SolverFailure(TimetravelError):
    """A solver could not produce a feasible solution."""


class FeasibilityError(SolverFailure):
    """A mined solution did not survive re-validation against its snapshot."""

    def __init__(self, reason: str, detail: str = ""):
        self.reason = reason
        self.detail = detail
        msg = f"feasibility check failed: {reason}"
        if detail:
            msg = f"{msg} ({detail})"
        super().__init__(msg)


class PreconditionViolation(TimetravelError):
    """A hard precondition of an operation does not hold."""


class RpcError(TimetravelError):
    """The acquisition endpoint failed or returned a JSON-RPC error."""

    def __init__(self, message: str, code: int | None = None):
        self.code = code
        super().__init__(message if code is None else f"[{code}] {message}")
