"""Error reporting facility for the annealing core.

Two paths, mirroring how a solver treats bad input:

- abort: contract violations (shape mismatches, out-of-range bit widths).
  These indicate a bug in the caller and are not meant to be caught.
- throw: configuration errors (not-ready annealer, asymmetric matrix,
  malformed schedule). The caller fixes the configuration and retries.

Both raise :class:`SolverError`; the ``kind`` tells them apart. The reporter
is passed into annealers, models and searchers rather than living as
process-wide state.
"""

from __future__ import annotations

import enum
import logging

logger = logging.getLogger(__name__)


class ErrorKind(enum.Enum):
    """Category of a solver error."""

    # contract violations (abort path)
    INVALID_LENGTH = "invalid-length"
    SHAPE_MISMATCH = "shape-mismatch"
    INVALID_STATE = "invalid-state"
    # configuration errors (throwing path)
    NOT_CONFIGURED = "not-configured"
    ASYMMETRIC_MATRIX = "asymmetric-matrix"
    MALFORMED_SCHEDULE = "malformed-schedule"
    INVALID_ARGUMENT = "invalid-argument"

    @property
    def recoverable(self) -> bool:
        return self in _RECOVERABLE


_RECOVERABLE = frozenset(
    {
        ErrorKind.NOT_CONFIGURED,
        ErrorKind.ASYMMETRIC_MATRIX,
        ErrorKind.MALFORMED_SCHEDULE,
        ErrorKind.INVALID_ARGUMENT,
    }
)


class SolverError(ValueError):
    """Error raised by the annealing core, tagged with an :class:`ErrorKind`."""

    def __init__(self, kind: ErrorKind, message: str) -> None:
        super().__init__(f"[{kind.value}] {message}")
        self.kind = kind
        self.message = message

    @property
    def recoverable(self) -> bool:
        return self.kind.recoverable


class ErrorReporter:
    """Fail-fast reporter used by the core instead of raising directly."""

    def abort(self, kind: ErrorKind, message: str) -> None:
        logger.critical("%s: %s", kind.value, message)
        raise SolverError(kind, message)

    def abort_if(self, cond: bool, kind: ErrorKind, message: str) -> None:
        if cond:
            self.abort(kind, message)

    def throw(self, kind: ErrorKind, message: str) -> None:
        logger.warning("%s: %s", kind.value, message)
        raise SolverError(kind, message)

    def throw_if(self, cond: bool, kind: ErrorKind, message: str) -> None:
        if cond:
            self.throw(kind, message)


default_reporter = ErrorReporter()
