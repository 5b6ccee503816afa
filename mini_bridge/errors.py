# mini_bridge/errors.py
"""
Error taxonomy for the analysis core.

Every error carries the context needed to act on it without re-running
the analysis: the construction stage, the section location (chainage) and
the vehicle, whichever apply.

    InvalidGeometryError  malformed or kinematically unstable model, raised
                          before any assembly happens
    SingularityError      numerical failure inside a solve
    CancelledError        cooperative cancellation was observed
    PlanLimitError        request is larger than the caller's tier allows

Out-of-range engineering values are not exceptions: they are collected as
LimitExceedance records next to otherwise valid results.
"""

from dataclasses import dataclass
from typing import Optional


class BridgeAnalysisError(Exception):
    """Base class. Keyword context is appended to the message."""

    def __init__(
        self,
        message: str,
        *,
        stage: Optional[str] = None,
        section: Optional[float] = None,
        vehicle: Optional[str] = None,
    ):
        self.stage = stage
        self.section = section
        self.vehicle = vehicle
        super().__init__(message)

    @property
    def context(self) -> dict:
        return {
            key: value
            for key, value in (
                ('stage', self.stage),
                ('section', self.section),
                ('vehicle', self.vehicle),
            )
            if value is not None
        }

    def __str__(self) -> str:
        base = super().__str__()
        ctx = self.context
        if not ctx:
            return base
        details = ", ".join(f"{k}={v}" for k, v in ctx.items())
        return f"{base} ({details})"


class InvalidGeometryError(BridgeAnalysisError, ValueError):
    """Raised when the model is malformed or cannot be stable."""
    pass


class SingularityError(BridgeAnalysisError, RuntimeError):
    """Raised when the stiffness matrix is singular or not positive-definite."""
    pass


class CancelledError(BridgeAnalysisError):
    """Raised when a cancellation request is observed between work units."""
    pass


class PlanLimitError(BridgeAnalysisError):
    """Raised when a request exceeds the caller's allowed execution tier."""
    pass


@dataclass(frozen=True)
class LimitExceedance:
    """
    A stress, loss or rating value outside its expected engineering range.

    Reported as a warning alongside the results, never fatal on its own.
    """
    kind: str               # 'stress', 'loss', 'rating'
    message: str
    value: float
    limit: float
    stage: Optional[str] = None
    section: Optional[float] = None
    vehicle: Optional[str] = None

    def as_dict(self) -> dict:
        return {
            'kind': self.kind,
            'message': self.message,
            'value': self.value,
            'limit': self.limit,
            'stage': self.stage,
            'section': self.section,
            'vehicle': self.vehicle,
        }
