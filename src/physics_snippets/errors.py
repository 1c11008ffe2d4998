"""
Exception hierarchy for physics_snippets.

Packing and dynamics errors are unrecoverable and abort a run immediately.
Integration errors carry whatever was computed before the failure so that
callers can still inspect the partial trajectory. Validation threshold
breaches are not exceptions at all; they are reported as failed entries of a
:class:`~physics_snippets.validation.Report`.
"""

from typing import Optional, TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from .trajectory import Trajectory


class SimulationError(Exception):
    """Base class for all errors raised by the simulation harness."""


class UnitMismatchError(SimulationError, ValueError):
    """A physical quantity was supplied with the wrong dimension."""

    def __init__(self, message: str, expected: Optional[str] = None,
                 got: Optional[str] = None):
        super().__init__(message)
        self.expected = expected
        self.got = got


class SingularityError(SimulationError, ArithmeticError):
    """Dynamics were evaluated at an undefined point (e.g. ``|r| == 0``)."""

    def __init__(self, message: str, t: Optional[float] = None):
        super().__init__(message)
        self.t = t


class IntegrationError(SimulationError, RuntimeError):
    """
    Integration stopped before reaching the end of its time span.

    Attributes
    ----------
    time : float
        Time at which the failure was detected
    last_state : np.ndarray
        Last state that was fully valid
    trajectory : Trajectory or None
        Partial trajectory recorded up to the failure
    """

    def __init__(self, message: str, time: float, last_state: np.ndarray,
                 trajectory: "Optional[Trajectory]" = None):
        super().__init__(message)
        self.time = float(time)
        self.last_state = np.array(last_state, dtype=float)
        self.trajectory = trajectory


class IntegrationDivergedError(IntegrationError):
    """A non-finite derivative or state was produced during stepping."""


class StepBudgetExceededError(IntegrationError):
    """The internal step-count budget ran out before the end time."""
