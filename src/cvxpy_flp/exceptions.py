"""Exception types raised by cvxpy-flp."""

from __future__ import annotations


class FacilityLocationError(Exception):
    """Base class for all cvxpy-flp errors."""


class ModelValidationError(FacilityLocationError, ValueError):
    """Raised when input data cannot form a valid facility-location model.

    This is always raised before the solver is called.
    """


class SolverError(FacilityLocationError, RuntimeError):
    """Raised when the solver returns no usable solution.

    Parameters
    ----------
    status : str
        The status reported by cvxpy (e.g. ``"infeasible"``,
        ``"unbounded"``, ``"user_limit"``, ``"solver_error"``).
    message : str, optional
        Extra detail, such as the text of the underlying cvxpy error.
    """

    def __init__(self, status: str, message: str | None = None):
        self.status = status
        text = f"Solver finished with status '{status}'"
        if message:
            text = f"{text}: {message}"
        super().__init__(text)
