"""
Numerical Solver Interface
==========================

The batch optimizer only talks to solvers through ``QuadraticSolver``:
a ``ProblemFormulation`` goes in, a ``SolverOutcome`` comes out. Any
QP/LP backend that understands a quadratic objective, linear equality
constraints and box bounds can sit behind it.

``ScipySolver`` is the shipped backend. It runs SciPy's SLSQP with
analytic gradients and, when SLSQP gives up, asks the HiGHS linear
programming solver whether the constraint set is feasible at all so
that genuinely impossible targets are reported as ``infeasible``
rather than ``solver_error``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

import numpy as np
from scipy.optimize import linprog, minimize

from mv_frontier.core.problem import ProblemFormulation


class SolveStatus(str, Enum):
    """Outcome of one solve: solved, infeasible or solver_error."""

    SOLVED = 'solved'
    INFEASIBLE = 'infeasible'
    SOLVER_ERROR = 'solver_error'


@dataclass(frozen=True)
class SolverOutcome:
    """Raw answer of a solver backend (weights only when solved)."""

    status: SolveStatus
    weights: Optional[Tuple[float, ...]] = None
    message: str = ''


# SLSQP exit mode 8: positive directional derivative for linesearch
_SLSQP_POSITIVE_DIRECTIONAL_DERIVATIVE = 8


class QuadraticSolver:
    """
    Base class for solver backends.

    Subclasses implement ``solve``. ``thread_safe`` tells the batch
    optimizer whether instances may run concurrently inside one process.
    """

    thread_safe = False

    def solve(
        self,
        formulation: ProblemFormulation,
        x0: Optional[np.ndarray] = None
    ) -> SolverOutcome:
        """Solve a formulation, optionally from the start weights x0."""
        raise NotImplementedError


def clean_weights(weights: np.ndarray, bounds) -> np.ndarray:
    """
    Clip weights into their bounds and rescale them to sum to one.

    Removes the tiny bound violations (e.g. -1e-13) that SLSQP leaves
    behind.
    """
    lower = np.array([b[0] for b in bounds], dtype=float)
    upper = np.array([b[1] for b in bounds], dtype=float)
    w = np.clip(np.asarray(weights, dtype=float), lower, upper)
    total = w.sum()
    if total > 0:
        w = w / total
    return w


class ScipySolver(QuadraticSolver):
    """
    SLSQP backend built on ``scipy.optimize.minimize``.

    Args:
        max_iter: SLSQP iteration bound
        ftol: SLSQP objective tolerance
        feasibility_tol: Largest constraint residual accepted as solved
    """

    def __init__(
        self,
        max_iter: int = 500,
        ftol: float = 1e-12,
        feasibility_tol: float = 1e-6
    ):
        self.max_iter = max_iter
        self.ftol = ftol
        self.feasibility_tol = feasibility_tol

    def solve(
        self,
        formulation: ProblemFormulation,
        x0: Optional[np.ndarray] = None
    ) -> SolverOutcome:
        """Minimize with SLSQP from x0 (equal weights by default)."""
        n = formulation.n_vars
        if x0 is None:
            x0 = np.ones(n) / n

        eq_matrix = formulation.eq_matrix
        eq_vector = formulation.eq_vector
        constraints = [{
            'type': 'eq',
            'fun': lambda w: eq_matrix @ w - eq_vector,
            'jac': lambda w: eq_matrix,
        }]

        try:
            result = minimize(
                formulation.objective,
                np.asarray(x0, dtype=float),
                jac=formulation.gradient,
                method='SLSQP',
                bounds=list(formulation.bounds),
                constraints=constraints,
                options={'ftol': self.ftol, 'maxiter': self.max_iter}
            )
        except (ValueError, ArithmeticError, np.linalg.LinAlgError) as e:
            return SolverOutcome(SolveStatus.SOLVER_ERROR, message=f"SLSQP raised: {e}")

        converged = result.success or result.status == _SLSQP_POSITIVE_DIRECTIONAL_DERIVATIVE
        raw = np.asarray(result.x, dtype=float)

        if converged and np.all(np.isfinite(raw)):
            weights = clean_weights(raw, formulation.bounds)
            if formulation.residual(weights) <= self.feasibility_tol:
                return SolverOutcome(
                    SolveStatus.SOLVED,
                    weights=tuple(float(v) for v in weights),
                    message=str(result.message)
                )

        if not self.is_feasible(formulation):
            return SolverOutcome(
                SolveStatus.INFEASIBLE,
                message=f"Constraints cannot be satisfied ({result.message})"
            )
        return SolverOutcome(SolveStatus.SOLVER_ERROR, message=str(result.message))

    def is_feasible(self, formulation: ProblemFormulation) -> bool:
        """Check the constraint set alone with a zero-objective LP."""
        check = linprog(
            np.zeros(formulation.n_vars),
            A_eq=formulation.eq_matrix,
            b_eq=formulation.eq_vector,
            bounds=list(formulation.bounds),
            method='highs'
        )
        # status 2 == infeasible
        return check.status != 2
