"""Iterative sparse linear solvers used by the linear surface mappers.

Both solvers share one narrow interface: construct with an iteration cap and a
tolerance, then ``solve(A, b, x0)`` returns a `SolverResult` holding the
solution, the iteration count and the final relative residual. A solve that
hits the iteration cap is not an error; the best iterate is returned and
``converged`` is False.
"""
from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Callable, Optional
from numpy.typing import NDArray

import numpy as np
import scipy.sparse as sp
import scipy.sparse.linalg as spla

_LOGGER = logging.getLogger(__name__)

#: Relative residual tolerance used when none (or a non-positive one) is set.
DEFAULT_TOLERANCE = 1e-12


@dataclass(frozen=True)
class SolverResult:
    """Outcome of an iterative solve.

    Attributes:
        x: Solution, same shape as the right-hand side.
        iterations: Number of iterations (maximum over right-hand side columns).
        error: Relative residual ``|b - A x| / |b|`` (maximum over columns).
        converged: Whether every column met the tolerance.
    """

    x: NDArray[Any]
    iterations: int
    error: float
    converged: bool


class IterationCounter:
    """Callback counting the iterations of a SciPy Krylov solver."""

    def __init__(self) -> None:
        self.niter = 0

    def __call__(self, xk: Any = None) -> None:
        self.niter += 1


def jacobi_preconditioner(A: sp.spmatrix) -> spla.LinearOperator:
    """Return the inverse diagonal of `A` as a linear operator.

    Rows with a zero diagonal are left unscaled.
    """
    d = np.asarray(A.diagonal(), dtype=float)
    inv = np.where(np.abs(d) > 0.0, 1.0 / np.where(d == 0.0, 1.0, d), 1.0)
    return spla.LinearOperator(
        A.shape, matvec=lambda v: inv * np.ravel(v), dtype=float
    )


def relative_residual(A: sp.spmatrix, b: NDArray[Any], x: NDArray[Any]) -> float:
    """Return ``|b - A x| / |b|``, or ``|A x|`` when b is zero."""
    r = float(np.linalg.norm(b - A @ x))
    nb = float(np.linalg.norm(b))
    return r / nb if nb > 0.0 else r


class _KrylovSolver:
    """Shared driver for SciPy Krylov methods solving one column at a time."""

    name = "krylov"
    _method: Callable[..., Any]

    def __init__(self, max_iterations: int = 0, tolerance: float = 0.0) -> None:
        self.max_iterations = int(max_iterations)
        self.tolerance = float(tolerance)

    def effective_max_iterations(self, n: int) -> int:
        """Iteration cap for an n×n system; defaults to 2n."""
        return self.max_iterations if self.max_iterations > 0 else max(2 * n, 1)

    def effective_tolerance(self) -> float:
        return self.tolerance if self.tolerance > 0.0 else DEFAULT_TOLERANCE

    def solve(
        self,
        A: sp.spmatrix,
        b: NDArray[Any],
        x0: Optional[NDArray[Any]] = None,
    ) -> SolverResult:
        """Solve ``A x = b`` starting from `x0` (zero if None).

        Args:
            A: Square sparse matrix, shape (n, n).
            b: Right-hand side, shape (n,) or (n, m).
            x0: Initial guess with the shape of `b`.

        Returns:
            SolverResult with `x` shaped like `b`.
        """
        A = sp.csr_matrix(A)
        b = np.asarray(b, dtype=float)
        n = A.shape[0]
        if A.shape[1] != n or b.shape[0] != n:
            raise ValueError(
                f"{self.name}: incompatible shapes A={A.shape}, b={b.shape}"
            )
        x0 = np.zeros_like(b) if x0 is None else np.asarray(x0, dtype=float)
        if x0.shape != b.shape:
            raise ValueError(f"{self.name}: x0 shape {x0.shape} != b shape {b.shape}")

        B = b[:, None] if b.ndim == 1 else b
        X0 = x0[:, None] if x0.ndim == 1 else x0
        X = X0.copy()
        if n == 0:
            return SolverResult(
                x=X.reshape(b.shape), iterations=0, error=0.0, converged=True
            )

        maxiter = self.effective_max_iterations(n)
        rtol = self.effective_tolerance()
        M = jacobi_preconditioner(A)

        iterations = 0
        error = 0.0
        converged = True
        for col in range(B.shape[1]):
            counter = IterationCounter()
            x, info = self._method(
                A,
                B[:, col],
                x0=X0[:, col],
                rtol=rtol,
                atol=0.0,
                maxiter=maxiter,
                M=M,
                callback=counter,
            )
            if info < 0:
                _LOGGER.warning(
                    "%s: breakdown in column %d (info=%d); keeping last iterate.",
                    self.name,
                    col,
                    info,
                )
            X[:, col] = x
            iterations = max(iterations, counter.niter)
            col_error = relative_residual(A, B[:, col], x)
            error = max(error, col_error)
            if info != 0 and col_error > rtol:
                converged = False

        if not converged:
            _LOGGER.info(
                "%s: not converged after %d iteration(s) (error=%.3e, tolerance=%.3e).",
                self.name,
                iterations,
                error,
                rtol,
            )
        return SolverResult(
            x=X.reshape(b.shape),
            iterations=iterations,
            error=error,
            converged=converged,
        )


class ConjugateGradientSolver(_KrylovSolver):
    """Jacobi-preconditioned conjugate gradients for symmetric positive systems.

    Args:
        max_iterations (int): Iteration cap; non-positive selects 2n.
        tolerance (float): Relative residual tolerance; non-positive selects
            `DEFAULT_TOLERANCE`.
    """

    name = "ConjugateGradientSolver"
    _method = staticmethod(spla.cg)


class BiCGStabSolver(_KrylovSolver):
    """Jacobi-preconditioned BiCGSTAB for non-symmetric systems.

    Args:
        max_iterations (int): Iteration cap; non-positive selects 2n.
        tolerance (float): Relative residual tolerance; non-positive selects
            `DEFAULT_TOLERANCE`.
    """

    name = "BiCGStabSolver"
    _method = staticmethod(spla.bicgstab)
