# mini_bridge/kernel/solve.py
"""Linear system solver: penalty boundary conditions, Cholesky factorization, singularity detection."""

import logging
from dataclasses import dataclass
from typing import Iterable, Mapping, Union

import numpy as np
from scipy.linalg import LinAlgError, cho_factor, cho_solve

from ..errors import SingularityError

logger = logging.getLogger(__name__)

Prescribed = Union[Mapping[int, float], Iterable[int]]

# Penalty stiffness relative to the largest diagonal term of K. Prescribed
# values are met to a relative error of roughly 1 / PENALTY_SCALE.
PENALTY_SCALE = 1e10
PIVOT_TOL = 1e-14


def _as_prescribed(prescribed: Prescribed) -> dict:
    if isinstance(prescribed, Mapping):
        return {int(k): float(v) for k, v in prescribed.items()}
    return {int(k): 0.0 for k in prescribed}


@dataclass(frozen=True)
class FactoredSystem:
    """
    A penalized, Cholesky-factored stiffness matrix.

    Immutable: solving any number of right-hand sides leaves it untouched,
    so one factorization serves every unit-load case of a model.
    """
    K: np.ndarray
    factor: tuple
    prescribed: dict
    penalty: float

    @property
    def ndof(self) -> int:
        return self.K.shape[0]

    def solve(self, F: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """
        Solve for displacements and reactions.

        Args:
            F: Load vector (ndof,) or load matrix (ndof, nrhs)

        Returns:
            d: Displacements, same shape as F
            R: K_original @ d - F (support reactions at prescribed DOFs)
        """
        F = np.asarray(F, dtype=float)
        if F.shape[0] != self.ndof:
            raise ValueError(f"Load vector has {F.shape[0]} rows, system has {self.ndof} DOFs")

        rhs = F.copy()
        for i, value in self.prescribed.items():
            rhs[i] = rhs[i] + self.penalty * value

        d = cho_solve(self.factor, rhs)
        R = self.K @ d - F
        return d, R


def factorize(
    K: np.ndarray,
    prescribed: Prescribed,
    penalty_scale: float = PENALTY_SCALE,
    pivot_tol: float = PIVOT_TOL,
) -> FactoredSystem:
    """
    Impose prescribed DOFs by the penalty method and factor K.

    Each prescribed DOF gets a diagonal spring P = penalty_scale * max|diag(K)|
    (and a matching force P * value at solve time), which avoids any matrix
    resizing or reindexing.

    Raises:
        SingularityError: if the penalized matrix is not positive-definite or
            a Cholesky pivot is below pivot_tol * max|diag(K)|
    """
    K = np.asarray(K, dtype=float)
    ndof = K.shape[0]
    values = _as_prescribed(prescribed)

    for i in values:
        if not 0 <= i < ndof:
            raise ValueError(f"Prescribed DOF {i} outside system of {ndof} DOFs")

    scale = float(np.max(np.abs(np.diag(K)))) if ndof else 0.0
    if scale <= 0.0 or not np.isfinite(scale):
        raise SingularityError(f"Stiffness matrix has no positive diagonal terms (max={scale:.2e})")

    penalty = penalty_scale * scale
    Kp = K.copy()
    for i in values:
        Kp[i, i] += penalty

    try:
        c, lower = cho_factor(Kp, lower=False, check_finite=True)
    except (LinAlgError, ValueError) as e:
        raise SingularityError(
            f"Stiffness matrix is not positive-definite ({e}). Check supports and connectivity."
        ) from e

    pivots = np.diag(c) ** 2
    min_pivot = float(np.min(pivots))
    if min_pivot < pivot_tol * scale:
        dof = int(np.argmin(pivots))
        raise SingularityError(
            f"Near-zero pivot {min_pivot:.2e} at DOF {dof} (limit {pivot_tol * scale:.2e}). "
            f"Structure is unstable."
        )

    logger.debug("Factored %d DOFs, %d prescribed, penalty=%.2e", ndof, len(values), penalty)
    return FactoredSystem(K=K, factor=(c, lower), prescribed=values, penalty=penalty)


def solve_linear(
    K: np.ndarray,
    F: np.ndarray,
    prescribed: Prescribed,
    penalty_scale: float = PENALTY_SCALE,
    pivot_tol: float = PIVOT_TOL,
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Solve K·d = F with prescribed DOF values imposed by penalty.

    Args:
        K: Global stiffness matrix (ndof x ndof), before boundary conditions
        F: Global load vector (ndof,) or matrix (ndof, nrhs)
        prescribed: {dof: value} or a list of DOFs held at zero
        penalty_scale: Penalty stiffness relative to max|diag(K)|
        pivot_tol: Smallest accepted Cholesky pivot relative to max|diag(K)|

    Returns:
        d: Displacement vector
        R: Reaction vector (meaningful at prescribed DOFs)
        free: Array of DOF indices that are not prescribed

    Raises:
        SingularityError: If the structure is unstable
    """
    system = factorize(K, prescribed, penalty_scale, pivot_tol)
    d, R = system.solve(F)
    free = np.array([i for i in range(system.ndof) if i not in system.prescribed], dtype=int)
    return d, R, free
