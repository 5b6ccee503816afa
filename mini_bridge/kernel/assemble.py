# mini_bridge/kernel/assemble.py
"""
ASSEMBLY: Global Matrix Assembly
================================

Scatter-add of element contributions into the global stiffness matrix and
load vector. Assembly does not care about element TYPE: each contribution
is just a DOF map plus a matrix (or vector) already in global coordinates.

    K = zeros(ndof x ndof)
    for each element:
        for each (a, b) in element ke:
            K[dof_map[a], dof_map[b]] += ke[a, b]

The assembled K is symmetric positive semi-definite; it only becomes
positive-definite once the supports are imposed by the solver.
"""

import logging
from typing import List, Tuple

import numpy as np

logger = logging.getLogger(__name__)


def assemble_global_K(
    ndof: int,
    contributions: List[Tuple[List[int], np.ndarray]]
) -> np.ndarray:
    """
    Assemble the global stiffness matrix from element contributions.

    Parameters:
    -----------
    ndof : int
        Total number of DOFs in the system (6 x n_nodes for a frame model)

    contributions : List[Tuple[List[int], np.ndarray]]
        One (dof_map, ke) tuple per element:
        - dof_map: global DOF indices of the element (12 for a 2-node frame)
        - ke: element stiffness in GLOBAL coordinates, shape
          (len(dof_map), len(dof_map))

    Returns:
    --------
    np.ndarray
        Global stiffness matrix K, shape (ndof, ndof)
    """
    K = np.zeros((ndof, ndof), dtype=float)

    for dof_map, ke in contributions:
        n_element_dofs = len(dof_map)
        assert ke.shape == (n_element_dofs, n_element_dofs), \
            f"Element ke shape {ke.shape} doesn't match dof_map length {n_element_dofs}"

        idx = np.asarray(dof_map, dtype=int)
        K[np.ix_(idx, idx)] += ke

    logger.debug("Assembled K: %d DOFs from %d elements", ndof, len(contributions))
    return K


def assemble_global_F(
    ndof: int,
    contributions: List[Tuple[List[int], np.ndarray]]
) -> np.ndarray:
    """
    Assemble a global load vector from element contributions.

    Same scatter-add as assemble_global_K, used for the equivalent nodal
    loads of member loads and prestress.
    """
    F = np.zeros(ndof, dtype=float)

    for dof_map, fe in contributions:
        n_element_dofs = len(dof_map)
        assert fe.shape == (n_element_dofs,), \
            f"Element fe shape {fe.shape} doesn't match dof_map length {n_element_dofs}"

        # np.add.at handles repeated indices
        np.add.at(F, np.asarray(dof_map, dtype=int), fe)

    return F

