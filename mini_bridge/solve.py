# mini_bridge/solve.py - model-level static solve and deck response extraction

import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Sequence

import numpy as np

from .elements import (element_end_forces_local, element_global_stiffness,
                       element_local_displacements, section_actions, vertical_deflection)
from .kernel.assemble import assemble_global_K
from .kernel.dof import DOF_3D_FRAME, DOFManager, UZ
from .kernel.solve import FactoredSystem, factorize
from .loads import EquivalentLoads
from .model import POSITION_TOL, StructuralModel

logger = logging.getLogger(__name__)


def assemble_model_K(model: StructuralModel, dof: DOFManager = DOF_3D_FRAME) -> np.ndarray:
    """Global stiffness of every element of the model (no supports)."""
    contributions = [
        (dof.element_dof_map([e.ni, e.nj]), element_global_stiffness(model, e))
        for e in model.elements
    ]
    return assemble_global_K(dof.ndof(len(model.nodes)), contributions)


def support_dofs(model: StructuralModel, dof: DOFManager = DOF_3D_FRAME) -> Dict[int, float]:
    """Prescribed DOFs (all zero) from the model supports."""
    return {dof.idx(s.node, r): 0.0 for s in model.supports for r in sorted(s.restraints)}


def factor_model(
    model: StructuralModel,
    dof: DOFManager = DOF_3D_FRAME,
    prescribed: Mapping[int, float] = None,
) -> FactoredSystem:
    """
    Validate, assemble and factor a model.

    prescribed overrides support values (e.g. a unit support settlement).
    Raises InvalidGeometryError before assembly for unstable models and
    SingularityError from the factorization.
    """
    model.validate()
    K = assemble_model_K(model, dof)
    values = support_dofs(model, dof)
    values.update(prescribed or {})
    return factorize(K, values)


@dataclass(frozen=True)
class DeckActions:
    """
    Section actions at every deck node, ordered along the bridge.

    N is tension positive, V = dM/dx, M is sagging positive; w is the
    vertical displacement (up positive). At interior nodes the actions are
    read from the element to the right.
    """
    x: np.ndarray
    N: np.ndarray
    V: np.ndarray
    M: np.ndarray
    w: np.ndarray

    def at(self, x: float, quantity: str = 'M') -> float:
        return float(np.interp(x, self.x, getattr(self, quantity)))

    def __add__(self, other: 'DeckActions') -> 'DeckActions':
        return DeckActions(self.x, self.N + other.N, self.V + other.V,
                           self.M + other.M, self.w + other.w)

    def scaled(self, factor: float) -> 'DeckActions':
        return DeckActions(self.x, factor * self.N, factor * self.V,
                           factor * self.M, factor * self.w)

    @classmethod
    def zeros(cls, x: np.ndarray) -> 'DeckActions':
        z = np.zeros_like(x, dtype=float)
        return cls(x, z, z.copy(), z.copy(), z.copy())


def deck_actions(
    model: StructuralModel,
    d: np.ndarray,
    loads: EquivalentLoads = None,
    dof: DOFManager = DOF_3D_FRAME,
) -> DeckActions:
    """Recover deck-node actions from a displacement vector."""
    elements = model.deck_elements()
    n = len(elements) + 1
    x = np.zeros(n)
    N = np.zeros(n)
    V = np.zeros(n)
    M = np.zeros(n)
    w = np.zeros(n)

    for k, e in enumerate(elements):
        member = loads.local_for(e.id) if loads is not None else None
        f = element_end_forces_local(model, e, d, dof, member)
        x[k] = model.nodes[e.ni].x
        N[k], V[k], M[k] = section_actions(f, 'i')
        w[k] = d[dof.idx(e.ni, UZ)]
        if k == len(elements) - 1:
            x[k + 1] = model.nodes[e.nj].x
            N[k + 1], V[k + 1], M[k + 1] = section_actions(f, 'j')
            w[k + 1] = d[dof.idx(e.nj, UZ)]

    return DeckActions(x=x, N=N, V=V, M=M, w=w)


def solve_cases(
    model: StructuralModel,
    cases: Mapping[str, EquivalentLoads],
    dof: DOFManager = DOF_3D_FRAME,
    system: FactoredSystem = None,
) -> Dict[str, DeckActions]:
    """
    Solve several load cases with one factorization (multi-RHS).

    Returns the deck actions per case name.
    """
    if system is None:
        system = factor_model(model, dof)
    names = list(cases)
    if not names:
        return {}
    F = np.column_stack([cases[name].F for name in names])
    D, _ = system.solve(F)
    logger.debug("Solved %d load cases on %d DOFs", len(names), system.ndof)
    return {
        name: deck_actions(model, D[:, k], cases[name], dof)
        for k, name in enumerate(names)
    }


def deflected_shape(
    model: StructuralModel,
    d: np.ndarray,
    positions: Sequence[float],
    dof: DOFManager = DOF_3D_FRAME,
    kinks: Mapping[int, np.ndarray] = None,
) -> np.ndarray:
    """
    Vertical deflection at arbitrary deck positions (Hermite interpolation).

    kinks maps an element id to a local displacement vector subtracted from
    that element's end displacements (an imposed discontinuity).
    """
    positions = np.asarray(positions, dtype=float)
    out = np.zeros(len(positions))
    elements = model.deck_elements()
    starts = np.array([min(model.nodes[e.ni].x, model.nodes[e.nj].x) for e in elements])
    owner = np.clip(np.searchsorted(starts, positions + POSITION_TOL, side='right') - 1,
                    0, len(elements) - 1)

    for k, e in enumerate(elements):
        mask = owner == k
        if not mask.any():
            continue
        d_local = element_local_displacements(model, e, d, dof)
        if kinks and e.id in kinks:
            d_local = d_local - kinks[e.id]
        a = np.abs(positions[mask] - model.nodes[e.ni].x)
        out[mask] = vertical_deflection(d_local, model.element_length(e), a)
    return out


def deck_positions(model: StructuralModel) -> List[float]:
    return [model.nodes[nid].x for nid in model.deck_nodes()]
