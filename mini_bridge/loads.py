# loads.py - Equivalent nodal loads for member loads (UDL, point loads)

from dataclasses import dataclass, field
from typing import Dict, Iterable, Mapping, Optional

import numpy as np

from .elements import element_axes, frame3d_transform, hermite_shape_functions
from .kernel.assemble import assemble_global_F
from .kernel.dof import DOFManager
from .model import StructuralModel


def frame3d_equiv_nodal_load_udl(L: float, q_local: np.ndarray) -> np.ndarray:
    """
    Equivalent nodal loads of a uniform member load, LOCAL coordinates.

    Parameters:
    -----------
    L : float
        Element length
    q_local : array (3,)
        Load per unit length along local (x, y, z). For a horizontal girder
        gravity is q_local = (0, 0, -w).

    Returns:
    --------
    np.ndarray (12,)
        [Fx, Fy, Fz, Mx, My, Mz] at node i, then node j.
        Transverse loads give wL/2 at each node plus the fixed-end moments
        ±wL²/12; with ry = -dw/dx the vertical-plane moments flip sign
        relative to the lateral plane.
    """
    qx, qy, qz = (float(v) for v in q_local)
    f = np.zeros(12, dtype=float)
    f[0] = f[6] = qx * L / 2.0
    f[1] = f[7] = qy * L / 2.0
    f[5] = qy * L * L / 12.0
    f[11] = -qy * L * L / 12.0
    f[2] = f[8] = qz * L / 2.0
    f[4] = -qz * L * L / 12.0
    f[10] = qz * L * L / 12.0
    return f


def frame3d_equiv_nodal_load_point(L: float, a: float, P_local_z: float) -> np.ndarray:
    """
    Equivalent nodal loads of a local-z point load P at distance a from node i.

    Work-consistent with the Hermite interpolation used for deflections:
    F = P * [N1, -N2 L, N3, -N4 L] on (uz_i, ry_i, uz_j, ry_j).
    """
    N1, N2, N3, N4 = hermite_shape_functions(min(max(a / L, 0.0), 1.0))
    f = np.zeros(12, dtype=float)
    f[2] = P_local_z * N1
    f[4] = -P_local_z * N2 * L
    f[8] = P_local_z * N3
    f[10] = -P_local_z * N4 * L
    return f


@dataclass(frozen=True)
class EquivalentLoads:
    """
    Global load vector plus each loaded element's own local equivalent load.

    The per-element vectors are needed afterwards to recover true end
    actions (element_end_forces_local subtracts them).
    """
    F: np.ndarray
    member: Mapping[int, np.ndarray] = field(default_factory=dict)

    def local_for(self, element_id: int) -> Optional[np.ndarray]:
        return self.member.get(element_id)

    def __add__(self, other: 'EquivalentLoads') -> 'EquivalentLoads':
        member: Dict[int, np.ndarray] = {k: v.copy() for k, v in self.member.items()}
        for k, v in other.member.items():
            member[k] = member[k] + v if k in member else v.copy()
        return EquivalentLoads(F=self.F + other.F, member=member)


def empty_loads(model: StructuralModel, dof: DOFManager) -> EquivalentLoads:
    return EquivalentLoads(F=np.zeros(dof.ndof(len(model.nodes))))


def assemble_gravity_udl(
    model: StructuralModel,
    w: Mapping[str, float],
    dof: DOFManager,
    elements: Iterable = None,
) -> EquivalentLoads:
    """
    Downward uniform load per unit length on deck elements.

    Parameters:
    -----------
    w : Mapping[str, float]
        Load intensity per element group, e.g. {"span-1": 0.0701};
        the key "*" applies to every group not listed
    """
    contributions = []
    member = {}
    targets = model.deck_elements() if elements is None else elements
    for e in targets:
        intensity = w.get(e.group, w.get('*'))
        if not intensity:
            continue
        L, lam = element_axes(model, e)
        q_local = lam @ np.array([0.0, 0.0, -float(intensity)])
        f_local = frame3d_equiv_nodal_load_udl(L, q_local)
        T = frame3d_transform(lam)
        contributions.append((dof.element_dof_map([e.ni, e.nj]), T.T @ f_local))
        member[e.id] = f_local
    F = assemble_global_F(dof.ndof(len(model.nodes)), contributions)
    return EquivalentLoads(F=F, member=member)


def assemble_point_load(
    model: StructuralModel,
    x: float,
    P: float,
    dof: DOFManager,
) -> EquivalentLoads:
    """Downward point load P at deck chainage x."""
    e, a = model.locate(x)
    L, lam = element_axes(model, e)
    # Vertical load resolved into the element's local z (local z ~ global Z on the deck)
    f_local = frame3d_equiv_nodal_load_point(L, a, -P * lam[2, 2])
    T = frame3d_transform(lam)
    F = np.zeros(dof.ndof(len(model.nodes)), dtype=float)
    np.add.at(F, dof.element_dof_map([e.ni, e.nj]), T.T @ f_local)
    return EquivalentLoads(F=F, member={e.id: f_local})
