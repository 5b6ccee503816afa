# 3D frame element stiffness (Euler-Bernoulli / Timoshenko), transformation, Hermite interpolation

from typing import Callable, Dict, Tuple

import numpy as np

from .catalog import SectionProperties
from .kernel.dof import DOFManager
from .model import BeamElement, ElementKind, StructuralModel

# Local DOF order per node: ux, uy, uz, rx, ry, rz
L_UX, L_UY, L_UZ, L_RX, L_RY, L_RZ = range(6)


def element_axes(model: StructuralModel, e: BeamElement) -> Tuple[float, np.ndarray]:
    """
    Length and 3x3 rotation (rows = local x, y, z in global components).

    Local x runs from node i to node j. Local z is "up": the component of
    global Z normal to the member (global X for vertical members), so a
    horizontal girder has local z = global Z.
    """
    ni = model.nodes[e.ni]
    nj = model.nodes[e.nj]
    v = np.array([nj.x - ni.x, nj.y - ni.y, nj.z - ni.z], dtype=float)
    L = float(np.linalg.norm(v))
    if L <= 0.0:
        raise ValueError(f"Element {e.id} has zero length.")
    ex = v / L
    ref = np.array([0.0, 0.0, 1.0]) if abs(ex[2]) < 0.999 else np.array([1.0, 0.0, 0.0])
    ey = np.cross(ref, ex)
    ey /= np.linalg.norm(ey)
    ez = np.cross(ex, ey)
    return L, np.vstack([ex, ey, ez])


def frame3d_transform(lam: np.ndarray) -> np.ndarray:
    """12x12 transform from global DOFs to local DOFs."""
    T = np.zeros((12, 12), dtype=float)
    for k in range(4):
        T[3 * k:3 * k + 3, 3 * k:3 * k + 3] = lam
    return T


def _bending_terms(EI: float, L: float, phi: float) -> Tuple[float, float, float, float]:
    den = 1.0 + phi
    return (
        12.0 * EI / (L ** 3 * den),
        6.0 * EI / (L ** 2 * den),
        (4.0 + phi) * EI / (L * den),
        (2.0 - phi) * EI / (L * den),
    )


def _frame3d_stiffness(E: float, G: float, sec: SectionProperties, L: float,
                       phi_y: float, phi_z: float) -> np.ndarray:
    k = np.zeros((12, 12), dtype=float)

    EA_L = E * sec.A / L
    GJ_L = G * sec.J / L
    k[0, 0] = k[6, 6] = EA_L
    k[0, 6] = -EA_L
    k[3, 3] = k[9, 9] = GJ_L
    k[3, 9] = -GJ_L

    # Lateral bending (uy, rz) about local z
    a, b, c, d = _bending_terms(E * sec.Iz, L, phi_z)
    k[1, 1] = k[7, 7] = a
    k[1, 7] = -a
    k[1, 5] = k[1, 11] = b
    k[5, 7] = k[7, 11] = -b
    k[5, 5] = k[11, 11] = c
    k[5, 11] = d

    # Vertical bending (uz, ry) about local y; ry = -dw/dx
    a, b, c, d = _bending_terms(E * sec.Iy, L, phi_y)
    k[2, 2] = k[8, 8] = a
    k[2, 8] = -a
    k[2, 4] = k[2, 10] = -b
    k[4, 8] = k[8, 10] = b
    k[4, 4] = k[10, 10] = c
    k[4, 10] = d

    upper = np.triu(k, 1)
    return np.diag(np.diag(k)) + upper + upper.T


def euler_bernoulli_local_stiffness(E: float, G: float, sec: SectionProperties, L: float) -> np.ndarray:
    """
    12x12 local stiffness of a slender frame element.

    DOF order: [uxi, uyi, uzi, rxi, ryi, rzi, uxj, uyj, uzj, rxj, ryj, rzj]
    """
    return _frame3d_stiffness(E, G, sec, L, 0.0, 0.0)


def timoshenko_local_stiffness(E: float, G: float, sec: SectionProperties, L: float) -> np.ndarray:
    """
    12x12 local stiffness including shear deformation.

    phi = 12 E I / (G As L²); reduces to Euler-Bernoulli as As -> infinity.
    """
    if not sec.As:
        return euler_bernoulli_local_stiffness(E, G, sec, L)
    phi_y = 12.0 * E * sec.Iy / (G * sec.As * L ** 2)
    phi_z = 12.0 * E * sec.Iz / (G * sec.As * L ** 2)
    return _frame3d_stiffness(E, G, sec, L, phi_y, phi_z)


LOCAL_STIFFNESS: Dict[ElementKind, Callable[..., np.ndarray]] = {
    ElementKind.EULER_BERNOULLI: euler_bernoulli_local_stiffness,
    ElementKind.TIMOSHENKO: timoshenko_local_stiffness,
}


def local_stiffness(model: StructuralModel, e: BeamElement) -> Tuple[np.ndarray, np.ndarray, float]:
    """Local stiffness, transform and length of an element (dispatches on e.kind)."""
    L, lam = element_axes(model, e)
    material = model.materials[e.material]
    section = model.sections[e.section]
    k_local = LOCAL_STIFFNESS[e.kind](material.E, material.G, section, L)
    return k_local, frame3d_transform(lam), L


def element_global_stiffness(model: StructuralModel, e: BeamElement) -> np.ndarray:
    k_local, T, _ = local_stiffness(model, e)
    return T.T @ k_local @ T


def element_local_displacements(model: StructuralModel, e: BeamElement,
                                d_global: np.ndarray, dof: DOFManager) -> np.ndarray:
    _, lam = element_axes(model, e)
    T = frame3d_transform(lam)
    dof_map = dof.element_dof_map([e.ni, e.nj])
    return T @ d_global[dof_map]


def element_end_forces_local(model: StructuralModel, e: BeamElement, d_global: np.ndarray,
                             dof: DOFManager, member_load_local: np.ndarray = None) -> np.ndarray:
    """
    End forces acting ON the element, in local coordinates.

    member_load_local is the element's own equivalent nodal load (UDL,
    point loads); it is subtracted so the result is the true end action.

    Sign convention used for section actions (see section_actions):
        sagging moment at i  =  f[ry_i]       at j  = -f[ry_j]
        shear V = dM/dx      =  f[uz_i]       at j  = -f[uz_j]
        axial N (tension +)  = -f[ux_i]       at j  =  f[ux_j]
    """
    k_local, T, _ = local_stiffness(model, e)
    dof_map = dof.element_dof_map([e.ni, e.nj])
    f = k_local @ (T @ d_global[dof_map])
    if member_load_local is not None:
        f = f - member_load_local
    return f


def section_actions(f_local: np.ndarray, end: str) -> Tuple[float, float, float]:
    """(N, V, M) at element end 'i' or 'j' with the sign convention above."""
    if end == 'i':
        return -f_local[L_UX], f_local[L_UZ], f_local[L_RY]
    return f_local[6 + L_UX], -f_local[6 + L_UZ], -f_local[6 + L_RY]


def hermite_shape_functions(xi: float) -> Tuple[float, float, float, float]:
    """
    Hermite cubic shape functions for transverse deflection.

        w(xi) = N1*w_i + N2*theta_i*L + N3*w_j + N4*theta_j*L

    with theta = dw/dx (for vertical bending theta = -ry).
    """
    N1 = 1 - 3 * xi ** 2 + 2 * xi ** 3
    N2 = xi - 2 * xi ** 2 + xi ** 3
    N3 = 3 * xi ** 2 - 2 * xi ** 3
    N4 = -xi ** 2 + xi ** 3
    return N1, N2, N3, N4


def vertical_deflection(d_local: np.ndarray, L: float, a) -> np.ndarray:
    """Local-z deflection at distance a (scalar or array) from node i."""
    xi = np.clip(np.asarray(a, dtype=float) / L, 0.0, 1.0)
    N1, N2, N3, N4 = hermite_shape_functions(xi)
    return (N1 * d_local[L_UZ] - N2 * L * d_local[L_RY]
            + N3 * d_local[6 + L_UZ] - N4 * L * d_local[6 + L_RY])
