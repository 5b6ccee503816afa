# mini_bridge/influence.py
"""
INFLUENCE LINE GENERATOR
========================

An influence line is the response at one fixed section as a function of
where a unit (downward) load stands on the deck. By the reciprocal theorem
it equals a deflected shape of the structure under a suitable unit action,
so one solve per line gives the whole function:

    MOMENT      unit relative rotation (kink) imposed at the section
    SHEAR       unit relative transverse displacement imposed at the section
    REACTION    unit upward displacement of the support
    DEFLECTION  unit load at the section (Maxwell)

The kink is imposed on the element next to the section: the nodal forces
k_e * d0 are applied to the intact structure, the element's own
displacements are read as (d - d0), and the Hermite-interpolated shape is
the influence line (with the sign fixed by the end-force convention in
elements.element_end_forces_local).

Every line of a model shares one factorization; the right-hand sides are
solved together.
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Sequence, Tuple

import numpy as np

from .elements import L_RY, L_UZ, local_stiffness
from .errors import InvalidGeometryError
from .kernel.dof import DOF_3D_FRAME, DOFManager, UZ
from .loads import assemble_point_load
from .model import POSITION_TOL, StructuralModel
from .solve import deflected_shape, factor_model

logger = logging.getLogger(__name__)

MIN_SAMPLES_PER_SPAN = 100
MIN_SAMPLES_PER_LENGTH = 100   # one sample per 1% of the structure length


class ResponseQuantity(str, Enum):
    MOMENT = 'moment'
    SHEAR = 'shear'
    REACTION = 'reaction'
    DEFLECTION = 'deflection'


def _readonly(a) -> np.ndarray:
    a = np.array(a, dtype=float)
    a.setflags(write=False)
    return a


@dataclass(frozen=True)
class InfluenceLine:
    """Sampled response per unit downward load, zero off the structure."""
    quantity: ResponseQuantity
    section_x: float
    positions: np.ndarray
    ordinates: np.ndarray

    def __post_init__(self):
        object.__setattr__(self, 'positions', _readonly(self.positions))
        object.__setattr__(self, 'ordinates', _readonly(self.ordinates))
        if self.positions.shape != self.ordinates.shape:
            raise ValueError("positions and ordinates must have the same shape")
        if np.any(np.diff(self.positions) <= 0):
            raise ValueError("positions must be strictly increasing")

    @property
    def extent(self) -> Tuple[float, float]:
        return float(self.positions[0]), float(self.positions[-1])

    def ordinate_at(self, x):
        """Linear interpolation between samples (scalar or array)."""
        return np.interp(x, self.positions, self.ordinates, left=0.0, right=0.0)

    def cumulative_area(self) -> np.ndarray:
        """Running integral of the ordinates at every sample position."""
        seg = 0.5 * (self.ordinates[1:] + self.ordinates[:-1]) * np.diff(self.positions)
        return np.concatenate(([0.0], np.cumsum(seg)))

    def area_to(self, x) -> np.ndarray:
        """
        Exact integral from the left end to x of the piecewise-linear line.

        Vectorized; constant beyond either end.
        """
        xs = self.positions
        eta = self.ordinates
        cum = self.cumulative_area()
        x = np.clip(np.asarray(x, dtype=float), xs[0], xs[-1])
        k = np.clip(np.searchsorted(xs, x, side='right') - 1, 0, len(xs) - 2)
        dx = x - xs[k]
        slope = (eta[k + 1] - eta[k]) / (xs[k + 1] - xs[k])
        return cum[k] + eta[k] * dx + 0.5 * slope * dx * dx

    def area(self, x0: float = None, x1: float = None) -> float:
        x0 = self.positions[0] if x0 is None else x0
        x1 = self.positions[-1] if x1 is None else x1
        return float(self.area_to(x1) - self.area_to(x0))

    @property
    def positive_area(self) -> float:
        return sum(_clipped_trapezoid(a, b, h, True)
                   for a, b, h in zip(self.ordinates[:-1], self.ordinates[1:], np.diff(self.positions)))

    @property
    def negative_area(self) -> float:
        return sum(_clipped_trapezoid(a, b, h, False)
                   for a, b, h in zip(self.ordinates[:-1], self.ordinates[1:], np.diff(self.positions)))

    def extreme(self) -> Tuple[float, float]:
        """(position, ordinate) of the largest absolute ordinate."""
        k = int(np.argmax(np.abs(self.ordinates)))
        return float(self.positions[k]), float(self.ordinates[k])


def _clipped_trapezoid(a: float, b: float, h: float, positive: bool) -> float:
    """Area of the positive (or negative) part of a linear segment."""
    sign = 1.0 if positive else -1.0
    a, b = sign * a, sign * b
    if a >= 0 and b >= 0:
        area = 0.5 * (a + b) * h
    elif a <= 0 and b <= 0:
        area = 0.0
    else:
        # zero crossing inside the segment
        top = a if a > 0 else b
        area = 0.5 * top * h * top / (abs(a) + abs(b))
    return sign * area


# =============================================================================
# Sampling
# =============================================================================

def sample_positions(model: StructuralModel) -> np.ndarray:
    """
    Uniform grid at least 100 samples per span and one per 1% of the total
    length (whichever is finer), merged with every deck node position.
    """
    x0, x1 = model.extent
    length = x1 - x0
    spans = model.span_lengths()
    step = min(min(spans) / MIN_SAMPLES_PER_SPAN, length / MIN_SAMPLES_PER_LENGTH)
    n = int(math.ceil(length / step - 1e-9)) + 1
    grid = np.linspace(x0, x1, n)
    nodes = np.array([model.nodes[nid].x for nid in model.deck_nodes()])
    merged = np.sort(np.concatenate((grid, nodes)))
    keep = np.concatenate(([True], np.diff(merged) > POSITION_TOL))
    return merged[keep]


# =============================================================================
# Generation
# =============================================================================

def _kink_element(model: StructuralModel, x: float, quantity: ResponseQuantity):
    """(element, local dof index, sign c) with quantity = c * f_local[index]."""
    nid = model.node_at(x)
    elements = model.deck_elements()
    local = L_RY if quantity is ResponseQuantity.MOMENT else L_UZ
    for e in elements:
        if nid in (e.ni, e.nj) and min(model.nodes[e.ni].x, model.nodes[e.nj].x) >= x - POSITION_TOL:
            return e, local, 1.0
    # last node of the deck: read the element to the left at its j end
    e = elements[-1]
    return e, 6 + local, -1.0


def _support_uz_dof(model: StructuralModel, x: float, dof: DOFManager) -> int:
    for s in model.supports:
        if UZ in s.restraints and abs(model.nodes[s.node].x - x) <= POSITION_TOL:
            return dof.idx(s.node, UZ)
    raise InvalidGeometryError(f"No vertical support at x={x}", section=x)


def generate_influence_lines(
    model: StructuralModel,
    requests: Iterable[Tuple[ResponseQuantity, float]],
    dof: DOFManager = DOF_3D_FRAME,
    positions: Sequence[float] = None,
) -> List[InfluenceLine]:
    """
    Influence lines for several (quantity, section) pairs.

    The model is refined so every section falls on a node, factored once,
    and all unit actions are solved as one multi-column right-hand side.

    Parameters:
    -----------
    requests : Iterable[(ResponseQuantity, float)]
        Quantity and section chainage; REACTION sections must be supports
    positions : Sequence[float], optional
        Sample positions; default from sample_positions()

    Returns:
    --------
    List[InfluenceLine] in request order
    """
    requests = [(ResponseQuantity(q), float(x)) for q, x in requests]
    if not requests:
        return []
    x0, x1 = model.extent
    for q, x in requests:
        if not x0 - POSITION_TOL <= x <= x1 + POSITION_TOL:
            raise InvalidGeometryError(f"Section x={x} is outside the deck {model.extent}", section=x)

    model = model.refine_at_all(x for _, x in requests)
    system = factor_model(model, dof)
    xs = sample_positions(model) if positions is None else np.asarray(positions, dtype=float)

    ndof = system.ndof
    F = np.zeros((ndof, len(requests)))
    plans = []
    for k, (q, x) in enumerate(requests):
        if q in (ResponseQuantity.MOMENT, ResponseQuantity.SHEAR):
            e, local, c = _kink_element(model, x, q)
            k_local, T, _ = local_stiffness(model, e)
            d0 = np.zeros(12)
            d0[local] = 1.0
            np.add.at(F[:, k], dof.element_dof_map([e.ni, e.nj]), T.T @ (k_local @ d0))
            plans.append((q, x, {e.id: d0}, -c))
        elif q is ResponseQuantity.REACTION:
            F[_support_uz_dof(model, x, dof), k] = system.penalty * 1.0
            plans.append((q, x, None, 1.0))
        else:
            F[:, k] = assemble_point_load(model, x, 1.0, dof).F
            plans.append((q, x, None, 1.0))

    D, _ = system.solve(F)
    lines = []
    for k, (q, x, kinks, sign) in enumerate(plans):
        eta = sign * deflected_shape(model, D[:, k], xs, dof, kinks=kinks)
        lines.append(InfluenceLine(quantity=q, section_x=x, positions=xs, ordinates=eta))
    logger.debug("Generated %d influence lines (%d samples each)", len(lines), len(xs))
    return lines


def generate_influence_line(
    model: StructuralModel,
    quantity: ResponseQuantity,
    x: float,
    dof: DOFManager = DOF_3D_FRAME,
) -> InfluenceLine:
    return generate_influence_lines(model, [(quantity, x)], dof)[0]

