# mini_bridge/section.py
"""
SECTION & PRESTRESS CALCULATOR
==============================

Derived section properties and prestress actions. Nothing here mutates its
inputs: a CompositeSection is computed from the girder, deck geometry and
material moduli, and recomputed (a new object) whenever any of them change.

COMPOSITE SECTION:
------------------
The deck is transformed into girder material by the modular ratio

    n = E_deck / E_girder

so the transformed deck width is n * b_eff. Area, centroid and moment of
inertia follow from the parallel-axis theorem over girder, haunch and deck:

    A  = sum(A_k)
    yb = sum(A_k * y_k) / A
    I  = sum(I_k + A_k * (y_k - yb)²)

EFFECTIVE FLANGE WIDTH (AASHTO LRFD 4.6.2.6.1, interior girder):
----------------------------------------------------------------
    b_eff = min( L/4,  12 ts + max(bw, bf/2),  S )

PRESTRESS:
----------
Each strand sits at a fixed eccentricity below the girder centroid.
Debonded strands carry nothing inside their debonded length, then pick up
force linearly over the transfer length. The resulting force P(x) and
resultant eccentricity e(x) vary along the member, so the equivalent loads
are built element by element instead of as one lumped end force.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from .catalog import GirderShape, SectionProperties
from .elements import element_axes, frame3d_transform
from .kernel.dof import DOFManager
from .loads import EquivalentLoads
from .model import StructuralModel

logger = logging.getLogger(__name__)


# =============================================================================
# Composite section
# =============================================================================

def effective_flange_width(
    span: float,
    deck_thickness: float,
    web_width: float,
    girder_spacing: float,
    top_flange_width: float = 0.0,
) -> float:
    """Minimum of the three candidate widths (span/4, slab-based, spacing)."""
    if min(span, deck_thickness, web_width, girder_spacing) <= 0:
        raise ValueError("Effective width inputs must be positive")
    candidates = (
        span / 4.0,
        12.0 * deck_thickness + max(web_width, top_flange_width / 2.0),
        girder_spacing,
    )
    return min(candidates)


@dataclass(frozen=True)
class CompositeSection:
    """Transformed girder + deck section (girder material units)."""
    girder: str
    A: float
    yb: float
    I: float
    h: float
    y_girder_top: float
    y_deck_top: float
    modular_ratio: float
    effective_width: float
    deck_thickness: float
    Iz: float
    J: float
    As: float
    girder_yb: float

    @property
    def centroid_shift(self) -> float:
        """Rise of the centroid relative to the bare girder (added to strand eccentricity)."""
        return self.yb - self.girder_yb

    def properties(self, name: Optional[str] = None) -> SectionProperties:
        return SectionProperties(
            name=name or f"{self.girder}-composite",
            A=self.A,
            Iy=self.I,
            Iz=self.Iz,
            J=self.J,
            As=self.As,
            yb=self.yb,
            h=self.h,
            y_girder_top=self.y_girder_top,
            y_deck_top=self.y_deck_top,
            modular_ratio=self.modular_ratio,
        )


def composite_section(
    girder: GirderShape,
    deck_thickness: float,
    effective_width: float,
    modular_ratio: float,
    haunch: float = 0.0,
    haunch_width: Optional[float] = None,
) -> CompositeSection:
    """
    Transformed-section properties of girder + haunch + deck.

    Parameters:
    -----------
    girder : GirderShape
        Bare precast girder
    deck_thickness : float
        Structural deck thickness ts
    effective_width : float
        b_eff from effective_flange_width
    modular_ratio : float
        E_deck / E_girder
    haunch : float
        Haunch (build-up) depth between girder top and deck soffit
    haunch_width : float, optional
        Defaults to the girder top flange width
    """
    if deck_thickness <= 0 or effective_width <= 0 or modular_ratio <= 0:
        raise ValueError("Deck thickness, effective width and modular ratio must be positive")

    n = modular_ratio
    bh = girder.top_flange_width if haunch_width is None else haunch_width
    parts = [
        # (area, centroid height, own I)
        (girder.A, girder.yb, girder.I),
        (n * bh * haunch, girder.h + haunch / 2.0, n * bh * haunch ** 3 / 12.0),
        (n * effective_width * deck_thickness,
         girder.h + haunch + deck_thickness / 2.0,
         n * effective_width * deck_thickness ** 3 / 12.0),
    ]
    A = sum(a for a, _, _ in parts)
    yb = sum(a * y for a, y, _ in parts) / A
    I = sum(i + a * (y - yb) ** 2 for a, y, i in parts)

    deck_Iz = n * deck_thickness * effective_width ** 3 / 12.0
    deck_J = n * effective_width * deck_thickness ** 3 / 3.0

    return CompositeSection(
        girder=girder.name,
        A=A,
        yb=yb,
        I=I,
        h=girder.h + haunch + deck_thickness,
        y_girder_top=girder.h,
        y_deck_top=girder.h + haunch + deck_thickness,
        modular_ratio=n,
        effective_width=effective_width,
        deck_thickness=deck_thickness,
        Iz=girder.Iz + deck_Iz,
        J=girder.J + deck_J,
        As=girder.web_width * girder.h,
        girder_yb=girder.yb,
    )


# =============================================================================
# Prestress layout
# =============================================================================

@dataclass(frozen=True)
class Strand:
    """
    One pretensioned strand (or a bundle at the same level).

    eccentricity : distance below the girder centroid (positive down)
    debond_length : debonded length at each member end (0 = fully bonded)
    transfer_length : AASHTO 5.9.4.3.1, 60 strand diameters (30 in for 0.5")
    """
    eccentricity: float
    area: float = 0.153
    debond_length: float = 0.0
    transfer_length: float = 30.0


@dataclass(frozen=True)
class PrestressLayout:
    """Ordered strand positions for one element group (precast girder)."""
    group: str
    strands: Tuple[Strand, ...]
    jacking_stress: float = 202.5   # 0.75 fpu for 270 ksi strand
    material: str = 'strand-270'

    @property
    def total_area(self) -> float:
        return float(sum(s.area for s in self.strands))

    @property
    def eccentricity(self) -> float:
        """Area-weighted eccentricity of all strands (fully bonded region)."""
        A = self.total_area
        return float(sum(s.area * s.eccentricity for s in self.strands) / A) if A else 0.0

    @property
    def debonded(self) -> Tuple[Strand, ...]:
        return tuple(s for s in self.strands if s.debond_length > 0)

    @property
    def jacking_force(self) -> float:
        return self.total_area * self.jacking_stress


def strand_force_fraction(strand: Strand, s: float, member_length: float) -> float:
    """Fraction of full strand force at distance s from the member start."""
    d = min(s, member_length - s)
    if d <= strand.debond_length:
        return 0.0
    if strand.transfer_length <= 0:
        return 1.0
    return min(1.0, (d - strand.debond_length) / strand.transfer_length)


def prestress_resultant(layout: PrestressLayout, s: float, member_length: float,
                        stress: float) -> Tuple[float, float]:
    """
    Force and resultant eccentricity at distance s along the member.

    Returns:
        P: total effective force (compression on concrete, positive)
        e: force-weighted eccentricity below the girder centroid
    """
    forces = [
        (st.area * stress * strand_force_fraction(st, s, member_length), st.eccentricity)
        for st in layout.strands
    ]
    P = sum(f for f, _ in forces)
    if P == 0.0:
        return 0.0, layout.eccentricity
    e = sum(f * ecc for f, ecc in forces) / P
    return P, e


def prestress_equivalent_loads(
    model: StructuralModel,
    layout: PrestressLayout,
    stress: float,
    dof: DOFManager,
    centroid_shift: float = 0.0,
) -> EquivalentLoads:
    """
    Nodal loads the strands exert on the concrete.

    Each element of the layout's group gets a self-equilibrated set built
    from its average force Pa and end eccentricities (measured from the
    current section centroid, i.e. e + centroid_shift):

        node i:  Fx = +Pa   Fz = +Pa*slope   My = -Pa*e_i
        node j:  Fx = -Pa   Fz = -Pa*slope   My = +Pa*e_j

    where slope = -(e_j - e_i)/L is the inclination of the force line.
    Where the force changes between neighbouring elements (transfer zones,
    debonding) the difference remains at the shared node as bond force.
    """
    F = np.zeros(dof.ndof(len(model.nodes)), dtype=float)
    elements = model.group_elements(layout.group)
    if not elements:
        raise KeyError(f"Prestress group '{layout.group}' has no elements")
    x0, x1 = model.group_extent(layout.group)
    member_length = x1 - x0

    for e in elements:
        L, lam = element_axes(model, e)
        si = abs(model.nodes[e.ni].x - x0)
        sj = abs(model.nodes[e.nj].x - x0)
        Pi, ei = prestress_resultant(layout, si, member_length, stress)
        Pj, ej = prestress_resultant(layout, sj, member_length, stress)
        Pa = 0.5 * (Pi + Pj)
        if Pa == 0.0:
            continue
        ei += centroid_shift
        ej += centroid_shift
        slope = -(ej - ei) / L
        f_local = np.zeros(12, dtype=float)
        f_local[0] = Pa
        f_local[2] = Pa * slope
        f_local[4] = -Pa * ei
        f_local[6] = -Pa
        f_local[8] = -Pa * slope
        f_local[10] = Pa * ej
        T = frame3d_transform(lam)
        np.add.at(F, dof.element_dof_map([e.ni, e.nj]), T.T @ f_local)

    return EquivalentLoads(F=F)


# =============================================================================
# Nominal capacity
# =============================================================================

def beta1(fc: float) -> float:
    """Stress block factor, AASHTO 5.7.2.2."""
    return min(0.85, max(0.65, 0.85 - 0.05 * (fc - 4.0)))


def flexural_capacity(
    Aps: float,
    fpu: float,
    fpy: float,
    dp: float,
    flange_width: float,
    fc: float,
    flange_thickness: float,
    phi: float = 1.0,
) -> float:
    """
    Factored positive flexural resistance phi*Mn of a bonded prestressed
    section with rectangular behaviour (AASHTO 5.7.3.1.1 / 5.7.3.2.3).

        k   = 2 (1.04 - fpy/fpu)
        c   = Aps fpu / (0.85 fc beta1 b + k Aps fpu / dp)
        fps = fpu (1 - k c / dp)
        Mn  = Aps fps (dp - a/2),  a = beta1 c

    Returns:
        phi*Mn (kip-in)
    """
    if Aps <= 0 or dp <= 0:
        return 0.0
    k = 2.0 * (1.04 - fpy / fpu)
    b1 = beta1(fc)
    c = Aps * fpu / (0.85 * fc * b1 * flange_width + k * Aps * fpu / dp)
    a = b1 * c
    if a > flange_thickness:
        logger.warning(
            "Compression block depth %.2f exceeds flange thickness %.2f; "
            "rectangular behaviour assumed", a, flange_thickness
        )
    fps = fpu * (1.0 - k * c / dp)
    return phi * Aps * fps * (dp - a / 2.0)


def shear_capacity(
    fc: float,
    bv: float,
    dv: float,
    Av: float = 0.0,
    s: Optional[float] = None,
    fy: float = 60.0,
    beta: float = 2.0,
    theta_deg: float = 45.0,
    Vp: float = 0.0,
    phi: float = 0.9,
) -> float:
    """
    Factored shear resistance, simplified procedure (AASHTO 5.8.3.3/5.8.3.4.1).

        Vc = 0.0316 beta sqrt(fc) bv dv
        Vs = Av fy dv cot(theta) / s
        Vn = min(Vc + Vs + Vp, 0.25 fc bv dv + Vp)
    """
    Vc = 0.0316 * beta * math.sqrt(fc) * bv * dv
    Vs = Av * fy * dv / math.tan(math.radians(theta_deg)) / s if (Av and s) else 0.0
    Vn = min(Vc + Vs + Vp, 0.25 * fc * bv * dv + Vp)
    return phi * Vn
