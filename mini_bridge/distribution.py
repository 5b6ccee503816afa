# mini_bridge/distribution.py
"""
Live-load distribution factors for interior precast girders with a
cast-in-place deck (AASHTO LRFD 4.6.2.2.2b / 4.6.2.2.3a, cross-section
type k). Inputs in inches, the code formulas work in feet.

    moment, one lane   0.06  + (S/14)^0.4 (S/L)^0.3 (Kg / 12 L ts³)^0.1
    moment, 2+ lanes   0.075 + (S/9.5)^0.6 (S/L)^0.2 (Kg / 12 L ts³)^0.1
    shear,  one lane   0.36  + S/25
    shear,  2+ lanes   0.2   + S/12 - (S/35)²

Kg = n (Ig + Ag eg²), eg = distance between girder and deck centroids.
The factors include multiple presence, so vehicles rated with them should
carry multiple_presence = 1.
"""

import logging
from dataclasses import dataclass
from typing import List

from .catalog import FT, GirderShape
from .errors import LimitExceedance

logger = logging.getLogger(__name__)

# Range of applicability
SPACING_RANGE = (3.5, 16.0)       # ft
DECK_RANGE = (4.5, 12.0)          # in
SPAN_RANGE = (20.0, 240.0)        # ft


@dataclass(frozen=True)
class DistributionFactors:
    moment_one_lane: float
    moment_multi_lane: float
    shear_one_lane: float
    shear_multi_lane: float
    warnings: tuple = ()

    @property
    def moment(self) -> float:
        return max(self.moment_one_lane, self.moment_multi_lane)

    @property
    def shear(self) -> float:
        return max(self.shear_one_lane, self.shear_multi_lane)


def longitudinal_stiffness(girder: GirderShape, deck_thickness: float, modular_ratio: float,
                           haunch: float = 0.0) -> float:
    """Kg = n (I + A eg²) with n = E_girder / E_deck."""
    eg = girder.yt + haunch + deck_thickness / 2.0
    return modular_ratio * (girder.I + girder.A * eg ** 2)


def interior_girder_factors(
    girder_spacing: float,
    span: float,
    deck_thickness: float,
    Kg: float,
) -> DistributionFactors:
    S = girder_spacing / FT
    L = span / FT
    ts = deck_thickness
    warnings: List[LimitExceedance] = []
    for name, value, (lo, hi) in (
        ('girder spacing (ft)', S, SPACING_RANGE),
        ('deck thickness (in)', ts, DECK_RANGE),
        ('span (ft)', L, SPAN_RANGE),
    ):
        if not lo <= value <= hi:
            logger.warning("Distribution factor %s = %.2f outside [%g, %g]", name, value, lo, hi)
            warnings.append(LimitExceedance(
                kind='distribution',
                message=f"{name} outside the range of applicability",
                value=value,
                limit=hi if value > hi else lo,
            ))

    stiffness = (Kg / (12.0 * L * ts ** 3)) ** 0.1
    return DistributionFactors(
        moment_one_lane=0.06 + (S / 14.0) ** 0.4 * (S / L) ** 0.3 * stiffness,
        moment_multi_lane=0.075 + (S / 9.5) ** 0.6 * (S / L) ** 0.2 * stiffness,
        shear_one_lane=0.36 + S / 25.0,
        shear_multi_lane=0.2 + S / 12.0 - (S / 35.0) ** 2,
        warnings=tuple(warnings),
    )
