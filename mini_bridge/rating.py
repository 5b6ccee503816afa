# mini_bridge/rating.py
"""
LOAD RATING ENGINE
==================

LRFR rating factor (AASHTO MBE 6A.4.2.1):

            phi_c phi_s C - g_DC DC - g_DW DW - g_P P
    RF  =  -------------------------------------------
                       g_L (LL + IM)

Inventory uses g_L = 1.75, operating g_L = 1.35; permanent factors
1.25 (DC) and 1.50 (DW) at both levels. An RF below the threshold flags a
load restriction whose recommended magnitude is RF x gross vehicle weight.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from .catalog import Vehicle
from .errors import BridgeAnalysisError, LimitExceedance
from .progress import CancelToken, ProgressCallback, report

logger = logging.getLogger(__name__)

RESTRICTION_THRESHOLD = 1.0


@dataclass(frozen=True)
class RatingFactors:
    dc: float = 1.25
    dw: float = 1.50
    p: float = 1.0
    ll: float = 1.75
    phi_c: float = 1.0
    phi_s: float = 1.0


INVENTORY = RatingFactors()
OPERATING = RatingFactors(ll=1.35)


def rating_factor(capacity: float, dc: float, dw: float, ll_im: float,
                  factors: RatingFactors = INVENTORY, p: float = 0.0) -> float:
    """RF at one level; infinite when there is no live-load effect."""
    if ll_im == 0:
        return math.inf
    available = factors.phi_c * factors.phi_s * capacity - factors.dc * dc - factors.dw * dw - factors.p * p
    return available / (factors.ll * ll_im)


def recommended_restriction(rf: float, gross_weight: float) -> float:
    return rf * gross_weight


def rating_factor_from_restriction(restriction: float, gross_weight: float) -> float:
    if gross_weight <= 0:
        raise ValueError("Gross weight must be positive")
    return restriction / gross_weight


@dataclass(frozen=True)
class SectionDemand:
    """
    Capacity and load effects at one section for one action (moment/shear).

    live maps a vehicle name to its LL+IM effect (distributed to the girder).
    signs maps a vehicle name to the sign of its live effect; dc, dw and p
    are flipped by it so each vehicle is rated against its own load case.
    A vehicle missing from signs uses dc, dw and p as given.
    """
    section_x: float
    quantity: str
    capacity: float
    dc: float
    dw: float
    live: Mapping[str, float]
    p: float = 0.0
    signs: Mapping[str, float] = field(default_factory=dict)

    def permanent(self, vehicle: str) -> Tuple[float, float, float]:
        """(dc, dw, p) seen from the live-load sign of one vehicle."""
        s = self.signs.get(vehicle, 1.0)
        return s * self.dc, s * self.dw, s * self.p


@dataclass(frozen=True)
class RatingResult:
    section_x: float
    quantity: str
    vehicle: str
    capacity: float
    dc: float
    dw: float
    p: float
    ll_im: float
    inventory_rf: float
    operating_rf: float
    restricted: bool
    restriction_load: Optional[float]
    warnings: Tuple[LimitExceedance, ...] = ()

    def as_dict(self) -> dict:
        return {
            'section_x': self.section_x,
            'quantity': self.quantity,
            'vehicle': self.vehicle,
            'capacity': self.capacity,
            'dc': self.dc,
            'dw': self.dw,
            'p': self.p,
            'll_im': self.ll_im,
            'inventory_rf': self.inventory_rf,
            'operating_rf': self.operating_rf,
            'restricted': self.restricted,
            'restriction_load': self.restriction_load,
        }


def rate_section(
    section_x: float,
    quantity: str,
    capacity: float,
    dc: float,
    dw: float,
    ll_im: float,
    vehicle: Vehicle,
    p: float = 0.0,
    inventory: RatingFactors = INVENTORY,
    operating: RatingFactors = OPERATING,
    threshold: float = RESTRICTION_THRESHOLD,
    posting_level: str = 'operating',
) -> RatingResult:
    """
    Rate one section for one vehicle at inventory and operating levels.

    The restriction (when the governing level RF is below threshold) is
    computed from the operating RF unless posting_level='inventory'.
    """
    inv = rating_factor(capacity, dc, dw, ll_im, inventory, p)
    op = rating_factor(capacity, dc, dw, ll_im, operating, p)
    posting_rf = inv if posting_level == 'inventory' else op

    restricted = inv < threshold
    restriction = recommended_restriction(posting_rf, vehicle.gross_weight) if restricted else None

    warnings = []
    if restricted:
        warnings.append(LimitExceedance(
            kind='rating',
            message=f"Inventory rating factor {inv:.3f} below {threshold:g}",
            value=inv,
            limit=threshold,
            section=section_x,
            vehicle=vehicle.name,
        ))
    if inv < 0:
        logger.warning("Negative rating factor %.3f at x=%.2f for %s", inv, section_x, vehicle.name)

    return RatingResult(
        section_x=section_x,
        quantity=quantity,
        vehicle=vehicle.name,
        capacity=capacity,
        dc=dc,
        dw=dw,
        p=p,
        ll_im=ll_im,
        inventory_rf=inv,
        operating_rf=op,
        restricted=restricted,
        restriction_load=restriction,
        warnings=tuple(warnings),
    )


@dataclass(frozen=True)
class RatingFailure:
    section_x: float
    vehicle: str
    message: str


@dataclass(frozen=True)
class RatingReport:
    results: Tuple[RatingResult, ...]
    failures: Tuple[RatingFailure, ...] = ()

    @property
    def governing(self) -> Optional[RatingResult]:
        """Minimum inventory RF; the first in scan order on ties."""
        best = None
        for r in self.results:
            if best is None or r.inventory_rf < best.inventory_rf:
                best = r
        return best

    @property
    def warnings(self) -> List[LimitExceedance]:
        return [w for r in self.results for w in r.warnings]

    @property
    def restricted(self) -> bool:
        return any(r.restricted for r in self.results)


def rate_all(
    demands: Sequence[SectionDemand],
    vehicles: Union[Mapping[str, Vehicle], Iterable[Vehicle]],
    cancel: CancelToken = None,
    progress: ProgressCallback = None,
    **options,
) -> RatingReport:
    """
    Rate every (section x vehicle) pair in order.

    Cancellation is checked before each pair. A pair that fails is recorded
    with its context and the remaining pairs are still rated.
    """
    if not isinstance(vehicles, Mapping):
        vehicles = {v.name: v for v in vehicles}
    total = max(1, len(demands) * len(vehicles))
    results: List[RatingResult] = []
    failures: List[RatingFailure] = []
    done = 0

    for demand in demands:
        for name, vehicle in vehicles.items():
            if cancel is not None:
                cancel.check(section=demand.section_x, vehicle=name)
            try:
                if name not in demand.live:
                    raise BridgeAnalysisError("No live-load effect for vehicle",
                                              section=demand.section_x, vehicle=name)
                dc, dw, p = demand.permanent(name)
                results.append(rate_section(
                    demand.section_x, demand.quantity, demand.capacity,
                    dc, dw, demand.live[name], vehicle,
                    p=p, **options,
                ))
            except (BridgeAnalysisError, ValueError, ZeroDivisionError) as exc:
                logger.error("Rating failed at x=%.2f for %s: %s", demand.section_x, name, exc)
                failures.append(RatingFailure(demand.section_x, name, str(exc)))
            done += 1
            report(progress, 'rating', 100.0 * done / total)

    return RatingReport(results=tuple(results), failures=tuple(failures))
