# mini_bridge/moving_load.py
"""
MOVING LOAD OPTIMIZER
=====================

Places a vehicle on an influence line to find the extreme response:

    response = sum_k  W_k * eta(x_k)  +  w_lane * integral(eta over the lane)

The vehicle travels in +x with the lead axle at position p and axle k at
p - offset_k. Every position where at least one axle is on the structure
is admissible, so partially overhanging placements on short spans are
searched too. Since eta is piecewise linear, the response is piecewise
linear in p between breakpoints (an axle over a sample), and the extreme
sits on a breakpoint; the candidate set is

    breakpoints  (sample + offset_k, for every sample and axle)
    extent limits
    a uniform grid across the admissible range

evaluated all at once with numpy. With a footprint lane load the response
is piecewise quadratic instead, and the roots of its slope between
adjacent candidates are added. Variable axle spacing and the reversed
vehicle are searched as outer dimensions: a uniform spacing grid plus the
spacing of the best (position, spacing) vertex, where one axle ahead of
and one behind the variable gap each sit over a sample.

Scan order, used to break ties (relative tolerance 1e-9):
    spacing ascending -> forward before reversed -> position ascending
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .catalog import Vehicle
from .influence import InfluenceLine

logger = logging.getLogger(__name__)

TIE_TOLERANCE = 1e-9
GRID_POINTS = 200
SPACING_STEPS = 17


class Sense(str, Enum):
    MAX = 'max'
    MIN = 'min'
    ABS = 'abs'


class LaneLoadPattern(str, Enum):
    FOOTPRINT = 'footprint'   # lane load between the first and last axle
    ADVERSE = 'adverse'       # lane load over every region of the governing sign


@dataclass(frozen=True)
class MovingLoadResult:
    """
    Governing placement of one vehicle on one influence line.

    response excludes dynamic allowance and multiple presence;
    response_with_impact = ((1 + IM) * axle_response + lane_response) * m.
    """
    vehicle: str
    quantity: str
    section_x: float
    sense: Sense
    position: float
    spacing: Optional[float]
    reversed: bool
    axle_positions: Tuple[float, ...]
    axle_response: float
    lane_response: float
    impact: float
    multiple_presence: float

    @property
    def response(self) -> float:
        return self.axle_response + self.lane_response

    @property
    def response_with_impact(self) -> float:
        return ((1.0 + self.impact) * self.axle_response + self.lane_response) * self.multiple_presence

    def as_dict(self) -> dict:
        return {
            'vehicle': self.vehicle,
            'quantity': self.quantity,
            'section_x': self.section_x,
            'sense': self.sense.value,
            'position': self.position,
            'spacing': self.spacing,
            'reversed': self.reversed,
            'axle_positions': list(self.axle_positions),
            'response': self.response,
            'response_with_impact': self.response_with_impact,
        }


def spacing_grid(vehicle: Vehicle, steps: int = SPACING_STEPS) -> List[Optional[float]]:
    vs = vehicle.variable_spacing
    if vs is None or vs.maximum <= vs.minimum:
        return [None]
    return list(np.linspace(vs.minimum, vs.maximum, max(steps, 2)))


def candidate_positions(line: InfluenceLine, offsets: np.ndarray,
                        grid_points: int = GRID_POINTS) -> np.ndarray:
    """Sorted, unique lead-axle positions with at least one axle on the line."""
    x0, x1 = line.extent
    lo, hi = x0, x1 + offsets[-1]
    breakpoints = (line.positions[:, None] + offsets[None, :]).ravel()
    limits = np.concatenate(([lo, hi], x0 + offsets, x1 + offsets))
    grid = np.linspace(lo, hi, grid_points)
    p = np.concatenate((breakpoints, limits, grid))
    p = p[(p >= lo) & (p <= hi)]
    return np.unique(p)


def _lane_response(line: InfluenceLine, vehicle: Vehicle, p: np.ndarray, length,
                   lane_pattern: LaneLoadPattern, sense: Sense) -> np.ndarray:
    """Lane effect for lead positions p and vehicle lengths (scalar or per position)."""
    if not vehicle.lane_load:
        return np.zeros_like(p)
    if lane_pattern is LaneLoadPattern.FOOTPRINT:
        return vehicle.lane_load * (line.area_to(p) - line.area_to(p - length))
    positive = sense is Sense.MAX or (sense is Sense.ABS and line.positive_area >= -line.negative_area)
    area = line.positive_area if positive else line.negative_area
    return np.full_like(p, vehicle.lane_load * area)


def _stationary_positions(line: InfluenceLine, vehicle: Vehicle, p: np.ndarray,
                          offsets: np.ndarray, axle: np.ndarray) -> np.ndarray:
    """
    Interior extremes of the footprint lane objective.

    Between adjacent candidates the axle term is linear and the lane term
    quadratic, so the slope (1 + IM) * axle' + w * (eta(p) - eta(p - L))
    is linear there; a sign change brackets an extreme at its root.
    """
    if len(p) < 2:
        return p[:0]
    dp = np.diff(p)
    slope = (1.0 + vehicle.impact) * np.diff(axle) / dp
    g = vehicle.lane_load * (line.ordinate_at(p) - line.ordinate_at(p - offsets[-1]))
    d0 = slope + g[:-1]
    d1 = slope + g[1:]
    crossing = d0 * d1 < 0.0
    if not crossing.any():
        return p[:0]
    d0, d1 = d0[crossing], d1[crossing]
    return p[:-1][crossing] + d0 / (d0 - d1) * dp[crossing]


def _scan(line: InfluenceLine, vehicle: Vehicle, spacing, lane_pattern: LaneLoadPattern,
          sense: Sense, grid_points: int):
    offsets = np.asarray(vehicle.axle_offsets(spacing), dtype=float)
    weights = np.asarray(vehicle.axle_weights, dtype=float)
    p = candidate_positions(line, offsets, grid_points)
    axle = line.ordinate_at(p[:, None] - offsets[None, :]) @ weights

    if vehicle.lane_load and lane_pattern is LaneLoadPattern.FOOTPRINT:
        extra = _stationary_positions(line, vehicle, p, offsets, axle)
        if len(extra):
            p = np.unique(np.concatenate((p, extra)))
            axle = line.ordinate_at(p[:, None] - offsets[None, :]) @ weights

    lane = _lane_response(line, vehicle, p, offsets[-1], lane_pattern, sense)
    return p, offsets, axle, lane


def _pick(values: np.ndarray, sense: Sense) -> int:
    """First index reaching the extreme within the tie tolerance."""
    target = np.abs(values) if sense is Sense.ABS else (values if sense is Sense.MAX else -values)
    best = float(np.max(target))
    tol = TIE_TOLERANCE * max(abs(best), 1e-300)
    return int(np.flatnonzero(target >= best - tol)[0])


def _vertex_spacing(line: InfluenceLine, vehicle: Vehicle, lane_pattern: LaneLoadPattern,
                    sense: Sense) -> Optional[float]:
    """
    Best variable spacing over the (position, spacing) vertices.

    Axles ahead of the variable gap sit at p - f_k and those behind it at
    p - s - g_m, so the axle response is piecewise linear in (p, s) with
    creases along p = x_a + f_k and p - s = x_b + g_m. Interior extremes
    sit where one crease of each family meets.
    """
    vs = vehicle.variable_spacing
    off = np.asarray(vehicle.axle_offsets(vs.minimum), dtype=float)
    weights = np.asarray(vehicle.axle_weights, dtype=float)
    behind = np.arange(len(off)) > vs.index

    p = (line.positions[:, None] + off[None, ~behind]).ravel()
    q = (line.positions[:, None] + off[None, behind] - vs.minimum).ravel()
    s = p[:, None] - q[None, :]
    inside = (s >= vs.minimum) & (s <= vs.maximum)
    if not inside.any():
        return None
    p = np.broadcast_to(p[:, None], s.shape)[inside]
    s = s[inside]

    offsets = off[None, :] + np.where(behind, 1.0, 0.0)[None, :] * (s - vs.minimum)[:, None]
    x0, x1 = line.extent
    ok = (p >= x0) & (p - offsets[:, -1] <= x1)
    if not ok.any():
        return None
    p, s, offsets = p[ok], s[ok], offsets[ok]

    axle = line.ordinate_at(p[:, None] - offsets) @ weights
    lane = _lane_response(line, vehicle, p, offsets[:, -1], lane_pattern, sense)
    return float(s[_pick((1.0 + vehicle.impact) * axle + lane, sense)])


def _spacings(variants, steps: int, lane_pattern: LaneLoadPattern, sense: Sense,
              line: InfluenceLine) -> List[Optional[float]]:
    """Uniform spacing grid plus the best vertex spacing of each variant, ascending."""
    spacings = spacing_grid(variants[0][0], steps)
    if spacings == [None]:
        return spacings
    for v, _ in variants:
        s = _vertex_spacing(line, v, lane_pattern, sense)
        if s is not None and not any(abs(s - g) <= TIE_TOLERANCE * max(abs(g), 1.0) for g in spacings):
            spacings.append(s)
    return sorted(spacings)


def optimize(
    line: InfluenceLine,
    vehicle: Vehicle,
    sense: Sense = Sense.MAX,
    lane_pattern: LaneLoadPattern = LaneLoadPattern.FOOTPRINT,
    include_reversed: bool = False,
    spacing_steps: int = SPACING_STEPS,
    grid_points: int = GRID_POINTS,
) -> MovingLoadResult:
    """
    Find the governing placement of a vehicle on an influence line.

    The objective is the design response ((1 + IM) * axles + lane); ties
    are broken by the stable scan order in the module docstring.

    Parameters:
    -----------
    line : InfluenceLine
    vehicle : Vehicle
    sense : Sense
        MAX (most positive), MIN (most negative) or ABS (largest magnitude)
    lane_pattern : LaneLoadPattern
        FOOTPRINT (default) or ADVERSE
    include_reversed : bool
        Also search the vehicle driving the other way (axle order flipped)
    """
    sense = Sense(sense)
    lane_pattern = LaneLoadPattern(lane_pattern)
    variants = [(vehicle, False)]
    if include_reversed:
        variants.append((vehicle.reversed(), True))

    chunks = []
    for spacing in _spacings(variants, spacing_steps, lane_pattern, sense, line):
        for v, rev in variants:
            p, offsets, axle, lane = _scan(line, v, spacing, lane_pattern, sense, grid_points)
            chunks.append((spacing, rev, v, p, offsets, axle, lane))

    objective = np.concatenate([(1.0 + vehicle.impact) * axle + lane for *_, axle, lane in chunks])
    k = _pick(objective, sense)

    for spacing, rev, v, p, offsets, axle, lane in chunks:
        if k < len(p):
            break
        k -= len(p)

    result = MovingLoadResult(
        vehicle=vehicle.name,
        quantity=line.quantity.value,
        section_x=line.section_x,
        sense=sense,
        position=float(p[k]),
        spacing=None if spacing is None else float(spacing),
        reversed=rev,
        axle_positions=tuple(float(x) for x in p[k] - offsets),
        axle_response=float(axle[k]),
        lane_response=float(lane[k]),
        impact=vehicle.impact,
        multiple_presence=vehicle.multiple_presence,
    )
    logger.debug("%s on %s@%g: %s response %.3f at p=%.3f",
                 vehicle.name, result.quantity, line.section_x, sense.value,
                 result.response_with_impact, result.position)
    return result


def envelope(
    line: InfluenceLine,
    vehicle: Vehicle,
    **options,
) -> Tuple[MovingLoadResult, MovingLoadResult]:
    """Governing (maximum, minimum) placements."""
    return (optimize(line, vehicle, Sense.MAX, **options),
            optimize(line, vehicle, Sense.MIN, **options))


def optimize_all(
    lines: Sequence[InfluenceLine],
    vehicles: Iterable[Vehicle],
    sense: Sense = Sense.ABS,
    **options,
) -> Dict[Tuple[int, str], MovingLoadResult]:
    """Every (line index, vehicle name) pair, in scan order."""
    vehicles = list(vehicles)
    return {
        (k, v.name): optimize(line, v, sense, **options)
        for k, line in enumerate(lines)
        for v in vehicles
    }
