# mini_bridge/analysis.py
"""
ANALYSIS PIPELINE
=================

One request in, one result out:

    request -> girder line model -> construction stages -> influence lines
            -> moving-load optimization -> load rating

The pipeline is pure over its inputs (request, catalogs, settings), so the
same call serves both execution tiers:

    BOUNDED     small structures (<= 3 spans, <= 400 elements) under an
                iteration ceiling, run inline and single-threaded
    UNBOUNDED   everything else, queued on the server tier (api.jobs)

check_plan() rejects a request whose tier is not allowed before any
computation starts.
"""

import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from tqdm import tqdm

from .catalog import DEFAULT_CATALOGS, Catalogs
from .distribution import interior_girder_factors, longitudinal_stiffness
from .errors import BridgeAnalysisError, InvalidGeometryError, LimitExceedance, PlanLimitError
from .influence import InfluenceLine, ResponseQuantity, generate_influence_lines
from .losses import Environment, LossMethod, loss_model
from .model import ElementKind, StructuralModel, girder_line
from .moving_load import LaneLoadPattern, MovingLoadResult, Sense, optimize
from .post import (influence_frame, loss_frame, moving_load_frame, rating_frame, records,
                   stage_stress_frame)
from .progress import CancelToken, ProgressCallback, report
from .rating import RatingReport, SectionDemand, rate_all
from .section import (PrestressLayout, Strand, composite_section, effective_flange_width,
                      flexural_capacity, prestress_resultant, shear_capacity)
from .stages import GirderDesign, StagedAnalysisResult, StageKind, run_stages, standard_stages

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisSettings:
    """Engine-wide defaults and tier limits."""
    bounded_max_spans: int = 3
    bounded_max_elements: int = 400
    bounded_max_iterations: int = 5_000_000
    spacing_steps: int = 17
    grid_points: int = 200
    restriction_threshold: float = 1.0
    posting_level: str = 'operating'
    stirrup_area: float = 0.40      # in² per stirrup (two #4 legs)
    stirrup_spacing: float = 12.0   # in


DEFAULT_SETTINGS = AnalysisSettings()


class Tier(str, Enum):
    BOUNDED = 'bounded'
    UNBOUNDED = 'unbounded'


class AnalysisType(str, Enum):
    INFLUENCE_LINES = 'influence_lines'
    MOVING_LOAD = 'moving_load'
    TIME_DEPENDENT = 'time_dependent'
    LOAD_RATING = 'load_rating'


@dataclass(frozen=True)
class AnalysisRequest:
    """
    Everything one analysis needs (kip, inch, ksi, day).

    sections are deck chainages; when empty, the tenth points 0.1, 0.5 and
    0.9 of every span are used. capacities optionally maps a chainage to
    {'moment': ..., 'shear': ...} and replaces the computed nominal values.
    """
    spans: Tuple[float, ...]
    analysis_type: AnalysisType = AnalysisType.LOAD_RATING
    elements_per_span: int = 20
    element_kind: ElementKind = ElementKind.EULER_BERNOULLI
    girder: str = 'AASHTO-IV'
    girder_material: str = 'girder-8ksi'
    deck_material: str = 'deck-4ksi'
    strand_material: str = 'strand-270'
    girder_spacing: float = 96.0
    deck_thickness: float = 8.0
    haunch: float = 0.0
    strands: Tuple[Strand, ...] = ()
    jacking_stress: float = 202.5
    barrier_weight: float = 0.0
    wearing_surface_weight: float = 0.0
    sections: Tuple[float, ...] = ()
    quantities: Tuple[ResponseQuantity, ...] = (ResponseQuantity.MOMENT, ResponseQuantity.SHEAR)
    vehicles: Tuple[str, ...] = ('HL93-truck',)
    loss_method: LossMethod = LossMethod.APPROXIMATE
    stage_ages: Optional[Mapping[StageKind, float]] = None
    environment: Environment = field(default_factory=Environment)
    include_reversed: bool = False
    lane_pattern: LaneLoadPattern = LaneLoadPattern.FOOTPRINT
    distribute_live_load: bool = True
    capacities: Optional[Mapping[float, Mapping[str, float]]] = None


@dataclass(frozen=True)
class AnalysisResult:
    """status is 'completed' here; the job layer adds failed / cancelled."""
    status: str
    summary: dict
    detail: dict
    warnings: Tuple[LimitExceedance, ...] = ()


# =============================================================================
# Tiers
# =============================================================================

def element_count(request: AnalysisRequest) -> int:
    return len(request.spans) * request.elements_per_span


def select_tier(request: AnalysisRequest, settings: AnalysisSettings = DEFAULT_SETTINGS) -> Tier:
    if (len(request.spans) <= settings.bounded_max_spans
            and element_count(request) <= settings.bounded_max_elements):
        return Tier.BOUNDED
    return Tier.UNBOUNDED


def estimated_iterations(request: AnalysisRequest, catalogs: Catalogs = DEFAULT_CATALOGS,
                         settings: AnalysisSettings = DEFAULT_SETTINGS) -> int:
    """Rough count of moving-load candidate evaluations."""
    if request.analysis_type in (AnalysisType.INFLUENCE_LINES, AnalysisType.TIME_DEPENDENT):
        return 0
    n_sections = len(request.sections) or 3 * len(request.spans)
    samples = 100 * len(request.spans) * max(1, int(np.ceil(max(request.spans) / min(request.spans))))
    total = 0
    for name in request.vehicles:
        vehicle = catalogs.vehicle(name)
        axles = len(vehicle.axle_weights)
        spacings = settings.spacing_steps if vehicle.variable_spacing else 1
        directions = 2 if request.include_reversed else 1
        total += spacings * directions * (samples * axles + settings.grid_points) * axles
    return total * n_sections * len(request.quantities) * 2


def check_plan(request: AnalysisRequest, allowed_tiers: Iterable[Tier],
               settings: AnalysisSettings = DEFAULT_SETTINGS,
               catalogs: Catalogs = DEFAULT_CATALOGS) -> Tier:
    """
    Return the request's tier or raise PlanLimitError before any work.
    """
    tier = select_tier(request, settings)
    allowed = {Tier(t) for t in allowed_tiers}
    if tier not in allowed:
        raise PlanLimitError(
            f"Request needs the {tier.value} tier ({len(request.spans)} spans, "
            f"{element_count(request)} elements); allowed: {sorted(t.value for t in allowed)}"
        )
    if tier is Tier.BOUNDED:
        iterations = estimated_iterations(request, catalogs, settings)
        if iterations > settings.bounded_max_iterations:
            if Tier.UNBOUNDED not in allowed:
                raise PlanLimitError(
                    f"Estimated {iterations} search iterations exceed the bounded "
                    f"ceiling of {settings.bounded_max_iterations}"
                )
            tier = Tier.UNBOUNDED
    logger.info("Request tier: %s", tier.value)
    return tier


# =============================================================================
# Building blocks
# =============================================================================

def default_sections(spans: Sequence[float]) -> Tuple[float, ...]:
    out, x0 = [], 0.0
    for L in spans:
        out.extend((x0 + 0.1 * L, x0 + 0.5 * L, x0 + 0.9 * L))
        x0 += L
    return tuple(out)


def build_design(request: AnalysisRequest, catalogs: Catalogs) -> GirderDesign:
    if not request.spans or any(L <= 0 for L in request.spans):
        raise InvalidGeometryError(f"Span lengths must be positive, got {list(request.spans)}")
    girder = catalogs.girder(request.girder)
    girder_mat = catalogs.material(request.girder_material)
    deck_mat = catalogs.material(request.deck_material)
    strand_mat = catalogs.material(request.strand_material)
    b_eff = effective_flange_width(min(request.spans), request.deck_thickness, girder.web_width,
                                   request.girder_spacing, girder.top_flange_width)
    composite = composite_section(girder, request.deck_thickness, b_eff,
                                  deck_mat.E / girder_mat.E, haunch=request.haunch)
    layouts = ()
    if request.strands:
        layouts = tuple(
            PrestressLayout(group=f"span-{k + 1}", strands=tuple(request.strands),
                            jacking_stress=request.jacking_stress, material=strand_mat.name)
            for k in range(len(request.spans))
        )
    return GirderDesign(girder=girder, composite=composite, girder_material=girder_mat,
                        deck_material=deck_mat, strand_material=strand_mat, layouts=layouts)


def build_model(request: AnalysisRequest, design: GirderDesign) -> StructuralModel:
    """Girder line carrying the composite section (the live-load state)."""
    model = girder_line(request.spans, design.composite_section, design.girder_material,
                        request.elements_per_span, ElementKind(request.element_kind))
    model.validate()
    return model


def nominal_capacities(request: AnalysisRequest, design: GirderDesign, model: StructuralModel,
                       x: float, settings: AnalysisSettings) -> Dict[str, float]:
    if request.capacities and x in request.capacities:
        return dict(request.capacities[x])
    g = design.girder
    comp = design.composite
    e, Aps = 0.0, 0.0
    for layout in design.layouts:
        x0, x1 = model.group_extent(layout.group)
        if x0 <= x <= x1:
            Aps = layout.total_area
            _, e = prestress_resultant(layout, x - x0, x1 - x0, layout.jacking_stress)
    dp = comp.h - (g.yb - e)
    strand = design.strand_material
    moment = flexural_capacity(Aps, strand.fpu, strand.fpy, dp, comp.effective_width,
                               design.deck_material.fc, comp.deck_thickness)
    dv = max(0.9 * dp, 0.72 * comp.h)
    shear = shear_capacity(design.girder_material.fc, g.web_width, dv,
                           settings.stirrup_area, settings.stirrup_spacing)
    return {'moment': moment, 'shear': shear}


def _line_label(line: InfluenceLine) -> str:
    return f"{line.quantity.value}@{line.section_x:g}"


def _sense_for(quantity: ResponseQuantity) -> Sense:
    return Sense.MAX if quantity is ResponseQuantity.MOMENT else Sense.ABS


# =============================================================================
# Pipeline
# =============================================================================

def run_analysis(
    request: AnalysisRequest,
    catalogs: Catalogs = DEFAULT_CATALOGS,
    settings: AnalysisSettings = DEFAULT_SETTINGS,
    cancel: CancelToken = None,
    progress: ProgressCallback = None,
) -> AnalysisResult:
    """
    Run one analysis request end to end.

    Raises:
        InvalidGeometryError: malformed model, before any solve
        CancelledError: cancellation observed between work units
    """
    analysis_type = AnalysisType(request.analysis_type)
    tier = select_tier(request, settings)
    report(progress, 'model', 0.0, 'building model')

    design = build_design(request, catalogs)
    model = build_model(request, design)
    sections = tuple(request.sections) or default_sections(request.spans)
    quantities = tuple(ResponseQuantity(q) for q in request.quantities)
    vehicles = [catalogs.vehicle(name) for name in request.vehicles]
    summary = {'analysis_type': analysis_type.value, 'tier': tier.value,
               'spans': list(request.spans), 'elements': len(model.elements)}
    detail: dict = {}
    warnings: List[LimitExceedance] = []

    staged: Optional[StagedAnalysisResult] = None
    if analysis_type in (AnalysisType.TIME_DEPENDENT, AnalysisType.LOAD_RATING):
        stages = standard_stages(
            design.girder_weight,
            design.deck_weight(request.girder_spacing, request.haunch),
            request.barrier_weight,
            request.wearing_surface_weight,
            request.stage_ages,
            request.environment,
        )
        staged = run_stages(model, stages, design, loss_model(request.loss_method),
                            cancel=cancel, progress=progress)
        warnings.extend(staged.warnings)
        detail['stages'] = records(stage_stress_frame(staged))
        detail['losses'] = records(loss_frame(staged))
        summary['failed_stages'] = [s.name for s in staged.failed]
        final = staged.final()
        if final is not None:
            summary['max_girder_bottom_stress'] = float(np.max(final.stresses['girder_bottom']))
            summary['min_girder_bottom_stress'] = float(np.min(final.stresses['girder_bottom']))
        if staged.histories:
            summary['effective_prestress'] = {g: h.effective_stress() for g, h in staged.histories.items()}

    if analysis_type is AnalysisType.TIME_DEPENDENT:
        return _finish(summary, detail, warnings)

    if cancel is not None:
        cancel.check()
    report(progress, 'influence', 0.0, f'{len(sections) * len(quantities)} influence lines')
    lines = generate_influence_lines(model, [(q, x) for x in sections for q in quantities])
    detail['influence_lines'] = records(influence_frame(lines))
    summary['max_ordinates'] = {_line_label(l): l.extreme()[1] for l in lines}
    report(progress, 'influence', 100.0)

    if analysis_type is AnalysisType.INFLUENCE_LINES:
        return _finish(summary, detail, warnings)

    moving: Dict[Tuple[int, str], MovingLoadResult] = {}
    for k, line in enumerate(lines):
        if cancel is not None:
            cancel.check(section=line.section_x)
        for vehicle in vehicles:
            moving[(k, vehicle.name)] = optimize(
                line, vehicle, _sense_for(line.quantity), request.lane_pattern,
                request.include_reversed, settings.spacing_steps, settings.grid_points,
            )
        report(progress, 'moving_load', 100.0 * (k + 1) / len(lines))
    detail['moving_load'] = records(moving_load_frame(moving.values()))
    summary['max_responses'] = {
        f"{_line_label(lines[k])}/{name}": r.response_with_impact for (k, name), r in moving.items()
    }

    if analysis_type is AnalysisType.MOVING_LOAD:
        return _finish(summary, detail, warnings)

    factors = None
    if request.distribute_live_load:
        Kg = longitudinal_stiffness(design.girder, request.deck_thickness,
                                    design.girder_material.E / design.deck_material.E, request.haunch)
        factors = interior_girder_factors(request.girder_spacing, max(request.spans),
                                          request.deck_thickness, Kg)
        warnings.extend(factors.warnings)
        summary['distribution_factors'] = {'moment': factors.moment, 'shear': factors.shear}

    demands = []
    for k, line in enumerate(lines):
        if line.quantity not in (ResponseQuantity.MOMENT, ResponseQuantity.SHEAR):
            continue
        x = line.section_x
        key = 'moment' if line.quantity is ResponseQuantity.MOMENT else 'shear'
        effects = staged.permanent_effects(x)
        capacity = nominal_capacities(request, design, model, x, settings)[key]
        df = 1.0 if factors is None else (factors.moment if key == 'moment' else factors.shear)
        live, signs = {}, {}
        for vehicle in vehicles:
            value = moving[(k, vehicle.name)].response_with_impact * df
            live[vehicle.name] = abs(value)
            signs[vehicle.name] = 1.0 if value >= 0 else -1.0
        demands.append(SectionDemand(
            section_x=x,
            quantity=key,
            capacity=capacity,
            dc=effects[f'DC_{key}'],
            dw=effects[f'DW_{key}'],
            p=effects['P_moment'] if key == 'moment' else 0.0,
            live=live,
            signs=signs,
        ))

    rating: RatingReport = rate_all(demands, vehicles, cancel=cancel, progress=progress,
                                    threshold=settings.restriction_threshold,
                                    posting_level=settings.posting_level)
    warnings.extend(rating.warnings)
    detail['rating'] = records(rating_frame(rating))
    detail['rating_failures'] = [asdict(f) for f in rating.failures]
    governing = rating.governing
    if governing is not None:
        summary.update({
            'minimum_rating_factor': governing.inventory_rf,
            'operating_rating_factor': governing.operating_rf,
            'critical_section': governing.section_x,
            'critical_quantity': governing.quantity,
            'governing_vehicle': governing.vehicle,
            'restricted': rating.restricted,
            'restriction_load': governing.restriction_load,
        })
    return _finish(summary, detail, warnings)


def _finish(summary: dict, detail: dict, warnings: List[LimitExceedance]) -> AnalysisResult:
    summary['warnings'] = len(warnings)
    detail['warnings'] = [w.as_dict() for w in warnings]
    logger.info("Analysis complete: %s", {k: v for k, v in summary.items() if not isinstance(v, dict)})
    return AnalysisResult(status='completed', summary=summary, detail=detail, warnings=tuple(warnings))


def run_batch(
    requests: Sequence[AnalysisRequest],
    catalogs: Catalogs = DEFAULT_CATALOGS,
    settings: AnalysisSettings = DEFAULT_SETTINGS,
    show_progress: bool = True,
) -> pd.DataFrame:
    """
    Run a parametric sweep of requests and tabulate their summaries.

    Returns:
    --------
    pd.DataFrame
        One row per request; 'ok' and 'reason' record failures instead of
        stopping the sweep
    """
    rows = []
    iterator = tqdm(requests, desc="Analysing") if show_progress else requests
    for request in iterator:
        row = {'spans': tuple(request.spans), 'girder': request.girder,
               'analysis_type': AnalysisType(request.analysis_type).value}
        try:
            result = run_analysis(request, catalogs, settings)
        except BridgeAnalysisError as exc:
            row.update({'ok': False, 'reason': str(exc)})
        else:
            row.update({'ok': True, 'reason': ''})
            row.update({k: v for k, v in result.summary.items()
                        if not isinstance(v, (dict, list))})
        rows.append(row)
    return pd.DataFrame(rows)
