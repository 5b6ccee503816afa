# mini_bridge/stages.py
"""
CONSTRUCTION STAGE MANAGER
==========================

Sequences the analyses of a precast, pretensioned girder line:

    TRANSFER        girder self-weight + prestress, bare girder section
    DECK_PLACEMENT  wet deck weight, still the bare girder section
    COMPOSITE       barriers / wearing surface, composite section
    SERVICE         no new load, losses brought to long-term values

Each stage is an independent linear solve of the loads introduced at that
stage (DC, DW and the prestress change since the previous stage) on the
section valid at that stage. Nothing but the stress and loss history
carries from one stage to the next; the stage's own displacements and
actions are kept for output.

Stresses are tension positive and cumulative:

    girder bottom   N/A + M yb / I
    girder top      N/A - M (y_girder_top - yb) / I
    deck top        n (N/A - M (y_deck_top - yb) / I)      composite stages

A SingularityError fails only the stage it happens in: its results are
withheld and the following stages still run.
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from .catalog import GirderShape, Material, SectionProperties
from .errors import InvalidGeometryError, LimitExceedance, SingularityError
from .kernel.dof import DOF_3D_FRAME, DOFManager
from .loads import EquivalentLoads, assemble_gravity_udl, empty_loads
from .losses import (Environment, LossBreakdown, LossHistory, LossModel,
                     PrestressContext, loss_warnings)
from .model import StructuralModel
from .progress import CancelToken, ProgressCallback, report
from .section import (CompositeSection, PrestressLayout, prestress_equivalent_loads,
                      prestress_resultant)
from .solve import DeckActions, factor_model, solve_cases

logger = logging.getLogger(__name__)


class StageKind(str, Enum):
    TRANSFER = 'transfer'
    DECK_PLACEMENT = 'deck_placement'
    COMPOSITE = 'composite'
    SERVICE = 'service'

    @property
    def composite(self) -> bool:
        return self in (StageKind.COMPOSITE, StageKind.SERVICE)


STAGE_ORDER = tuple(StageKind)


class LoadCategory(str, Enum):
    DC = 'DC'   # structural components and attachments
    DW = 'DW'   # wearing surface and utilities


@dataclass(frozen=True)
class StageLoad:
    """Uniform downward load introduced at a stage (force per length)."""
    name: str
    w: float
    category: LoadCategory = LoadCategory.DC


@dataclass(frozen=True)
class ConstructionStage:
    name: str
    kind: StageKind
    age_days: float
    environment: Environment = field(default_factory=Environment)
    loads: Tuple[StageLoad, ...] = ()


class StageOrderError(InvalidGeometryError):
    """Stages out of order, repeated, or going back in time."""
    pass


def validate_stage_order(stages: Sequence[ConstructionStage]) -> None:
    if not stages:
        raise StageOrderError("No construction stages given")
    last_rank, last_age = -1, -math.inf
    for stage in stages:
        rank = STAGE_ORDER.index(StageKind(stage.kind))
        if rank <= last_rank:
            raise StageOrderError(
                f"Stage kind '{stage.kind.value}' out of order or repeated", stage=stage.name
            )
        if stage.age_days < last_age:
            raise StageOrderError(
                f"Stage age {stage.age_days} precedes the previous stage ({last_age})",
                stage=stage.name,
            )
        last_rank, last_age = rank, stage.age_days


@dataclass(frozen=True)
class GirderDesign:
    """Girder, deck and strands of one girder line."""
    girder: GirderShape
    composite: CompositeSection
    girder_material: Material
    deck_material: Material
    strand_material: Material
    layouts: Tuple[PrestressLayout, ...] = ()
    transfer_age: float = 1.0

    @property
    def girder_section(self) -> SectionProperties:
        return self.girder.properties()

    @property
    def composite_section(self) -> SectionProperties:
        return self.composite.properties()

    @property
    def girder_weight(self) -> float:
        return self.girder.A * self.girder_material.unit_weight

    def deck_weight(self, girder_spacing: float, haunch: float = 0.0) -> float:
        """Wet deck plus haunch weight carried by one girder."""
        area = self.composite.deck_thickness * girder_spacing + haunch * self.girder.top_flange_width
        return area * self.deck_material.unit_weight


DEFAULT_STAGE_AGES = {
    StageKind.TRANSFER: 0.0,
    StageKind.DECK_PLACEMENT: 60.0,
    StageKind.COMPOSITE: 90.0,
    StageKind.SERVICE: 20000.0,
}


def standard_stages(
    girder_weight: float,
    deck_weight: float,
    barrier_weight: float = 0.0,
    wearing_surface_weight: float = 0.0,
    ages: Mapping[StageKind, float] = None,
    environment: Environment = None,
) -> Tuple[ConstructionStage, ...]:
    """The four standard stages with their incremental loads."""
    ages = {**DEFAULT_STAGE_AGES, **(ages or {})}
    env = environment or Environment()
    composite_loads = []
    if barrier_weight:
        composite_loads.append(StageLoad('barrier', barrier_weight, LoadCategory.DC))
    if wearing_surface_weight:
        composite_loads.append(StageLoad('wearing-surface', wearing_surface_weight, LoadCategory.DW))
    return (
        ConstructionStage('Transfer', StageKind.TRANSFER, ages[StageKind.TRANSFER], env,
                          (StageLoad('girder', girder_weight),)),
        ConstructionStage('Deck placement', StageKind.DECK_PLACEMENT, ages[StageKind.DECK_PLACEMENT], env,
                          (StageLoad('deck', deck_weight),)),
        ConstructionStage('Composite', StageKind.COMPOSITE, ages[StageKind.COMPOSITE], env,
                          tuple(composite_loads)),
        ConstructionStage('Service', StageKind.SERVICE, ages[StageKind.SERVICE], env),
    )


# =============================================================================
# Results
# =============================================================================

FIBERS = ('girder_bottom', 'girder_top', 'deck_top')


@dataclass(frozen=True)
class StageResult:
    """
    Outcome of one stage.

    actions holds the stage increment per case ('DC', 'DW', 'PS');
    secondary is the increment of the secondary prestress moment;
    stresses are cumulative up to and including this stage.
    """
    name: str
    kind: StageKind
    age_days: float
    status: str
    x: np.ndarray
    actions: Mapping[str, DeckActions] = field(default_factory=dict)
    secondary: Optional[np.ndarray] = None
    stresses: Mapping[str, np.ndarray] = field(default_factory=dict)
    losses: Mapping[str, LossBreakdown] = field(default_factory=dict)
    effective_stress: Mapping[str, float] = field(default_factory=dict)
    warnings: Tuple[LimitExceedance, ...] = ()
    error: Optional[str] = None

    def __post_init__(self):
        # each stage owns a frozen copy of the chainages
        x = np.array(self.x, dtype=float)
        x.setflags(write=False)
        object.__setattr__(self, 'x', x)

    @property
    def completed(self) -> bool:
        return self.status == 'completed'


@dataclass(frozen=True)
class StagedAnalysisResult:
    stages: Tuple[StageResult, ...]
    histories: Mapping[str, LossHistory]

    @property
    def warnings(self) -> List[LimitExceedance]:
        return [w for s in self.stages for w in s.warnings]

    @property
    def failed(self) -> List[StageResult]:
        return [s for s in self.stages if not s.completed]

    def stage(self, name: str) -> StageResult:
        for s in self.stages:
            if s.name == name or s.kind.value == name:
                return s
        raise KeyError(f"No stage '{name}'")

    def final(self) -> Optional[StageResult]:
        completed = [s for s in self.stages if s.completed]
        return completed[-1] if completed else None

    def cumulative(self, case: str) -> Optional[DeckActions]:
        """Sum of one case's actions over every completed stage."""
        total = None
        for s in self.stages:
            if s.completed and case in s.actions:
                total = s.actions[case] if total is None else total + s.actions[case]
        return total

    def secondary_moment(self) -> Optional[np.ndarray]:
        parts = [s.secondary for s in self.stages if s.completed and s.secondary is not None]
        return np.sum(parts, axis=0) if parts else None

    def permanent_effects(self, x: float) -> Dict[str, float]:
        """Cumulative DC, DW and secondary prestress effects at chainage x."""
        out = {}
        for case in ('DC', 'DW'):
            actions = self.cumulative(case)
            out[f'{case}_moment'] = actions.at(x, 'M') if actions is not None else 0.0
            out[f'{case}_shear'] = actions.at(x, 'V') if actions is not None else 0.0
        final = self.final()
        secondary = self.secondary_moment()
        out['P_moment'] = float(np.interp(x, final.x, secondary)) if secondary is not None else 0.0
        return out


# =============================================================================
# Runner
# =============================================================================

def _node_sections(model: StructuralModel) -> List[SectionProperties]:
    elements = model.deck_elements()
    sections = [model.sections[e.section] for e in elements]
    return sections + [sections[-1]]


def _fiber_stresses(model: StructuralModel, actions: DeckActions, composite: bool) -> Dict[str, np.ndarray]:
    sections = _node_sections(model)
    A = np.array([s.A for s in sections])
    I = np.array([s.Iy for s in sections])
    yb = np.array([s.yb for s in sections])
    y_top = np.array([s.y_girder_top if s.y_girder_top is not None else s.h for s in sections])
    axial = actions.N / A
    out = {
        'girder_bottom': axial + actions.M * yb / I,
        'girder_top': axial - actions.M * (y_top - yb) / I,
        'deck_top': np.zeros_like(axial),
    }
    if composite:
        y_deck = np.array([s.y_deck_top for s in sections])
        n = np.array([s.modular_ratio for s in sections])
        out['deck_top'] = n * (axial - actions.M * (y_deck - yb) / I)
    return out


def stress_limits(kind: StageKind, girder: Material, deck: Material) -> Dict[str, Tuple[float, float]]:
    """(compression, tension) limits per fiber, compression negative."""
    if kind is StageKind.TRANSFER:
        limits = (-0.65 * girder.fci, 0.24 * math.sqrt(girder.fci))
    else:
        limits = (-0.45 * girder.fc, 0.19 * math.sqrt(girder.fc))
    out = {'girder_bottom': limits, 'girder_top': limits}
    if kind.composite:
        out['deck_top'] = (-0.45 * deck.fc, math.inf)
    return out


def _check_stresses(stage: ConstructionStage, x: np.ndarray, stresses: Mapping[str, np.ndarray],
                    design: GirderDesign) -> List[LimitExceedance]:
    """One warning per fiber and limit, at the worst location."""
    found = []
    for fiber, (comp, tens) in stress_limits(stage.kind, design.girder_material, design.deck_material).items():
        s = stresses[fiber]
        k = int(np.argmin(s))
        if s[k] < comp:
            found.append(LimitExceedance('stress', f"{fiber} compression exceeds limit",
                                         float(s[k]), comp, stage=stage.name, section=float(x[k])))
        k = int(np.argmax(s))
        if s[k] > tens:
            found.append(LimitExceedance('stress', f"{fiber} tension exceeds limit",
                                         float(s[k]), tens, stage=stage.name, section=float(x[k])))
    for w in found:
        logger.warning("Stage %s: %s (%.3f vs %.3f at x=%.1f)", w.stage, w.message, w.value, w.limit, w.section)
    return found


def _stage_udl(model: StructuralModel, stage: ConstructionStage, category: LoadCategory,
               dof: DOFManager) -> EquivalentLoads:
    loads = empty_loads(model, dof)
    for load in stage.loads:
        if LoadCategory(load.category) is category:
            loads = loads + assemble_gravity_udl(model, {'*': load.w}, dof)
    return loads


def _primary_moment(model: StructuralModel, layouts: Sequence[PrestressLayout], stress: Mapping[str, float],
                    x: np.ndarray, shift: float) -> np.ndarray:
    """-P(x) e(x) at the deck nodes for the given stress increments."""
    M = np.zeros_like(x)
    for layout in layouts:
        x0, x1 = model.group_extent(layout.group)
        for k, xk in enumerate(x):
            if x0 - 1e-9 <= xk <= x1 + 1e-9:
                P, e = prestress_resultant(layout, xk - x0, x1 - x0, stress[layout.group])
                M[k] += -P * (e + shift)
    return M


def _context(design: GirderDesign, layout: PrestressLayout, model: StructuralModel,
             Mg: float) -> Tuple[float, PrestressContext]:
    x0, x1 = model.group_extent(layout.group)
    mid = 0.5 * (x0 + x1)
    _, e = prestress_resultant(layout, mid - x0, x1 - x0, layout.jacking_stress)
    g = design.girder
    strand = design.strand_material
    concrete = design.girder_material
    return mid, PrestressContext(
        Aps=layout.total_area,
        fpj=layout.jacking_stress,
        Ag=g.A,
        Ig=g.I,
        e=e,
        Ep=strand.E,
        Eci=concrete.Eci,
        fci=concrete.fci,
        fpu=strand.fpu,
        fpy=strand.fpy,
        Mg=Mg,
        transfer_age=design.transfer_age,
    )


def run_stages(
    model: StructuralModel,
    stages: Sequence[ConstructionStage],
    design: GirderDesign,
    loss_model: LossModel,
    dof: DOFManager = DOF_3D_FRAME,
    cancel: CancelToken = None,
    progress: ProgressCallback = None,
) -> StagedAnalysisResult:
    """
    Run every stage in order.

    Parameters:
    -----------
    model : StructuralModel
        Girder line; its element groups must match the layout groups
    stages : Sequence[ConstructionStage]
        Strictly ordered TRANSFER -> DECK_PLACEMENT -> COMPOSITE -> SERVICE
        (a prefix or subset in that order); with prestress the first
        stage must be TRANSFER
    design : GirderDesign
    loss_model : LossModel
        ApproximateLossModel or RefinedLossModel

    Raises:
    -------
    StageOrderError, InvalidGeometryError : before any solve
    CancelledError : between stages
    """
    validate_stage_order(stages)
    if design.layouts and StageKind(stages[0].kind) is not StageKind.TRANSFER:
        raise StageOrderError("Prestressed girders need a TRANSFER stage first", stage=stages[0].name)

    groups = model.groups()
    girder_sec = design.girder_section
    composite_sec = design.composite_section
    girder_model = model.with_sections({g: girder_sec.name for g in groups}, {girder_sec.name: girder_sec})
    composite_model = model.with_sections({g: composite_sec.name for g in groups},
                                          {composite_sec.name: composite_sec})
    girder_model.validate()

    x = np.array([girder_model.nodes[n].x for n in girder_model.deck_nodes()])
    cumulative = {f: np.zeros_like(x) for f in FIBERS}
    histories = {layout.group: LossHistory(layout.jacking_stress) for layout in design.layouts}
    applied = {layout.group: 0.0 for layout in design.layouts}
    contexts: Dict[str, Tuple[float, PrestressContext]] = {}
    results: List[StageResult] = []

    for i, stage in enumerate(stages):
        if cancel is not None:
            cancel.check(stage=stage.name)
        kind = StageKind(stage.kind)
        report(progress, 'stages', 100.0 * i / len(stages), stage.name)
        logger.info("Stage %s (%s, age %.0f days)", stage.name, kind.value, stage.age_days)

        stage_model = composite_model if kind.composite else girder_model
        section = composite_sec if kind.composite else girder_sec
        shift = design.composite.centroid_shift if kind.composite else 0.0
        warnings: List[LimitExceedance] = []

        try:
            system = factor_model(stage_model, dof)
            cases = {
                'DC': _stage_udl(stage_model, stage, LoadCategory.DC, dof),
                'DW': _stage_udl(stage_model, stage, LoadCategory.DW, dof),
            }
            actions = solve_cases(stage_model, cases, dof, system)
            if not contexts:
                for layout in design.layouts:
                    mid = 0.5 * sum(stage_model.group_extent(layout.group))
                    contexts[layout.group] = _context(design, layout, stage_model, actions['DC'].at(mid))
            stage_error = None
        except SingularityError as exc:
            stage_error = exc
            actions = {}

        # losses up to this stage's age; independent of the stage solve
        losses, effective = {}, {}
        for layout in design.layouts:
            if layout.group not in contexts:
                contexts[layout.group] = _context(design, layout, girder_model, 0.0)
            mid, ctx = contexts[layout.group]
            breakdown = loss_model.losses_at(stage.age_days, ctx, stage.environment)
            breakdown = histories[layout.group].record(stage.name, stage.age_days, breakdown)
            losses[layout.group] = breakdown
            effective[layout.group] = breakdown.effective_stress(layout.jacking_stress)
            warnings.extend(loss_warnings(breakdown, layout.jacking_stress, stage.name, mid))

        if stage_error is not None:
            logger.error("Stage %s failed: %s", stage.name, stage_error)
            results.append(StageResult(
                name=stage.name, kind=kind, age_days=stage.age_days, status='failed', x=x,
                losses=MappingProxyType(losses), effective_stress=MappingProxyType(effective),
                warnings=tuple(warnings),
                error=str(SingularityError(str(stage_error), stage=stage.name)),
            ))
            continue

        increment = {g: effective[g] - applied[g] for g in applied}
        ps_loads = empty_loads(stage_model, dof)
        for layout in design.layouts:
            ps_loads = ps_loads + prestress_equivalent_loads(
                stage_model, layout, increment[layout.group], dof, centroid_shift=shift)
        ps = solve_cases(stage_model, {'PS': ps_loads}, dof, system)['PS']
        actions = {**actions, 'PS': ps}
        secondary = ps.M - _primary_moment(stage_model, design.layouts, increment, x, shift)
        applied.update(effective)

        total = actions['DC'] + actions['DW'] + ps
        for fiber, value in _fiber_stresses(stage_model, total, kind.composite).items():
            cumulative[fiber] = cumulative[fiber] + value

        # superimposed stress change at the strand, for the refined loss model
        if kind is not StageKind.TRANSFER:
            for group, (mid, ctx) in contexts.items():
                dM = actions['DC'].at(mid) + actions['DW'].at(mid)
                if dM:
                    dfcd = -dM * (ctx.e + shift) / section.Iy
                    contexts[group] = (mid, ctx.with_superimposed(stage.age_days, dfcd))

        stresses = {f: cumulative[f].copy() for f in FIBERS}
        warnings.extend(_check_stresses(stage, x, stresses, design))
        results.append(StageResult(
            name=stage.name, kind=kind, age_days=stage.age_days, status='completed', x=x,
            actions=MappingProxyType(actions), secondary=secondary,
            stresses=MappingProxyType(stresses), losses=MappingProxyType(losses),
            effective_stress=MappingProxyType(effective), warnings=tuple(warnings),
        ))

    report(progress, 'stages', 100.0, 'stages complete')
    return StagedAnalysisResult(stages=tuple(results), histories=MappingProxyType(histories))
