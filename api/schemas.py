# api/schemas.py
"""Request/response models for the REST API."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from mini_bridge.analysis import AnalysisRequest, AnalysisType
from mini_bridge.influence import ResponseQuantity
from mini_bridge.losses import Environment, LossMethod
from mini_bridge.model import ElementKind
from mini_bridge.moving_load import LaneLoadPattern
from mini_bridge.section import Strand
from mini_bridge.stages import StageKind


class StrandModel(BaseModel):
    """One strand (or bundle) of the pretensioned layout."""
    eccentricity: float = Field(..., description="Distance below the girder centroid (in)")
    area: float = Field(0.153, gt=0, description="Strand area (in²)")
    debond_length: float = Field(0.0, ge=0, description="Debonded length at each end (in)")
    transfer_length: float = Field(30.0, ge=0, description="Transfer length (in)")


class EnvironmentModel(BaseModel):
    relative_humidity: float = Field(70.0, ge=0, le=100, description="Ambient RH (%)")
    volume_to_surface: float = Field(3.5, gt=0, description="Volume-to-surface ratio (in)")


class AnalysisRequestModel(BaseModel):
    """Input of one analysis (kip, inch, ksi, day)."""
    spans: List[float] = Field(..., min_length=1, description="Span lengths (in)")
    analysis_type: AnalysisType = Field(AnalysisType.LOAD_RATING)
    elements_per_span: int = Field(20, ge=1, le=200)
    element_kind: ElementKind = Field(ElementKind.EULER_BERNOULLI)
    girder: str = Field("AASHTO-IV", description="Girder catalog id")
    girder_material: str = Field("girder-8ksi")
    deck_material: str = Field("deck-4ksi")
    strand_material: str = Field("strand-270")
    girder_spacing: float = Field(96.0, gt=0, description="Girder spacing (in)")
    deck_thickness: float = Field(8.0, gt=0, description="Structural deck thickness (in)")
    haunch: float = Field(0.0, ge=0, description="Haunch depth (in)")
    strands: List[StrandModel] = Field(default_factory=list)
    jacking_stress: float = Field(202.5, gt=0, description="Jacking stress (ksi)")
    barrier_weight: float = Field(0.0, ge=0, description="Barrier load per girder (kip/in)")
    wearing_surface_weight: float = Field(0.0, ge=0, description="Wearing surface per girder (kip/in)")
    sections: List[float] = Field(default_factory=list, description="Section chainages (in)")
    quantities: List[ResponseQuantity] = Field(
        default_factory=lambda: [ResponseQuantity.MOMENT, ResponseQuantity.SHEAR])
    vehicles: List[str] = Field(default_factory=lambda: ["HL93-truck"], min_length=1)
    loss_method: LossMethod = Field(LossMethod.APPROXIMATE)
    stage_ages: Optional[Dict[StageKind, float]] = None
    environment: EnvironmentModel = Field(default_factory=EnvironmentModel)
    include_reversed: bool = False
    lane_pattern: LaneLoadPattern = Field(LaneLoadPattern.FOOTPRINT)
    distribute_live_load: bool = True
    capacities: Optional[Dict[float, Dict[str, float]]] = None

    def to_request(self) -> AnalysisRequest:
        return AnalysisRequest(
            spans=tuple(self.spans),
            analysis_type=self.analysis_type,
            elements_per_span=self.elements_per_span,
            element_kind=self.element_kind,
            girder=self.girder,
            girder_material=self.girder_material,
            deck_material=self.deck_material,
            strand_material=self.strand_material,
            girder_spacing=self.girder_spacing,
            deck_thickness=self.deck_thickness,
            haunch=self.haunch,
            strands=tuple(Strand(**s.model_dump()) for s in self.strands),
            jacking_stress=self.jacking_stress,
            barrier_weight=self.barrier_weight,
            wearing_surface_weight=self.wearing_surface_weight,
            sections=tuple(self.sections),
            quantities=tuple(self.quantities),
            vehicles=tuple(self.vehicles),
            loss_method=self.loss_method,
            stage_ages=dict(self.stage_ages) if self.stage_ages else None,
            environment=Environment(**self.environment.model_dump()),
            include_reversed=self.include_reversed,
            lane_pattern=self.lane_pattern,
            distribute_live_load=self.distribute_live_load,
            capacities=self.capacities,
        )


class JobResponse(BaseModel):
    """Job handle plus the machine-readable summary once completed."""
    job_id: str
    status: str
    tier: Optional[str] = None
    summary: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class EventModel(BaseModel):
    seq: int
    phase: str
    percent: float
    message: Optional[str] = None
    terminal: bool = False
