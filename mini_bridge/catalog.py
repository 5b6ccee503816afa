"""
CATALOG: MATERIALS, GIRDERS AND VEHICLES
========================================

PURPOSE:
--------
Read-only reference data: material grades, standard precast girder shapes
and rating vehicles. Analyses never reach for these through globals; a
``Catalogs`` bundle is passed explicitly into every computation so that
independent sections and vehicles can be evaluated in parallel without
locking.

UNITS:
------
kip, inch, ksi. Unit weights are in kip/in³, lane loads in kip/in.

    Concrete  150 pcf  = 0.150 kcf = 8.68e-5 kip/in³
    HL-93 lane 0.64 klf = 0.0533 kip/in

MATERIAL VARIANTS:
------------------
Materials are a small closed set of tagged variants (``MaterialKind``):
concrete carries fc/fci, strand carries fpu/fpy, steel carries fy. The
frame element only needs E and G, which every variant provides.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

STEEL_UNIT_WEIGHT = 0.490 / 1728.0      # kip/in³


class MaterialKind(str, Enum):
    CONCRETE = 'concrete'
    STEEL = 'steel'
    STRAND = 'strand'


def concrete_modulus(fc: float, wc: float = 0.150, K1: float = 1.0) -> float:
    """
    AASHTO LRFD 5.4.2.4: Ec = 33,000 K1 wc^1.5 sqrt(f'c).

    Args:
        fc: Compressive strength (ksi)
        wc: Unit weight (kcf)
        K1: Aggregate correction factor

    Returns:
        Ec (ksi)
    """
    return 33000.0 * K1 * wc ** 1.5 * math.sqrt(fc)


@dataclass(frozen=True)
class Material:
    """
    Material properties.

    Parameters:
    -----------
    name : str
        Catalog identifier (e.g., "girder-8ksi")
    kind : MaterialKind
        Variant tag
    E : float
        Young's modulus (ksi)
    G : float
        Shear modulus (ksi)
    unit_weight : float
        kip/in³ (0 for strand, whose weight is carried by the girder)
    fc, fci : float
        Concrete 28-day and transfer strengths (ksi)
    Eci : float
        Concrete modulus at transfer (ksi)
    fpu, fpy : float
        Strand tensile and yield strengths (ksi)
    fy : float
        Steel yield strength (ksi)
    """
    name: str
    kind: MaterialKind
    E: float
    G: float
    unit_weight: float = 0.0
    fc: Optional[float] = None
    fci: Optional[float] = None
    Eci: Optional[float] = None
    fpu: Optional[float] = None
    fpy: Optional[float] = None
    fy: Optional[float] = None

    @classmethod
    def concrete(cls, name: str, fc: float, fci: Optional[float] = None,
                 wc: float = 0.150, nu: float = 0.2) -> 'Material':
        fci = fc if fci is None else fci
        E = concrete_modulus(fc, wc)
        return cls(
            name=name,
            kind=MaterialKind.CONCRETE,
            E=E,
            G=E / (2.0 * (1.0 + nu)),
            unit_weight=wc / 1728.0,
            fc=fc,
            fci=fci,
            Eci=concrete_modulus(fci, wc),
        )

    @classmethod
    def strand(cls, name: str, fpu: float = 270.0, Ep: float = 28500.0,
               low_relaxation: bool = True) -> 'Material':
        fpy = (0.90 if low_relaxation else 0.85) * fpu
        return cls(name=name, kind=MaterialKind.STRAND, E=Ep, G=Ep / 2.6,
                   fpu=fpu, fpy=fpy)

    @classmethod
    def steel(cls, name: str, fy: float = 50.0, E: float = 29000.0) -> 'Material':
        return cls(name=name, kind=MaterialKind.STEEL, E=E, G=E / 2.6,
                   unit_weight=STEEL_UNIT_WEIGHT, fy=fy)


@dataclass(frozen=True)
class SectionProperties:
    """
    Frame-level cross-section properties.

    A  : area (in²)
    Iy : moment of inertia for vertical bending, about the transverse axis (in⁴)
    Iz : moment of inertia for lateral bending (in⁴)
    J  : torsional constant (in⁴)
    As : shear area for the Timoshenko variant (in²); None = no shear deformation
    yb : centroid height above the bottom fiber (in)
    h  : total depth (in)
    y_deck_top : height of the deck top fiber above the bottom (composite only)
    modular_ratio : deck-to-girder modulus ratio used to transform the deck
    """
    name: str
    A: float
    Iy: float
    Iz: float
    J: float
    As: Optional[float] = None
    yb: float = 0.0
    h: float = 0.0
    y_girder_top: Optional[float] = None
    y_deck_top: Optional[float] = None
    modular_ratio: Optional[float] = None

    @property
    def yt(self) -> float:
        """Distance from centroid to the topmost fiber."""
        return self.h - self.yb

    @property
    def Sb(self) -> float:
        return self.Iy / self.yb if self.yb > 0 else math.inf

    @property
    def is_composite(self) -> bool:
        return self.y_deck_top is not None


@dataclass(frozen=True)
class GirderShape:
    """Standard precast girder. Lateral Iz and J are approximate."""
    name: str
    A: float
    I: float
    yb: float
    h: float
    web_width: float
    top_flange_width: float
    Iz: float
    J: float

    @property
    def yt(self) -> float:
        return self.h - self.yb

    def properties(self) -> SectionProperties:
        return SectionProperties(
            name=self.name,
            A=self.A,
            Iy=self.I,
            Iz=self.Iz,
            J=self.J,
            As=self.web_width * self.h,
            yb=self.yb,
            h=self.h,
            y_girder_top=self.h,
        )


@dataclass(frozen=True)
class VariableSpacing:
    """One inter-axle spacing adjustable within [minimum, maximum]."""
    index: int
    minimum: float
    maximum: float


@dataclass(frozen=True)
class Vehicle:
    """
    A rating vehicle: axle loads front to back, plus optional lane load.

    spacings[i] is the distance between axle i and axle i+1. If
    variable_spacing is set, spacings[variable_spacing.index] is ignored
    and searched over its range instead.
    """
    name: str
    axle_weights: Tuple[float, ...]
    spacings: Tuple[float, ...] = ()
    variable_spacing: Optional[VariableSpacing] = None
    lane_load: float = 0.0
    impact: float = 0.33
    multiple_presence: float = 1.0

    def __post_init__(self):
        if len(self.spacings) != len(self.axle_weights) - 1:
            raise ValueError(
                f"Vehicle {self.name}: {len(self.axle_weights)} axles need "
                f"{len(self.axle_weights) - 1} spacings, got {len(self.spacings)}"
            )
        if any(s < 0 for s in self.spacings):
            raise ValueError(f"Vehicle {self.name}: negative axle spacing")
        vs = self.variable_spacing
        if vs is not None:
            if not 0 <= vs.index < len(self.spacings):
                raise ValueError(f"Vehicle {self.name}: variable spacing index {vs.index} out of range")
            if vs.minimum > vs.maximum or vs.minimum < 0:
                raise ValueError(f"Vehicle {self.name}: invalid variable spacing range")

    @property
    def gross_weight(self) -> float:
        return float(sum(self.axle_weights))

    def spacing_values(self, variable: Optional[float] = None) -> Tuple[float, ...]:
        """Axle spacings with the variable one set (default: its minimum)."""
        spacings = list(self.spacings)
        vs = self.variable_spacing
        if vs is not None:
            spacings[vs.index] = vs.minimum if variable is None else variable
        return tuple(spacings)

    def axle_offsets(self, variable: Optional[float] = None) -> Tuple[float, ...]:
        """Distance of each axle behind the lead axle."""
        offsets = [0.0]
        for s in self.spacing_values(variable):
            offsets.append(offsets[-1] + s)
        return tuple(offsets)

    def reversed(self) -> 'Vehicle':
        """Same vehicle travelling the other way (axle order flipped)."""
        n = len(self.spacings)
        vs = self.variable_spacing
        if vs is not None:
            vs = VariableSpacing(n - 1 - vs.index, vs.minimum, vs.maximum)
        return Vehicle(
            name=self.name,
            axle_weights=tuple(reversed(self.axle_weights)),
            spacings=tuple(reversed(self.spacings)),
            variable_spacing=vs,
            lane_load=self.lane_load,
            impact=self.impact,
            multiple_presence=self.multiple_presence,
        )


# =============================================================================
# Reference data (kip, inch)
# =============================================================================

MATERIALS = {
    m.name: m for m in (
        Material.concrete('girder-8ksi', fc=8.0, fci=6.0),
        Material.concrete('girder-6ksi', fc=6.0, fci=4.5),
        Material.concrete('deck-4ksi', fc=4.0),
        Material.strand('strand-270', fpu=270.0),
        Material.steel('steel-50', fy=50.0),
    )
}

GIRDERS = {
    g.name: g for g in (
        GirderShape('AASHTO-I', A=276.0, I=22750.0, yb=12.59, h=28.0,
                    web_width=6.0, top_flange_width=12.0, Iz=3350.0, J=2550.0),
        GirderShape('AASHTO-II', A=369.0, I=50979.0, yb=15.83, h=36.0,
                    web_width=6.0, top_flange_width=12.0, Iz=5175.0, J=3380.0),
        GirderShape('AASHTO-III', A=560.0, I=125390.0, yb=20.27, h=45.0,
                    web_width=7.0, top_flange_width=16.0, Iz=12217.0, J=6800.0),
        GirderShape('AASHTO-IV', A=789.0, I=260730.0, yb=24.73, h=54.0,
                    web_width=8.0, top_flange_width=20.0, Iz=24347.0, J=11500.0),
        GirderShape('AASHTO-V', A=1013.0, I=521180.0, yb=31.96, h=63.0,
                    web_width=8.0, top_flange_width=42.0, Iz=61235.0, J=16200.0),
        GirderShape('AASHTO-VI', A=1085.0, I=733320.0, yb=36.38, h=72.0,
                    web_width=8.0, top_flange_width=42.0, Iz=61619.0, J=17600.0),
        GirderShape('BT-54', A=659.0, I=268077.0, yb=27.63, h=54.0,
                    web_width=6.0, top_flange_width=42.0, Iz=37634.0, J=8850.0),
        GirderShape('BT-63', A=713.0, I=392638.0, yb=32.12, h=63.0,
                    web_width=6.0, top_flange_width=42.0, Iz=37744.0, J=9300.0),
        GirderShape('BT-72', A=767.0, I=545894.0, yb=36.60, h=72.0,
                    web_width=6.0, top_flange_width=42.0, Iz=37853.0, J=9750.0),
    )
}

FT = 12.0  # in/ft

VEHICLES = {
    v.name: v for v in (
        # AASHTO HL-93 design truck, rear spacing 14 to 30 ft
        Vehicle('HL93-truck', axle_weights=(8.0, 32.0, 32.0),
                spacings=(14 * FT, 14 * FT),
                variable_spacing=VariableSpacing(1, 14 * FT, 30 * FT),
                lane_load=0.64 / FT, impact=0.33),
        Vehicle('HL93-tandem', axle_weights=(25.0, 25.0), spacings=(4 * FT,),
                lane_load=0.64 / FT, impact=0.33),
        Vehicle('AASHTO-Type3', axle_weights=(16.0, 17.0, 17.0),
                spacings=(15 * FT, 4 * FT), impact=0.33),
        Vehicle('AASHTO-3S2', axle_weights=(10.0, 15.5, 15.5, 15.5, 15.5),
                spacings=(11 * FT, 4 * FT, 22 * FT, 4 * FT), impact=0.33),
        Vehicle('AASHTO-3-3', axle_weights=(12.0, 12.0, 12.0, 16.0, 14.0, 14.0),
                spacings=(15 * FT, 4 * FT, 15 * FT, 16 * FT, 4 * FT), impact=0.33),
    )
}


@dataclass(frozen=True)
class Catalogs:
    """
    Read-only bundle of the reference catalogs.

    Passed explicitly into analyses; lookups raise KeyError with the
    available identifiers listed.
    """
    materials: Mapping[str, Material] = field(default_factory=lambda: MappingProxyType(dict(MATERIALS)))
    girders: Mapping[str, GirderShape] = field(default_factory=lambda: MappingProxyType(dict(GIRDERS)))
    vehicles: Mapping[str, Vehicle] = field(default_factory=lambda: MappingProxyType(dict(VEHICLES)))

    def material(self, name: str) -> Material:
        return _lookup(self.materials, name, 'material')

    def girder(self, name: str) -> GirderShape:
        return _lookup(self.girders, name, 'girder')

    def vehicle(self, name: str) -> Vehicle:
        return _lookup(self.vehicles, name, 'vehicle')


def _lookup(table, name, what):
    try:
        return table[name]
    except KeyError:
        raise KeyError(f"Unknown {what} '{name}'. Available: {sorted(table)}") from None


DEFAULT_CATALOGS = Catalogs()
