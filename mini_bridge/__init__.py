# mini_bridge - Bridge Structural Analysis and Load Rating
"""
MINI-BRIDGE: Bridge Analysis and Load Rating Engine
===================================================

This package provides:
- 3D frame analysis of girder lines (Euler-Bernoulli / Timoshenko)
- Composite section and pretensioned prestress actions
- Time-dependent prestress losses (approximate and refined)
- Staged construction (transfer -> deck -> composite -> service)
- Influence lines, moving-load optimization and LRFR load rating

ARCHITECTURE:
-------------
    kernel/          Element-agnostic core (DOF management, assembly, solve)
    catalog.py       Materials, girder shapes, rating vehicles
    model.py         Node, BeamElement, Support, StructuralModel
    elements.py      Frame element stiffness and interpolation
    loads.py         Equivalent nodal loads
    solve.py         Model-level solve and deck actions
    section.py       Composite section, prestress, capacities
    losses.py        Prestress loss models
    stages.py        Construction stage manager
    influence.py     Influence line generator
    moving_load.py   Moving load optimizer
    distribution.py  Live-load distribution factors
    rating.py        Load rating engine
    analysis.py      Request pipeline and execution tiers
    post.py          pandas result tables

Everything is a pure function over frozen inputs; catalogs are passed in
explicitly rather than looked up globally.
"""

from .catalog import DEFAULT_CATALOGS, Catalogs, GirderShape, Material, MaterialKind, Vehicle
from .errors import (BridgeAnalysisError, CancelledError, InvalidGeometryError, LimitExceedance,
                     PlanLimitError, SingularityError)
from .kernel import DOFManager, factorize, solve_linear
from .model import BeamElement, ElementKind, Node, StructuralModel, Support, girder_line
from .influence import InfluenceLine, ResponseQuantity, generate_influence_line, generate_influence_lines
from .moving_load import LaneLoadPattern, MovingLoadResult, Sense, optimize
from .rating import RatingResult, RatingReport, rate_all, rate_section
from .progress import CancelToken
from .analysis import (AnalysisRequest, AnalysisResult, AnalysisSettings, AnalysisType,
                       DEFAULT_SETTINGS, Tier, check_plan, run_analysis, select_tier)

__version__ = "0.1.0"
