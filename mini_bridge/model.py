# Node, BeamElement, Support, StructuralModel

import bisect
import logging
from dataclasses import dataclass, replace
from enum import Enum
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from .catalog import Material, SectionProperties
from .errors import InvalidGeometryError
from .kernel.dof import UX, UY, UZ, RX, RY, RZ

logger = logging.getLogger(__name__)

POSITION_TOL = 1e-6


class ElementKind(str, Enum):
    """Closed set of beam formulations; see elements.local_stiffness."""
    EULER_BERNOULLI = 'euler_bernoulli'
    TIMOSHENKO = 'timoshenko'


@dataclass(frozen=True)
class Node:
    """A point in space with six DOFs (ux, uy, uz, rx, ry, rz)."""
    id: int
    x: float
    y: float = 0.0
    z: float = 0.0


@dataclass(frozen=True)
class BeamElement:
    """
    2-node 3D frame element.

    section and material are keys into the model's catalogs. group names
    the precast girder (typically one per span) the element belongs to.
    deck=False keeps the element out of the live-load path (e.g. a pier).
    """
    id: int
    ni: int
    nj: int
    section: str
    material: str
    kind: ElementKind = ElementKind.EULER_BERNOULLI
    group: str = 'girder'
    deck: bool = True


@dataclass(frozen=True)
class Support:
    """A node plus the set of restrained local DOFs."""
    node: int
    restraints: FrozenSet[int]

    @classmethod
    def pinned(cls, node: int) -> 'Support':
        return cls(node, frozenset({UX, UY, UZ, RX}))

    @classmethod
    def roller(cls, node: int) -> 'Support':
        return cls(node, frozenset({UY, UZ, RX}))

    @classmethod
    def fixed(cls, node: int) -> 'Support':
        return cls(node, frozenset({UX, UY, UZ, RX, RY, RZ}))


def _frozen(mapping) -> Mapping:
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True)
class StructuralModel:
    """
    Geometry, supports and the section/material catalogs of one analysis.

    Read-only during solving; "edits" (mesh refinement, section swaps for a
    construction stage) return a new model.
    """
    nodes: Mapping[int, Node]
    elements: Tuple[BeamElement, ...]
    supports: Tuple[Support, ...]
    sections: Mapping[str, SectionProperties]
    materials: Mapping[str, Material]

    def __post_init__(self):
        object.__setattr__(self, 'nodes', _frozen(self.nodes))
        object.__setattr__(self, 'elements', tuple(self.elements))
        object.__setattr__(self, 'supports', tuple(self.supports))
        object.__setattr__(self, 'sections', _frozen(self.sections))
        object.__setattr__(self, 'materials', _frozen(self.materials))

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self) -> None:
        """
        Reject malformed or kinematically unstable models.

        Checks connectivity and that the supports can suppress every rigid
        body mode. Instabilities that survive these checks (internal
        mechanisms) are caught by the solver as a SingularityError.

        Raises:
            InvalidGeometryError
        """
        if not self.nodes:
            raise InvalidGeometryError("Model has no nodes")
        if sorted(self.nodes) != list(range(len(self.nodes))):
            raise InvalidGeometryError("Node ids must be contiguous from 0")
        if not self.elements:
            raise InvalidGeometryError("Model has no elements")

        connected = set()
        for e in self.elements:
            for nid in (e.ni, e.nj):
                if nid not in self.nodes:
                    raise InvalidGeometryError(f"Element {e.id} references missing node {nid}")
            if self.element_length(e) <= POSITION_TOL:
                raise InvalidGeometryError(f"Element {e.id} has zero length")
            if e.section not in self.sections:
                raise InvalidGeometryError(f"Element {e.id} references unknown section '{e.section}'")
            if e.material not in self.materials:
                raise InvalidGeometryError(f"Element {e.id} references unknown material '{e.material}'")
            connected.update((e.ni, e.nj))

        loose = sorted(set(self.nodes) - connected)
        if loose:
            raise InvalidGeometryError(f"Nodes {loose} are not connected to any element")

        if not self.supports:
            raise InvalidGeometryError("Structure has no supports (kinematically unstable)")
        for s in self.supports:
            if s.node not in self.nodes:
                raise InvalidGeometryError(f"Support references missing node {s.node}")

        self._check_rigid_body_modes()

    def _check_rigid_body_modes(self) -> None:
        restrained: Dict[int, List[Node]] = {dof: [] for dof in range(6)}
        for s in self.supports:
            for dof in s.restraints:
                restrained[dof].append(self.nodes[s.node])

        def spread(dof, coord):
            values = [getattr(n, coord) for n in restrained[dof]]
            return bool(values) and (max(values) - min(values)) > POSITION_TOL

        missing = []
        for dof, name in ((UX, 'x'), (UY, 'y'), (UZ, 'z')):
            if not restrained[dof]:
                missing.append(f"translation {name}")
        if not (restrained[RX] or spread(UZ, 'y') or spread(UY, 'z')):
            missing.append("rotation about x")
        if not (restrained[RY] or spread(UZ, 'x') or spread(UX, 'z')):
            missing.append("rotation about y")
        if not (restrained[RZ] or spread(UY, 'x') or spread(UX, 'y')):
            missing.append("rotation about z")
        if missing:
            raise InvalidGeometryError(
                f"Supports do not restrain rigid body motion: {', '.join(missing)}"
            )

    # ------------------------------------------------------------------
    # Derived properties
    # ------------------------------------------------------------------

    def element_length(self, e: BeamElement) -> float:
        a = self.nodes[e.ni]
        b = self.nodes[e.nj]
        return float(np.sqrt((b.x - a.x) ** 2 + (b.y - a.y) ** 2 + (b.z - a.z) ** 2))

    def deck_elements(self) -> List[BeamElement]:
        """Deck (live-load path) elements ordered along the bridge."""
        deck = [e for e in self.elements if e.deck]
        return sorted(deck, key=lambda e: min(self.nodes[e.ni].x, self.nodes[e.nj].x))

    def deck_nodes(self) -> List[int]:
        """Deck node ids ordered along the bridge."""
        ids = set()
        for e in self.deck_elements():
            ids.update((e.ni, e.nj))
        return sorted(ids, key=lambda nid: self.nodes[nid].x)

    @property
    def extent(self) -> Tuple[float, float]:
        xs = [self.nodes[nid].x for nid in self.deck_nodes()]
        return min(xs), max(xs)

    @property
    def length(self) -> float:
        x0, x1 = self.extent
        return x1 - x0

    def support_positions(self) -> List[float]:
        """Chainage of every vertically restrained deck support, ascending."""
        xs = sorted({self.nodes[s.node].x for s in self.supports if UZ in s.restraints})
        merged = []
        for x in xs:
            if not merged or x - merged[-1] > POSITION_TOL:
                merged.append(x)
        return merged

    def span_lengths(self) -> List[float]:
        xs = self.support_positions()
        if len(xs) < 2:
            return [self.length]
        return [b - a for a, b in zip(xs[:-1], xs[1:])]

    def group_elements(self, group: str) -> List[BeamElement]:
        return [e for e in self.deck_elements() if e.group == group]

    def group_extent(self, group: str) -> Tuple[float, float]:
        elements = self.group_elements(group)
        if not elements:
            raise KeyError(f"No deck elements in group '{group}'")
        xs = [self.nodes[n].x for e in elements for n in (e.ni, e.nj)]
        return min(xs), max(xs)

    def groups(self) -> List[str]:
        seen = []
        for e in self.deck_elements():
            if e.group not in seen:
                seen.append(e.group)
        return seen

    def node_at(self, x: float, tol: float = POSITION_TOL) -> Optional[int]:
        for nid in self.deck_nodes():
            if abs(self.nodes[nid].x - x) <= tol:
                return nid
        return None

    def locate(self, x: float) -> Tuple[BeamElement, float]:
        """
        Deck element containing chainage x and the distance from its node i.

        Positions on a shared node resolve to the element on the right,
        except at the far end of the deck.
        """
        elements = self.deck_elements()
        starts = [min(self.nodes[e.ni].x, self.nodes[e.nj].x) for e in elements]
        k = bisect.bisect_right(starts, x + POSITION_TOL) - 1
        k = min(max(k, 0), len(elements) - 1)
        e = elements[k]
        xi = self.nodes[e.ni].x
        xj = self.nodes[e.nj].x
        if not (min(xi, xj) - POSITION_TOL <= x <= max(xi, xj) + POSITION_TOL):
            raise ValueError(f"Position {x} is outside the deck extent {self.extent}")
        return e, abs(x - xi)

    # ------------------------------------------------------------------
    # Edits (return new models)
    # ------------------------------------------------------------------

    def refine_at(self, x: float, tol: float = POSITION_TOL) -> 'StructuralModel':
        """Return a model with a deck node at chainage x (splitting an element if needed)."""
        if self.node_at(x, tol) is not None:
            return self
        e, a = self.locate(x)
        ni, nj = self.nodes[e.ni], self.nodes[e.nj]
        t = a / self.element_length(e)
        new_id = len(self.nodes)
        new_node = Node(
            new_id,
            ni.x + t * (nj.x - ni.x),
            ni.y + t * (nj.y - ni.y),
            ni.z + t * (nj.z - ni.z),
        )
        next_elem = max(el.id for el in self.elements) + 1
        left = replace(e, nj=new_id)
        right = replace(e, id=next_elem, ni=new_id)

        elements = []
        for el in self.elements:
            if el.id == e.id:
                elements.extend((left, right))
            else:
                elements.append(el)

        nodes = dict(self.nodes)
        nodes[new_id] = new_node
        logger.debug("Refined model at x=%.3f (node %d)", x, new_id)
        return replace(self, nodes=nodes, elements=tuple(elements))

    def refine_at_all(self, positions: Iterable[float]) -> 'StructuralModel':
        model = self
        for x in positions:
            model = model.refine_at(x)
        return model

    def with_sections(
        self,
        assignments: Mapping[str, str],
        sections: Mapping[str, SectionProperties] = None,
    ) -> 'StructuralModel':
        """
        Return a model with new section assignments.

        assignments maps a group name to a section name; sections adds (or
        replaces) section definitions.
        """
        merged = dict(self.sections)
        merged.update(sections or {})
        elements = tuple(
            replace(e, section=assignments[e.group]) if e.group in assignments else e
            for e in self.elements
        )
        return replace(self, elements=elements, sections=merged)


def girder_line(
    spans: Sequence[float],
    section: SectionProperties,
    material: Material,
    elements_per_span: int = 20,
    kind: ElementKind = ElementKind.EULER_BERNOULLI,
    z: float = 0.0,
) -> StructuralModel:
    """
    Build a straight (possibly continuous) girder line along +x.

    The first support is pinned, the others are rollers. Each span's
    elements form one group named "span-1", "span-2", ...

    Parameters:
    -----------
    spans : Sequence[float]
        Span lengths
    section, material : catalog entries assigned to every element
    elements_per_span : int
        Mesh density (influence lines are sampled independently of it)
    """
    if not spans or any(L <= 0 for L in spans):
        raise InvalidGeometryError(f"Span lengths must be positive, got {list(spans)}")
    if elements_per_span < 1:
        raise InvalidGeometryError("elements_per_span must be >= 1")

    nodes = {0: Node(0, 0.0, 0.0, z)}
    elements = []
    supports = [Support.pinned(0)]
    x0 = 0.0
    for s, L in enumerate(spans):
        for k in range(1, elements_per_span + 1):
            nid = len(nodes)
            nodes[nid] = Node(nid, x0 + L * k / elements_per_span, 0.0, z)
            elements.append(BeamElement(
                id=len(elements), ni=nid - 1, nj=nid,
                section=section.name, material=material.name,
                kind=kind, group=f"span-{s + 1}",
            ))
        x0 += L
        supports.append(Support.roller(len(nodes) - 1))

    return StructuralModel(
        nodes=nodes,
        elements=tuple(elements),
        supports=tuple(supports),
        sections={section.name: section},
        materials={material.name: material},
    )
