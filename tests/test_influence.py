# File: tests/test_influence.py
"""
TITLE: Influence Line Generator
===============================

PURPOSE:
--------
Influence lines are produced by the Müller-Breslau unit-kink method (one
factorization, one solve per line). These tests compare them with the
statically known lines of a simple span and, for a continuous girder,
with direct point-load solves (Betti reciprocity).

THEORY:
-------
Simple span L, section a:
    moment   eta(x) = x (L - a) / L        x <= a
                    = a (L - x) / L        x >= a
    shear    eta(x) = -x / L               x < a
                    = (L - x) / L          x > a
    reaction at 0     eta(x) = 1 - x / L
Maxwell: the deflection at s1 due to a unit load at s2 equals the
deflection at s2 due to a unit load at s1.
"""

import numpy as np
import pytest

from mini_bridge.catalog import Material, MaterialKind, SectionProperties
from mini_bridge.errors import InvalidGeometryError
from mini_bridge.influence import (InfluenceLine, ResponseQuantity, generate_influence_line,
                                   generate_influence_lines, sample_positions)
from mini_bridge.kernel.dof import DOF_3D_FRAME
from mini_bridge.loads import assemble_point_load
from mini_bridge.model import girder_line
from mini_bridge.solve import solve_cases


SECTION = SectionProperties('test', A=400.0, Iy=50000.0, Iz=8000.0, J=2000.0)
MATERIAL = Material('test', MaterialKind.CONCRETE, E=4000.0, G=1700.0)


def simple_span(L=60.0, n=12):
    return girder_line([L], SECTION, MATERIAL, elements_per_span=n)


def test_simple_span_moment_line():
    L, a = 60.0, 15.0
    line = generate_influence_line(simple_span(L), ResponseQuantity.MOMENT, a)

    assert line.ordinate_at(a) == pytest.approx(a * (L - a) / L, rel=1e-6)
    assert line.ordinate_at(30.0) == pytest.approx(a * (L - 30.0) / L, rel=1e-6)
    assert line.ordinate_at(6.0) == pytest.approx(6.0 * (L - a) / L, rel=1e-6)
    assert abs(line.ordinate_at(0.0)) < 1e-6
    assert abs(line.ordinate_at(L)) < 1e-6
    # triangle area a (L - a) / 2
    assert line.area() == pytest.approx(a * (L - a) / 2.0, rel=1e-4)
    print("✓ Simple-span moment influence line is the statics triangle")


def test_simple_span_shear_line():
    L, a = 60.0, 15.0
    line = generate_influence_line(simple_span(L), ResponseQuantity.SHEAR, a)

    assert line.ordinate_at(30.0) == pytest.approx((L - 30.0) / L, rel=1e-6)
    assert line.ordinate_at(10.0) == pytest.approx(-10.0 / L, rel=1e-6)
    assert line.ordinate_at(45.0) == pytest.approx((L - 45.0) / L, rel=1e-6)
    print("✓ Shear influence line jumps by one at the section")


def test_simple_span_reaction_line():
    L = 60.0
    line = generate_influence_line(simple_span(L), ResponseQuantity.REACTION, 0.0)

    for x in (0.0, 12.0, 30.0, 55.0, L):
        assert line.ordinate_at(x) == pytest.approx(1.0 - x / L, abs=1e-6)
    print("✓ Reaction influence line is 1 at its support")


def test_reaction_needs_a_support():
    with pytest.raises(InvalidGeometryError):
        generate_influence_line(simple_span(), ResponseQuantity.REACTION, 30.0)


def test_section_outside_deck_rejected():
    with pytest.raises(InvalidGeometryError):
        generate_influence_line(simple_span(), ResponseQuantity.MOMENT, 75.0)


def test_moment_line_matches_direct_solve_on_continuous_girder():
    """Betti: ordinate at x equals the section moment from a unit load at x."""
    model = girder_line([80.0, 80.0], SECTION, MATERIAL, elements_per_span=20)
    section = 32.0
    line = generate_influence_line(model, ResponseQuantity.MOMENT, section)

    for x in (12.0, 32.0, 80.0 + 20.0, 80.0 + 48.0):
        loads = assemble_point_load(model, x, 1.0, DOF_3D_FRAME)
        direct = solve_cases(model, {'P': loads})['P'].at(section, 'M')
        assert line.ordinate_at(x) == pytest.approx(direct, rel=1e-6, abs=1e-9)

    # a load in the far span lifts the near span: negative ordinates there
    assert line.ordinate_at(120.0) < 0.0
    assert line.negative_area < 0.0 < line.positive_area
    print("✓ Continuous girder moment line agrees with direct solves")


def test_pier_reaction_line_on_continuous_girder():
    model = girder_line([80.0, 80.0], SECTION, MATERIAL, elements_per_span=20)
    line = generate_influence_line(model, ResponseQuantity.REACTION, 80.0)

    assert line.ordinate_at(80.0) == pytest.approx(1.0, abs=1e-6)
    # equal spans: a load at midspan sends 11/16 of itself to the pier
    assert line.ordinate_at(40.0) == pytest.approx(11.0 / 16.0, rel=1e-6)
    print("✓ Pier reaction line on a two-span girder")


def test_deflection_lines_are_reciprocal():
    model = girder_line([80.0, 80.0], SECTION, MATERIAL, elements_per_span=20)
    s1, s2 = 28.0, 116.0
    l1, l2 = generate_influence_lines(
        model, [(ResponseQuantity.DEFLECTION, s1), (ResponseQuantity.DEFLECTION, s2)])

    assert l1.ordinate_at(s2) == pytest.approx(l2.ordinate_at(s1), rel=1e-6)
    # a downward unit load deflects its own point downward
    assert l1.ordinate_at(s1) < 0.0
    print("✓ Maxwell reciprocity holds for deflection lines")


def test_sample_positions_resolution():
    model = girder_line([80.0, 40.0], SECTION, MATERIAL, elements_per_span=10)
    xs = sample_positions(model)

    assert xs[0] == 0.0 and xs[-1] == pytest.approx(120.0)
    # step no larger than the shorter span / 100
    assert np.max(np.diff(xs)) <= 40.0 / 100.0 + 1e-9
    for nid in model.deck_nodes():
        assert np.min(np.abs(xs - model.nodes[nid].x)) < 1e-9
    print(f"✓ {len(xs)} samples include every node")


def test_sections_between_nodes_are_refined():
    model = simple_span(60.0, n=4)   # nodes every 15
    line = generate_influence_line(model, ResponseQuantity.MOMENT, 20.0)
    assert line.ordinate_at(20.0) == pytest.approx(20.0 * 40.0 / 60.0, rel=1e-6)
    print("✓ Off-node section handled by refinement")


def test_influence_line_is_read_only():
    line = InfluenceLine(ResponseQuantity.MOMENT, 5.0, [0.0, 5.0, 10.0], [0.0, 2.5, 0.0])
    with pytest.raises(ValueError):
        line.ordinates[1] = 3.0
    with pytest.raises(Exception):
        line.section_x = 1.0
    with pytest.raises(ValueError):
        InfluenceLine(ResponseQuantity.MOMENT, 5.0, [0.0, 5.0, 5.0], [0.0, 1.0, 0.0])


def test_influence_line_areas():
    line = InfluenceLine(ResponseQuantity.MOMENT, 10.0,
                         [0.0, 10.0, 20.0, 30.0], [0.0, 4.0, 0.0, -2.0])
    assert line.positive_area == pytest.approx(40.0)
    assert line.negative_area == pytest.approx(-10.0)
    assert line.area() == pytest.approx(30.0)
    # exact area under the rising edge up to x = 5: 0.5 * 5 * 2
    assert line.area(0.0, 5.0) == pytest.approx(5.0)
    assert line.extreme() == (10.0, 4.0)
    assert line.ordinate_at(-5.0) == 0.0 and line.ordinate_at(40.0) == 0.0
