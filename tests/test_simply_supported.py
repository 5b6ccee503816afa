# File: tests/test_simply_supported.py
"""
TITLE: Simply Supported Girder Validation
=========================================

PURPOSE:
--------
Checks the frame solver against closed-form results for a simply
supported girder:

    midspan moment under UDL      M = wL²/8
    midspan deflection under UDL  delta = 5wL⁴/(384 EI)
    midspan moment, point load    M = PL/4
    reactions                     sum = total load

THEORY:
-------
With consistent (work-equivalent) nodal loads and Hermite elements the
nodal values of an Euler-Bernoulli beam are exact, so the tolerances are
only limited by the penalty supports. The Timoshenko variant must be
softer than Euler-Bernoulli whenever a finite shear area is given.
"""

import numpy as np
import pytest

from mini_bridge.catalog import Material, MaterialKind, SectionProperties
from mini_bridge.kernel.dof import DOF_3D_FRAME, UZ
from mini_bridge.loads import assemble_gravity_udl, assemble_point_load
from mini_bridge.model import ElementKind, girder_line
from mini_bridge.solve import deck_actions, factor_model, solve_cases


E = 4000.0
I = 1000.0
SECTION = SectionProperties('test', A=100.0, Iy=I, Iz=800.0, J=200.0, As=80.0)
MATERIAL = Material('test', MaterialKind.CONCRETE, E=E, G=1700.0)


def test_udl_midspan_moment_and_deflection():
    """
    Span 60 with w = 0.82 downward: M(30) = 0.82 * 60² / 8 = 369.
    """
    L = 60.0
    w = 0.82
    model = girder_line([L], SECTION, MATERIAL, elements_per_span=20)
    loads = assemble_gravity_udl(model, {'*': w}, DOF_3D_FRAME)
    actions = solve_cases(model, {'DC': loads})['DC']

    M_mid = actions.at(30.0, 'M')
    assert M_mid == pytest.approx(w * L ** 2 / 8.0, rel=0.01)
    assert M_mid == pytest.approx(369.0, rel=1e-6)

    delta_theory = -5.0 * w * L ** 4 / (384.0 * E * I)
    assert actions.at(30.0, 'w') == pytest.approx(delta_theory, rel=1e-4)

    # moments vanish at the supports, shear is +wL/2 at the left end
    assert abs(actions.M[0]) < 1e-6 * M_mid
    assert abs(actions.M[-1]) < 1e-6 * M_mid
    assert actions.V[0] == pytest.approx(w * L / 2.0, rel=1e-6)
    assert actions.V[-1] == pytest.approx(-w * L / 2.0, rel=1e-6)
    print(f"✓ Midspan moment {M_mid:.3f}, deflection {actions.at(30.0, 'w'):.5f}")


def test_udl_reactions_balance_load():
    L = 60.0
    w = 0.82
    model = girder_line([L], SECTION, MATERIAL, elements_per_span=10)
    loads = assemble_gravity_udl(model, {'*': w}, DOF_3D_FRAME)
    system = factor_model(model)
    _, R = system.solve(loads.F)

    support_rows = [DOF_3D_FRAME.idx(s.node, UZ) for s in model.supports]
    np.testing.assert_allclose(R[support_rows], [w * L / 2.0, w * L / 2.0], rtol=1e-6)
    print("✓ Vertical reactions each carry wL/2")


def test_point_load_midspan_moment():
    L = 80.0
    P = 10.0
    model = girder_line([L], SECTION, MATERIAL, elements_per_span=8)
    loads = assemble_point_load(model, 40.0, P, DOF_3D_FRAME)
    system = factor_model(model)
    d, _ = system.solve(loads.F)
    actions = deck_actions(model, d, loads)

    assert actions.at(40.0, 'M') == pytest.approx(P * L / 4.0, rel=1e-6)
    assert actions.at(20.0, 'M') == pytest.approx(P * L / 8.0, rel=1e-6)
    print("✓ Point load moment PL/4")


def test_point_load_between_nodes():
    """A load inside an element is recovered exactly at the neighbouring nodes."""
    L = 80.0
    P = 10.0
    a = 25.0   # elements are 10 long, so the load sits mid-element
    model = girder_line([L], SECTION, MATERIAL, elements_per_span=8)
    loads = assemble_point_load(model, a, P, DOF_3D_FRAME)
    d, _ = factor_model(model).solve(loads.F)
    actions = deck_actions(model, d, loads)

    # M(x) = P (L - a) x / L for x <= a, P a (L - x) / L beyond
    assert actions.at(20.0, 'M') == pytest.approx(P * (L - a) * 20.0 / L, rel=1e-6)
    assert actions.at(30.0, 'M') == pytest.approx(P * a * (L - 30.0) / L, rel=1e-6)
    print("✓ Mid-element point load handled by consistent loads")


def test_timoshenko_is_softer():
    L = 60.0
    w = 0.82
    results = {}
    for kind in (ElementKind.EULER_BERNOULLI, ElementKind.TIMOSHENKO):
        model = girder_line([L], SECTION, MATERIAL, elements_per_span=20, kind=kind)
        loads = assemble_gravity_udl(model, {'*': w}, DOF_3D_FRAME)
        results[kind] = solve_cases(model, {'DC': loads})['DC']

    eb = results[ElementKind.EULER_BERNOULLI]
    tim = results[ElementKind.TIMOSHENKO]
    # determinate: same moments, larger deflection with shear deformation
    assert tim.at(30.0, 'M') == pytest.approx(eb.at(30.0, 'M'), rel=1e-6)
    assert abs(tim.at(30.0, 'w')) > abs(eb.at(30.0, 'w'))
    print("✓ Timoshenko deflection exceeds Euler-Bernoulli")
