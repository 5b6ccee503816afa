# File: tests/test_moving_load.py
"""
TITLE: Moving Load Optimizer
============================

PURPOSE:
--------
Vehicles are placed on hand-built influence lines whose extreme
placement is known, so every check here is exact.

THEORY:
-------
Midspan moment of an 80 ft simple span: triangle with peak L/4 = 20.
A 8-32-32 kip truck with 14 ft spacings, centre axle over the peak:

    8 x 13 + 32 x 20 + 32 x 13 = 1160 kip-ft

Longer rear spacing only moves the rear axle down the triangle, so the
minimum spacing governs.
"""

import numpy as np
import pytest

from mini_bridge.catalog import VariableSpacing, Vehicle
from mini_bridge.influence import InfluenceLine, ResponseQuantity
from mini_bridge.moving_load import (LaneLoadPattern, Sense, candidate_positions, envelope,
                                     optimize, optimize_all, spacing_grid)


def triangle(L=80.0, a=40.0):
    return InfluenceLine(ResponseQuantity.MOMENT, a, [0.0, a, L], [0.0, a * (L - a) / L, 0.0])


TRUCK = Vehicle('truck', axle_weights=(8.0, 32.0, 32.0), spacings=(14.0, 14.0),
                variable_spacing=VariableSpacing(1, 14.0, 30.0), impact=0.33)


def test_truck_on_simple_span_midspan_moment():
    result = optimize(triangle(), TRUCK)

    assert result.response == pytest.approx(1160.0, rel=1e-9)
    assert result.spacing == pytest.approx(14.0)
    assert result.axle_positions == pytest.approx((54.0, 40.0, 26.0))
    assert result.position == pytest.approx(54.0)
    assert result.reversed is False
    assert result.response_with_impact == pytest.approx(1.33 * 1160.0, rel=1e-9)
    print(f"✓ Governing response {result.response:.1f} with axles at {result.axle_positions}")


def test_reversed_truck_is_no_worse():
    forward = optimize(triangle(), TRUCK)
    both = optimize(triangle(), TRUCK, include_reversed=True)
    assert both.response >= forward.response - 1e-9
    # symmetric line and a symmetric optimum: the forward placement wins the tie
    assert both.reversed is False


def test_variable_spacing_is_searched():
    """Two separated humps 40 apart: the widest spacing puts an axle on each."""
    line = InfluenceLine(ResponseQuantity.MOMENT, 10.0,
                         [0.0, 10.0, 20.0, 40.0, 50.0, 60.0],
                         [0.0, 1.0, 0.0, 0.0, 1.0, 0.0])
    tandem = Vehicle('stretch', axle_weights=(10.0, 10.0), spacings=(20.0,),
                     variable_spacing=VariableSpacing(0, 20.0, 40.0), impact=0.0)
    result = optimize(line, tandem)

    assert result.response == pytest.approx(20.0)
    assert result.spacing == pytest.approx(40.0)
    assert result.axle_positions == pytest.approx((50.0, 10.0))



def test_off_grid_spacing_optimum_is_found():
    """Humps 33 apart: between the uniform spacing samples 32.5 and 33.75."""
    line = InfluenceLine(ResponseQuantity.MOMENT, 10.0,
                         [0.0, 10.0, 20.0, 33.0, 43.0, 53.0],
                         [0.0, 1.0, 0.0, 0.0, 1.0, 0.0])
    tandem = Vehicle('stretch', axle_weights=(10.0, 10.0), spacings=(20.0,),
                     variable_spacing=VariableSpacing(0, 20.0, 40.0), impact=0.0)
    assert not any(abs(s - 33.0) < 0.1 for s in spacing_grid(tandem))

    result = optimize(line, tandem)
    assert result.response == pytest.approx(20.0)
    assert result.spacing == pytest.approx(33.0)
    assert result.axle_positions == pytest.approx((43.0, 10.0))

    both = optimize(line, tandem, include_reversed=True)
    assert both.response == pytest.approx(20.0)
    assert both.spacing == pytest.approx(33.0)

def test_spacing_grid():
    grid = spacing_grid(TRUCK, steps=17)
    assert len(grid) == 17
    assert grid[0] == pytest.approx(14.0) and grid[-1] == pytest.approx(30.0)
    fixed = Vehicle('fixed', axle_weights=(10.0, 10.0), spacings=(4.0,))
    assert spacing_grid(fixed) == [None]


def test_ties_pick_the_first_position():
    """Flat-topped line: every position on the plateau ties, the leftmost wins."""
    line = InfluenceLine(ResponseQuantity.MOMENT, 15.0,
                         [0.0, 10.0, 20.0, 30.0], [0.0, 1.0, 1.0, 0.0])
    single = Vehicle('single', axle_weights=(5.0,), impact=0.0)
    result = optimize(line, single)

    assert result.response == pytest.approx(5.0)
    assert result.position == pytest.approx(10.0)

    # deterministic: the same inputs give the same placement
    again = optimize(line, single)
    assert again == result


def test_vehicle_longer_than_span():
    """Only one axle fits at a time; the lead axle may hang off the end."""
    line = triangle(L=10.0, a=5.0)   # peak 2.5 at x = 5
    long_vehicle = Vehicle('long', axle_weights=(10.0, 20.0), spacings=(30.0,), impact=0.0)
    result = optimize(line, long_vehicle)

    assert result.response == pytest.approx(20.0 * 2.5)
    assert result.axle_positions == pytest.approx((35.0, 5.0))
    # the lead axle is past the end of the structure
    assert result.axle_positions[0] > line.extent[1]


def test_candidates_cover_the_admissible_range():
    line = triangle(L=10.0, a=5.0)
    offsets = np.array([0.0, 30.0])
    p = candidate_positions(line, offsets)
    assert p[0] == pytest.approx(0.0) and p[-1] == pytest.approx(40.0)
    assert np.all(np.diff(p) > 0)
    # every breakpoint of the trailing axle is a candidate
    for x in line.positions:
        assert np.min(np.abs(p - (x + 30.0))) < 1e-12


def test_minimum_and_absolute_sense():
    line = InfluenceLine(ResponseQuantity.SHEAR, 10.0,
                         [0.0, 10.0, 20.0, 30.0], [0.0, -2.0, 0.0, 1.0])
    single = Vehicle('single', axle_weights=(5.0,), impact=0.0)

    low = optimize(line, single, Sense.MIN)
    assert low.response == pytest.approx(-10.0)
    assert low.position == pytest.approx(10.0)

    high = optimize(line, single, Sense.MAX)
    assert high.response == pytest.approx(5.0)

    biggest = optimize(line, single, Sense.ABS)
    assert biggest.response == pytest.approx(-10.0)

    hi, lo = envelope(line, single)
    assert hi.response == pytest.approx(5.0) and lo.response == pytest.approx(-10.0)


def test_lane_load_under_the_footprint():
    line = InfluenceLine(ResponseQuantity.MOMENT, 50.0, [0.0, 100.0], [1.0, 1.0])
    vehicle = Vehicle('lane', axle_weights=(10.0, 10.0), spacings=(20.0,),
                      lane_load=0.5, impact=0.33)
    result = optimize(line, vehicle)

    assert result.axle_response == pytest.approx(20.0)
    assert result.lane_response == pytest.approx(0.5 * 20.0)
    assert result.response_with_impact == pytest.approx(1.33 * 20.0 + 10.0)
    # first placement with both axles on the structure
    assert result.position == pytest.approx(20.0)


def test_adverse_lane_pattern_loads_every_positive_region():
    line = triangle()
    vehicle = Vehicle('lane', axle_weights=(10.0,), lane_load=0.05, impact=0.0)
    result = optimize(line, vehicle, lane_pattern=LaneLoadPattern.ADVERSE)

    assert result.lane_response == pytest.approx(0.05 * 0.5 * 80.0 * 20.0)
    assert result.axle_response == pytest.approx(10.0 * 20.0)


def test_optimize_all_scan_order():
    lines = [triangle(), triangle(L=60.0, a=30.0)]
    fixed = Vehicle('fixed', axle_weights=(10.0, 10.0), spacings=(4.0,), impact=0.0)
    results = optimize_all(lines, [TRUCK, fixed])

    assert list(results) == [(0, 'truck'), (0, 'fixed'), (1, 'truck'), (1, 'fixed')]
    assert results[(0, 'truck')].response == pytest.approx(1160.0)


def test_footprint_lane_peak_between_candidates():
    """
    Axles 30 apart on a triangle: the axle sum is flat for 40 <= p <= 70
    and the lane integral peaks where eta(p) = eta(p - 30), at p = 55,
    which is neither a breakpoint nor on the position grid.
    """
    line = InfluenceLine(ResponseQuantity.MOMENT, 40.0, [0.0, 40.0, 80.0], [0.0, 20.0, 0.0])
    vehicle = Vehicle('lane', axle_weights=(10.0, 10.0), spacings=(30.0,),
                      lane_load=1.0, impact=0.0)
    assert not np.any(np.isclose(candidate_positions(line, np.array([0.0, 30.0])), 55.0))

    result = optimize(line, vehicle)
    assert result.position == pytest.approx(55.0)
    assert result.axle_response == pytest.approx(250.0)
    # 2 * integral of 0.5 x from 25 to 40
    assert result.lane_response == pytest.approx(487.5)
    assert result.response_with_impact == pytest.approx(737.5)
