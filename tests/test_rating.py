# File: tests/test_rating.py
"""
TITLE: Load Rating Engine
=========================

PURPOSE:
--------
Checks the LRFR rating factor arithmetic and the section x vehicle
sweep: governing result, restriction flags, failure isolation and
cancellation.

THEORY:
-------
    RF = (phi_c phi_s C - 1.25 DC - 1.50 DW - 1.0 P) / (g_L (LL+IM))

Interior pier of a two-span girder, C = 4500, DC = 800, DW = 150,
LL+IM = 1500 kip-ft:

    inventory  (4500 - 1000 - 225) / (1.75 x 1500) = 1.2476
    operating  (4500 - 1000 - 225) / (1.35 x 1500) = 1.6173
"""

import math

import pytest

from mini_bridge.catalog import Vehicle
from mini_bridge.errors import CancelledError
from mini_bridge.progress import CancelToken
from mini_bridge.rating import (INVENTORY, OPERATING, RatingFactors, SectionDemand, rate_all,
                                rate_section, rating_factor, rating_factor_from_restriction,
                                recommended_restriction)


TRUCK = Vehicle('HL93-truck', axle_weights=(8.0, 32.0, 32.0), spacings=(14.0, 14.0))
TYPE3 = Vehicle('Type3', axle_weights=(16.0, 17.0, 17.0), spacings=(15.0, 4.0))


def test_pier_section_rating_factors():
    result = rate_section(960.0, 'moment', capacity=4500.0, dc=800.0, dw=150.0,
                          ll_im=1500.0, vehicle=TRUCK)

    assert result.inventory_rf == pytest.approx(3275.0 / 2625.0, rel=1e-9)
    assert result.inventory_rf == pytest.approx(1.25, rel=0.02)
    assert result.operating_rf == pytest.approx(3275.0 / 2025.0, rel=1e-9)
    assert not result.restricted
    assert result.restriction_load is None
    print(f"✓ Inventory RF {result.inventory_rf:.4f}, operating RF {result.operating_rf:.4f}")


def test_rating_is_idempotent():
    kwargs = dict(capacity=4500.0, dc=800.0, dw=150.0, ll_im=1500.0, vehicle=TRUCK)
    assert rate_section(960.0, 'moment', **kwargs) == rate_section(960.0, 'moment', **kwargs)


def test_prestress_secondary_effect_is_factored():
    base = rating_factor(4500.0, 800.0, 150.0, 1500.0)
    with_p = rating_factor(4500.0, 800.0, 150.0, 1500.0, p=-200.0)
    assert with_p == pytest.approx(base + 200.0 / (1.75 * 1500.0))


def test_no_live_load_effect_rates_infinite():
    assert rating_factor(4500.0, 800.0, 150.0, 0.0) == math.inf


def test_restriction_below_threshold():
    result = rate_section(480.0, 'moment', capacity=3000.0, dc=1200.0, dw=200.0,
                          ll_im=1000.0, vehicle=TRUCK)
    inv = (3000.0 - 1500.0 - 300.0) / 1750.0
    op = (3000.0 - 1500.0 - 300.0) / 1350.0
    assert result.inventory_rf == pytest.approx(inv)
    assert result.restricted
    # operating level is used for the recommended restriction by default
    assert result.restriction_load == pytest.approx(op * TRUCK.gross_weight)
    assert len(result.warnings) == 1 and result.warnings[0].vehicle == 'HL93-truck'

    inventory_posting = rate_section(480.0, 'moment', capacity=3000.0, dc=1200.0, dw=200.0,
                                     ll_im=1000.0, vehicle=TRUCK, posting_level='inventory')
    assert inventory_posting.restriction_load == pytest.approx(inv * TRUCK.gross_weight)


def test_restriction_round_trip():
    rf = 0.82
    restriction = recommended_restriction(rf, TRUCK.gross_weight)
    assert rating_factor_from_restriction(restriction, TRUCK.gross_weight) == pytest.approx(rf)
    with pytest.raises(ValueError):
        rating_factor_from_restriction(10.0, 0.0)


def test_custom_factors():
    factors = RatingFactors(phi_c=0.95, phi_s=0.9)
    rf = rating_factor(4500.0, 800.0, 150.0, 1500.0, factors)
    assert rf == pytest.approx((0.95 * 0.9 * 4500.0 - 1000.0 - 225.0) / 2625.0)
    assert OPERATING.ll == 1.35 and INVENTORY.ll == 1.75


def test_rate_all_governing_and_ties():
    demands = [
        SectionDemand(96.0, 'moment', 4500.0, 800.0, 150.0, {'HL93-truck': 1500.0, 'Type3': 900.0}),
        SectionDemand(480.0, 'moment', 4500.0, 800.0, 150.0, {'HL93-truck': 1500.0, 'Type3': 900.0}),
    ]
    report = rate_all(demands, [TRUCK, TYPE3])

    assert len(report.results) == 4
    assert [(r.section_x, r.vehicle) for r in report.results] == [
        (96.0, 'HL93-truck'), (96.0, 'Type3'), (480.0, 'HL93-truck'), (480.0, 'Type3')]
    # both sections rate identically for the truck: the first one governs
    governing = report.governing
    assert governing.section_x == 96.0 and governing.vehicle == 'HL93-truck'
    assert not report.restricted


def test_failed_pair_does_not_stop_the_sweep():
    demands = [
        SectionDemand(96.0, 'shear', 500.0, 60.0, 10.0, {'HL93-truck': 80.0}),
        SectionDemand(480.0, 'moment', 4500.0, 800.0, 150.0, {'HL93-truck': 1500.0, 'Type3': 900.0}),
    ]
    report = rate_all(demands, {'HL93-truck': TRUCK, 'Type3': TYPE3})

    assert len(report.results) == 3
    assert len(report.failures) == 1
    failure = report.failures[0]
    assert failure.section_x == 96.0 and failure.vehicle == 'Type3'
    assert 'Type3' in failure.message


def test_signs_flip_permanent_effects_per_vehicle():
    # negative shear section: the truck relieves dead load, Type3 adds to it
    demand = SectionDemand(528.0, 'shear', 500.0, -60.0, -10.0, {'HL93-truck': 80.0, 'Type3': 80.0},
                           signs={'HL93-truck': 1.0, 'Type3': -1.0})
    truck, type3 = rate_all([demand], [TRUCK, TYPE3]).results

    assert (truck.dc, truck.dw) == (-60.0, -10.0)
    assert (type3.dc, type3.dw) == (60.0, 10.0)
    assert truck.inventory_rf == pytest.approx((500.0 + 75.0 + 15.0) / (1.75 * 80.0))
    assert type3.inventory_rf == pytest.approx((500.0 - 75.0 - 15.0) / (1.75 * 80.0))
    assert demand.permanent('other') == (-60.0, -10.0, 0.0)


def test_rate_all_cancellation():
    token = CancelToken()
    token.cancel()
    demands = [SectionDemand(96.0, 'moment', 4500.0, 800.0, 150.0, {'HL93-truck': 1500.0})]
    with pytest.raises(CancelledError) as info:
        rate_all(demands, [TRUCK], cancel=token)
    assert info.value.section == 96.0 and info.value.vehicle == 'HL93-truck'
