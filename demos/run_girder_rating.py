# File: demos/run_girder_rating.py
"""
Demo: two-span prestressed girder line, staged construction and load rating.

Runs the full pipeline on a 2 x 80 ft AASHTO Type IV girder line (kip, inch)
and plots:
- the moment influence line at the first midspan
- the girder bottom fiber stress after every construction stage
"""

import numpy as np
import matplotlib.pyplot as plt

from mini_bridge.analysis import AnalysisRequest, AnalysisType, run_analysis
from mini_bridge.catalog import FT
from mini_bridge.influence import ResponseQuantity
from mini_bridge.section import Strand


def main():
    print("=" * 60)
    print("Girder Line Rating Demo")
    print("=" * 60)

    # 20 strands: 16 bonded, 4 debonded 5 ft at each end
    strands = (
        tuple(Strand(eccentricity=20.0, debond_length=0.0) for _ in range(16))
        + tuple(Strand(eccentricity=20.0, debond_length=5 * FT) for _ in range(4))
    )
    span = 80 * FT
    request = AnalysisRequest(
        spans=(span, span),
        analysis_type=AnalysisType.LOAD_RATING,
        girder='AASHTO-IV',
        girder_spacing=8 * FT,
        deck_thickness=8.0,
        strands=strands,
        barrier_weight=0.02,
        wearing_surface_weight=0.015,
        sections=(0.4 * span, span + 0.6 * span),
        quantities=(ResponseQuantity.MOMENT, ResponseQuantity.SHEAR),
        vehicles=('HL93-truck', 'HL93-tandem', 'AASHTO-Type3'),
    )

    def progress(phase, percent, message=None):
        print(f"  [{phase:>12}] {percent:5.1f}%  {message or ''}")

    result = run_analysis(request, progress=progress)
    summary = result.summary

    print(f"\nResults:")
    print(f"  Tier:                   {summary['tier']}")
    print(f"  Minimum inventory RF:   {summary['minimum_rating_factor']:.3f}")
    print(f"  Operating RF:           {summary['operating_rating_factor']:.3f}")
    print(f"  Critical section:       x = {summary['critical_section'] / FT:.1f} ft "
          f"({summary['critical_quantity']})")
    print(f"  Governing vehicle:      {summary['governing_vehicle']}")
    print(f"  Warnings:               {summary['warnings']}")
    for group, fpe in summary.get('effective_prestress', {}).items():
        print(f"  Effective prestress {group}: {fpe:.1f} ksi")

    if summary.get('restricted'):
        print(f"\n✗ Load restriction recommended: {summary['restriction_load']:.1f} kip")
    else:
        print(f"\n✓ No load restriction required")

    # Visualize
    fig, (ax1, ax2) = plt.subplots(2, 1, figsize=(12, 8))

    il_rows = result.detail['influence_lines']
    x = np.array([row['x'] for row in il_rows]) / FT
    column = f"moment@{request.sections[0]:g}"
    ax1.plot(x, [row[column] for row in il_rows], 'b-', linewidth=2)
    ax1.axhline(0, color='k', linewidth=0.8)
    ax1.set_title(f'Moment influence line at x = {request.sections[0] / FT:.0f} ft', fontweight='bold')
    ax1.set_xlabel('Unit load position (ft)')
    ax1.set_ylabel('Moment per unit load (in)')
    ax1.grid(True, alpha=0.3)

    stage_rows = result.detail['stages']
    for stage in dict.fromkeys(row['stage'] for row in stage_rows):
        rows = [row for row in stage_rows if row['stage'] == stage]
        ax2.plot([row['x'] / FT for row in rows], [row['girder_bottom'] for row in rows],
                 label=stage, linewidth=1.5)
    ax2.axhline(0, color='k', linewidth=0.8)
    ax2.set_title('Girder bottom fiber stress by stage (tension +)', fontweight='bold')
    ax2.set_xlabel('x (ft)')
    ax2.set_ylabel('Stress (ksi)')
    ax2.legend(loc='lower right', fontsize=9)
    ax2.grid(True, alpha=0.3)

    plt.tight_layout()
    plt.show()

    print("\n" + "=" * 60)


if __name__ == "__main__":
    main()
