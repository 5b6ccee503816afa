# mini_bridge/post.py
"""
Tabular result payloads (pandas) for reports and the API.

The core never renders anything; these tables are what external report
and plotting collaborators consume.
"""

from typing import Iterable, List, Sequence

import numpy as np
import pandas as pd

from .influence import InfluenceLine
from .moving_load import MovingLoadResult
from .rating import RatingReport
from .stages import FIBERS, StagedAnalysisResult


def influence_frame(lines: Sequence[InfluenceLine]) -> pd.DataFrame:
    """
    One row per sample position, one column per line ('moment@480').

    Lines with different sample grids are interpolated onto the first
    line's positions.
    """
    if not lines:
        return pd.DataFrame(columns=['x'])
    x = np.asarray(lines[0].positions)
    data = {'x': x}
    for line in lines:
        data[f"{line.quantity.value}@{line.section_x:g}"] = line.ordinate_at(x)
    return pd.DataFrame(data)


def stage_stress_frame(result: StagedAnalysisResult) -> pd.DataFrame:
    """Cumulative fiber stresses: one row per (stage, node)."""
    frames = []
    for stage in result.stages:
        if not stage.completed:
            continue
        df = pd.DataFrame({'x': stage.x})
        df.insert(0, 'stage', stage.name)
        for fiber in FIBERS:
            df[fiber] = stage.stresses[fiber]
        for case in ('DC', 'DW', 'PS'):
            if case in stage.actions:
                df[f'{case}_moment'] = stage.actions[case].M
                df[f'{case}_shear'] = stage.actions[case].V
        frames.append(df)
    if not frames:
        return pd.DataFrame(columns=['stage', 'x', *FIBERS])
    return pd.concat(frames, ignore_index=True)


def loss_frame(result: StagedAnalysisResult) -> pd.DataFrame:
    rows = []
    for group, history in result.histories.items():
        for stage, age, losses in history.entries:
            rows.append({
                'group': group,
                'stage': stage,
                'age_days': age,
                **losses.as_dict(),
                'effective_stress': losses.effective_stress(history.fpj),
            })
    return pd.DataFrame(rows)


def moving_load_frame(results: Iterable[MovingLoadResult]) -> pd.DataFrame:
    return pd.DataFrame([r.as_dict() for r in results])


def rating_frame(report: RatingReport) -> pd.DataFrame:
    df = pd.DataFrame([r.as_dict() for r in report.results])
    if df.empty:
        return df
    return df.sort_values(['inventory_rf', 'section_x'], kind='stable').reset_index(drop=True)


def records(df: pd.DataFrame) -> List[dict]:
    """JSON-safe records: NaN and infinities become None."""
    clean = df.replace([np.inf, -np.inf], np.nan)
    clean = clean.astype(object).where(pd.notna(clean), None)
    return clean.to_dict('records')
