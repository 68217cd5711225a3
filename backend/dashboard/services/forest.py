"""
Forest plot aggregation: per-group mean, SD, standard error and normal CI.
"""
import logging
import math
from typing import List, Optional

import numpy as np
import pandas as pd
from scipy.stats import norm

from dashboard.core.schemas import NO_GROUP, ForestRow
from dashboard.services.profiler import as_numeric

logger = logging.getLogger(__name__)

OVERALL_LABEL = "Overall"
MISSING_GROUP_LABEL = "(Missing)"
MISSING_GROUPS_EXCLUDE = "exclude"
MISSING_GROUPS_SEPARATE = "separate"


def z_value(ci_level: float) -> float:
    """Two-sided standard normal quantile, e.g. 0.95 -> 1.96."""
    if not 0 < ci_level < 1:
        raise ValueError(f"ci_level must be between 0 and 1, got {ci_level}")
    return float(norm.ppf((1 + ci_level) / 2))


def _finite(value: float) -> Optional[float]:
    return None if value is None or not math.isfinite(value) else float(value)


def summarize_values(label: str, values: pd.Series, z: float) -> ForestRow:
    """
    One forest row over the finite values of ``values``.

    Infinite values count as missing. n = 0 leaves every statistic undefined;
    n = 1 has a mean but no SD, SE or CI.
    """
    values = values[np.isfinite(values)]
    n = int(len(values))
    if n == 0:
        return ForestRow(label=label, n=0)

    mean = _finite(values.mean())
    if mean is None:
        return ForestRow(label=label, n=n)
    if n == 1:
        return ForestRow(label=label, mean=mean, n=1)

    sd = float(values.std(ddof=1))
    se = sd / math.sqrt(n)
    return ForestRow(
        label=label,
        mean=mean,
        sd=_finite(sd),
        n=n,
        se=_finite(se),
        ci_lower=_finite(mean - z * se),
        ci_upper=_finite(mean + z * se),
    )


def aggregate_forest(
    df: pd.DataFrame,
    forest_var: str,
    group_var: str = NO_GROUP,
    ci_level: float = 0.95,
    missing_groups: str = MISSING_GROUPS_EXCLUDE,
) -> List[ForestRow]:
    """
    Forest rows for ``forest_var``.

    Without a grouping one "Overall" row is produced. With a grouping there is
    one row per distinct group value, in order of first appearance. Rows whose
    group value is missing are dropped (``missing_groups="exclude"``) or
    collected into a trailing "(Missing)" row (``"separate"``).
    """
    if missing_groups not in (MISSING_GROUPS_EXCLUDE, MISSING_GROUPS_SEPARATE):
        raise ValueError(f"missing_groups must be 'exclude' or 'separate', got '{missing_groups}'")

    z = z_value(ci_level)
    values = as_numeric(df[forest_var])

    if group_var == NO_GROUP:
        return [summarize_values(OVERALL_LABEL, values, z)]

    groups = df[group_var]
    present = groups.notna()
    rows = []

    # groupby(sort=False) keeps first-appearance order
    for key, group_values in values[present].groupby(groups[present], sort=False, observed=True):
        rows.append(summarize_values(str(key), group_values, z))

    if missing_groups == MISSING_GROUPS_SEPARATE and not present.all():
        rows.append(summarize_values(MISSING_GROUP_LABEL, values[~present], z))

    logger.debug(f"Forest aggregation of {forest_var} by {group_var}: {len(rows)} rows")
    return rows
