"""
Qualitative trend classes from credible intervals.
"""

from typing import Tuple

import numpy as np
import pandas as pd

from config import ConfigError, THRESHOLDS

STRONG_INCREASE = "strong increase"
INCREASE = "increase"
MODERATE_INCREASE = "moderate increase"
STABLE = "stable"
MODERATE_DECREASE = "moderate decrease"
DECREASE = "decrease"
STRONG_DECREASE = "strong decrease"
UNCERTAIN = "uncertain"

# Display order, most positive first
FINE_LABELS = [
    STRONG_INCREASE,
    INCREASE,
    MODERATE_INCREASE,
    STABLE,
    MODERATE_DECREASE,
    DECREASE,
    STRONG_DECREASE,
    UNCERTAIN,
]
COARSE_LABELS = [INCREASE, STABLE, DECREASE, UNCERTAIN]

_COARSE = {
    STRONG_INCREASE: INCREASE,
    INCREASE: INCREASE,
    MODERATE_INCREASE: INCREASE,
    STABLE: STABLE,
    MODERATE_DECREASE: DECREASE,
    DECREASE: DECREASE,
    STRONG_DECREASE: DECREASE,
    UNCERTAIN: UNCERTAIN,
}


def _check_thresholds(thresholds: Tuple[float, float]) -> Tuple[float, float]:
    t_min, t_max = float(thresholds[0]), float(thresholds[1])
    if not t_min < 0.0 < t_max:
        raise ConfigError(f"Thresholds must satisfy min < 0 < max, got {thresholds}")
    return t_min, t_max


def classify(lower: float, upper: float, thresholds: Tuple[float, float] = THRESHOLDS) -> str:
    """
    Classify a credible interval against a negligible-change band.

    Rules are checked in order; the first match wins. An interval touching a
    threshold is not a strong change, and an interval touching zero is not a
    (moderate) change.

    Parameters
    ----------
    lower : float
        Lower bound of the credible interval
    upper : float
        Upper bound of the credible interval
    thresholds : Tuple[float, float]
        (min, max) with min < 0 < max, on the same scale as the interval

    Returns
    -------
    str
        One of FINE_LABELS
    """
    t_min, t_max = _check_thresholds(thresholds)

    if lower > t_max:
        return STRONG_INCREASE
    if 0.0 < lower <= t_max and upper >= t_max:
        return INCREASE
    if lower > 0.0 and upper < t_max:
        return MODERATE_INCREASE
    if upper < 0.0 and lower > t_min:
        return MODERATE_DECREASE
    if t_min <= lower <= 0.0 <= upper <= t_max:
        return STABLE
    if upper < t_min:
        return STRONG_DECREASE
    if t_min <= upper < 0.0 and lower <= t_min:
        return DECREASE
    return UNCERTAIN


def coarsen(label: str) -> str:
    """Collapse a fine trend class to increase/stable/decrease/uncertain."""
    try:
        return _COARSE[label]
    except KeyError:
        raise ConfigError(f"Unknown trend class: {label!r}") from None


def classify_frame(
    summary: pd.DataFrame,
    thresholds: Tuple[float, float] = THRESHOLDS,
    lower_col: str = "lower",
    upper_col: str = "upper",
) -> pd.DataFrame:
    """
    Add fine and coarse trend classes and a certainty flag to a summary table.

    Parameters
    ----------
    summary : pd.DataFrame
        Table with interval bound columns
    thresholds : Tuple[float, float]
        (min, max) on the scale of the bound columns
    lower_col : str
        Lower bound column
    upper_col : str
        Upper bound column

    Returns
    -------
    pd.DataFrame
        Copy with 'fine_label', 'coarse_label' and 'certain' columns
    """
    out = summary.copy()
    fine = [
        classify(lo, hi, thresholds)
        for lo, hi in zip(out[lower_col].to_numpy(), out[upper_col].to_numpy())
    ]
    out["fine_label"] = pd.Categorical(fine, categories=FINE_LABELS, ordered=True)
    out["coarse_label"] = pd.Categorical(
        [coarsen(f) for f in fine], categories=COARSE_LABELS, ordered=True
    )
    # Interval excludes zero
    out["certain"] = np.logical_or(out[lower_col] > 0, out[upper_col] < 0)
    return out
