"""
Posterior draw transformation and summaries.
"""

from typing import Dict

import numpy as np

from config import ConfigError


class DimensionMismatchError(ConfigError):
    """Draw matrix and contrast matrix do not line up."""


def transform(contrast: np.ndarray, draws: np.ndarray, exponentiate: bool = False) -> np.ndarray:
    """
    Apply a contrast matrix to posterior coefficient draws.

    Parameters
    ----------
    contrast : np.ndarray
        Contrast matrix, shape (categories, coefficients)
    draws : np.ndarray
        Posterior draws, shape (samples, coefficients)
    exponentiate : bool
        Return proportional change ``exp(x) - 1`` instead of the log scale

    Returns
    -------
    np.ndarray
        Change per draw and category, shape (samples, categories)
    """
    contrast = np.asarray(contrast, dtype=float)
    draws = np.asarray(draws, dtype=float)
    if draws.ndim != 2 or contrast.ndim != 2:
        raise DimensionMismatchError(
            f"Expected 2D arrays, got draws {draws.shape} and contrast {contrast.shape}"
        )
    if draws.shape[1] != contrast.shape[1]:
        raise DimensionMismatchError(
            f"Draw matrix has {draws.shape[1]} columns but the contrast matrix "
            f"expects {contrast.shape[1]}"
        )

    out = draws @ contrast.T
    if exponentiate:
        out = np.expm1(out)
    return out


def _summarize_draws(draws: np.ndarray, credible_level: float) -> Dict[str, float]:
    """
    Summarize posterior draws with median and equal-tailed interval.

    Parameters
    ----------
    draws : np.ndarray
        Posterior draws
    credible_level : float
        Interval probability (e.g., 0.9 for a 90% interval)

    Returns
    -------
    Dict[str, float]
        Dictionary with 'median', 'lower', 'upper'
    """
    draws = np.asarray(draws).ravel()
    lo_q = (1.0 - credible_level) / 2.0
    hi_q = 1.0 - lo_q
    return {
        "median": float(np.median(draws)),
        "lower": float(np.quantile(draws, lo_q)),
        "upper": float(np.quantile(draws, hi_q)),
    }


def summarize_change(
    log_change: np.ndarray,
    credible_level: float,
) -> Dict[str, float]:
    """
    Summarize change draws of one category on both scales.

    The proportional summary is ``exp(x) - 1`` of the log-scale quantiles.
    The transform is monotone, so both scales agree on the interval up to
    interpolation between neighbouring draws.

    Parameters
    ----------
    log_change : np.ndarray
        Log-scale change draws of one category
    credible_level : float
        Interval probability

    Returns
    -------
    Dict[str, float]
        Median and interval bounds on the proportional and log scales
    """
    s_log = _summarize_draws(log_change, credible_level)
    return {
        "median": float(np.expm1(s_log["median"])),
        "lower": float(np.expm1(s_log["lower"])),
        "upper": float(np.expm1(s_log["upper"])),
        "median_log": s_log["median"],
        "lower_log": s_log["lower"],
        "upper_log": s_log["upper"],
        "Pr(>0)": float((np.asarray(log_change) > 0).mean()),
    }
