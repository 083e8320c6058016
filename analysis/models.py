"""
Hierarchical Poisson models for the period effect of moth traits.
"""

from typing import List, Mapping, Sequence, Tuple

import arviz as az
import numpy as np
import pandas as pd
import pymc as pm

from config import (
    ConfigError,
    PERIOD_COL,
    PERIOD_LEVELS,
    PRIOR_SD_INTERCEPT,
    PRIOR_SD_EFFECT,
    PRIOR_SD_SPECIES,
    DRAWS,
    TUNE,
    CHAINS,
    TARGET_ACCEPT,
    RANDOM_SEED,
    RHAT_LIMIT,
)
from data_utils import Factor, expected_coefficient_names


def _dummies(values: pd.Series, factor: Factor) -> np.ndarray:
    """Treatment-coded indicator columns for the non-reference levels."""
    values = values.astype(str)
    known = values.isin(factor.levels)
    if not known.all():
        unknown = sorted(set(values[~known]))
        raise ConfigError(f"Values of {factor.name} not among its levels: {unknown}")
    codes = pd.Categorical(values, categories=list(factor.levels)).codes
    return np.eye(len(factor.levels))[codes][:, 1:]


def build_period_design(
    df: pd.DataFrame,
    factors: Sequence[Factor],
) -> Tuple[np.ndarray, np.ndarray, List[str], List[str]]:
    """
    Treatment-coded design matrices for ``period * A (* B)``.

    Parameters
    ----------
    df : pd.DataFrame
        Model frame with period and trait columns
    factors : Sequence[Factor]
        One factor, or a (row, column) pair

    Returns
    -------
    Tuple
        (X_base, X_period, base_names, period_names). X_period columns are in
        the order of ``expected_coefficient_names(factors)``.
    """
    t = (df[PERIOD_COL].astype(str) == PERIOD_LEVELS[1]).to_numpy(dtype=float)

    parts = [_dummies(df[f.name], f) for f in factors]
    if len(factors) == 2:
        d_a, d_b = parts
        # A varies fastest within each B level
        d_ab = np.zeros((len(df), d_a.shape[1] * d_b.shape[1]))
        for b in range(d_b.shape[1]):
            for a in range(d_a.shape[1]):
                d_ab[:, b * d_a.shape[1] + a] = d_a[:, a] * d_b[:, b]
        parts.append(d_ab)

    x_base = np.hstack(parts)
    x_period = np.hstack([t[:, None], t[:, None] * x_base])

    period_names = expected_coefficient_names(factors, with_period=True)
    base_names = [n.replace("period:", "", 1) for n in period_names[1:]]
    return x_base, x_period, base_names, period_names


def missing_combinations(df: pd.DataFrame, factors: Sequence[Factor]) -> List[Tuple[str, str]]:
    """
    Level pairs of two traits without any species.

    Parameters
    ----------
    df : pd.DataFrame
        Model frame
    factors : Sequence[Factor]
        A (row, column) pair; single traits have no missing cells

    Returns
    -------
    List[Tuple[str, str]]
        Missing (a, b) cells
    """
    if len(factors) != 2:
        return []
    fa, fb = factors
    present = set(zip(df[fa.name].astype(str), df[fb.name].astype(str)))
    return [(a, b) for b in fb.levels for a in fa.levels if (a, b) not in present]


def _coefficient_mask(names: Sequence[str], factors: Sequence[Factor], missing) -> np.ndarray:
    """1 for estimable coefficients, 0 for interactions of empty cells."""
    if not missing:
        return np.ones(len(names))
    fa, fb = factors
    empty = {f"{fa.name}[{a}]:{fb.name}[{b}]" for a, b in missing}
    return np.array(
        [0.0 if n.replace("period:", "", 1) in empty else 1.0 for n in names]
    )


def fit_trait_model(
    df: pd.DataFrame,
    factors: Sequence[Factor],
    draws=DRAWS,
    tune=TUNE,
    chains=CHAINS,
    target_accept=TARGET_ACCEPT,
    seed=RANDOM_SEED,
) -> az.InferenceData:
    """
    Fit a Poisson model of species counts with a trait-specific period effect.

    log E[count] = log(n_grids) + intercept + traits + period * (traits)
                   + species intercept + species period slope

    Coefficients of trait cells without data are fixed to zero.

    Parameters
    ----------
    df : pd.DataFrame
        Model frame from prepare_trait_frame
    factors : Sequence[Factor]
        One factor, or a (row, column) pair
    draws : int
        Number of posterior draws
    tune : int
        Number of tuning steps
    chains : int
        Number of chains
    target_accept : float
        Target acceptance rate
    seed : int
        Random seed

    Returns
    -------
    az.InferenceData
        Posterior with 'b_period' over the 'period_coef' dimension
    """
    for f in factors:
        if len(f.levels) < 2:
            raise ConfigError(f"{f.name} has a single level ({f.reference}); nothing to contrast")

    x_base, x_period, base_names, period_names = build_period_design(df, factors)
    missing = missing_combinations(df, factors)
    mask_base = _coefficient_mask(base_names, factors, missing)
    mask_period = _coefficient_mask(period_names, factors, missing)

    species = pd.Categorical(df["species"])
    s_idx = species.codes
    t = (df[PERIOD_COL].astype(str) == PERIOD_LEVELS[1]).to_numpy(dtype=float)
    offset = np.log(df["n_grids"].to_numpy(dtype=float))
    y = df["sum_per_period"].to_numpy(dtype=int)

    label = "×".join(f.name for f in factors)
    print(f"Fitting period model for '{label}' "
          f"({len(df)} rows, {len(species.categories)} species)")
    if missing:
        print(f"  Empty cells fixed to zero: {missing}")

    coords = {
        "species": list(species.categories),
        "base_coef": base_names,
        "period_coef": period_names,
    }

    with pm.Model(coords=coords):
        xb = pm.Data("X_base", x_base)
        xp = pm.Data("X_period", x_period)

        intercept = pm.Normal("intercept", 0.0, PRIOR_SD_INTERCEPT)
        beta_raw = pm.Normal("beta_raw", 0.0, PRIOR_SD_EFFECT, dims="base_coef")
        beta = pm.Deterministic("beta", beta_raw * mask_base, dims="base_coef")
        b_period_raw = pm.Normal("b_period_raw", 0.0, PRIOR_SD_EFFECT, dims="period_coef")
        b_period = pm.Deterministic("b_period", b_period_raw * mask_period, dims="period_coef")

        # Non-centered species intercepts and period slopes
        sd_intercept = pm.HalfNormal("sd_intercept", PRIOR_SD_SPECIES)
        sd_slope = pm.HalfNormal("sd_slope", PRIOR_SD_SPECIES)
        z_intercept = pm.Normal("z_intercept", 0.0, 1.0, dims="species")
        z_slope = pm.Normal("z_slope", 0.0, 1.0, dims="species")

        eta = (
            offset
            + intercept
            + pm.math.dot(xb, beta)
            + pm.math.dot(xp, b_period)
            + sd_intercept * z_intercept[s_idx]
            + sd_slope * z_slope[s_idx] * t
        )
        pm.Poisson("y", mu=pm.math.exp(eta), observed=y)

        idata = pm.sample(
            draws=draws,
            tune=tune,
            chains=chains,
            target_accept=target_accept,
            random_seed=seed,
            return_inferencedata=True,
        )

    return idata


def _as_dataarray(extracted, var_name: str):
    """Extract DataArray from ArviZ extraction."""
    if hasattr(extracted, "data_vars") and var_name in extracted.data_vars:
        return extracted[var_name]
    return extracted


def extract_period_draws(
    idata: az.InferenceData,
    var_name: str = "b_period",
    dim_name: str = "period_coef",
) -> Tuple[np.ndarray, List[str]]:
    """
    Posterior draws of the period coefficients as a (samples, coefficients) matrix.

    Chains are stacked into a single sample dimension.

    Returns
    -------
    Tuple[np.ndarray, List[str]]
        (draw matrix, coefficient names in column order)
    """
    extracted = az.extract(idata, group="posterior", var_names=[var_name])
    da = _as_dataarray(extracted, var_name).transpose("sample", dim_name)
    names = [str(v) for v in da.coords[dim_name].values]
    return da.to_numpy(), names


def get_rhats(
    idata_by_combo: Mapping[str, az.InferenceData],
    var_names: Sequence[str] = ("intercept", "beta", "b_period", "sd_intercept", "sd_slope"),
) -> pd.DataFrame:
    """
    R-hat of the main parameters of every fitted model.

    Returns
    -------
    pd.DataFrame
        Columns 'model', 'variable', 'rhat'
    """
    frames = []
    for name, idata in idata_by_combo.items():
        summ = (
            az.summary(idata, var_names=list(var_names), kind="diagnostics")
            .reset_index()
            .rename(columns={"index": "variable", "r_hat": "rhat"})
        )
        summ["model"] = name
        frames.append(summ[["model", "variable", "rhat"]])
    if not frames:
        return pd.DataFrame(columns=["model", "variable", "rhat"])
    return pd.concat(frames, ignore_index=True)


def flag_rhats(rhats: pd.DataFrame, limit: float = RHAT_LIMIT) -> pd.DataFrame:
    """Rows whose R-hat exceeds the limit."""
    return rhats.loc[rhats["rhat"] > limit].reset_index(drop=True)
