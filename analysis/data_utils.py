"""
Data preparation utilities: trait frames, factor levels and coefficient order.
"""

import warnings
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from config import (
    ConfigError,
    PERIOD_COL,
    PERIOD_LEVELS,
    FIT_FILTER_SIZE,
    SparseGroupWarning,
)

ID_COLS = ["species_nl", "species_new", "n_grids", PERIOD_COL, "sum_per_period"]


class ColumnOrderError(ConfigError):
    """Coefficient names do not follow the expected treatment-coding order."""


class ColumnOrderWarning(UserWarning):
    """Draw-matrix columns could not be checked against the expected order."""


@dataclass(frozen=True)
class Factor:
    """A trait with its levels; the first level is the reference."""

    name: str
    levels: Tuple[str, ...]

    @property
    def reference(self) -> str:
        return self.levels[0]


def combo_id(combo: Sequence[str]) -> str:
    """Identifier of a trait combination, e.g. 'Phagy_Size'."""
    return "_".join(combo)


def factor_levels(values: pd.Series) -> Tuple[str, ...]:
    """
    Levels of a trait in model order.

    The most frequent level is the reference and comes first (ties broken by
    name); the other levels follow in ascending name order.

    Parameters
    ----------
    values : pd.Series
        Observed trait values

    Returns
    -------
    Tuple[str, ...]
        Levels, reference first
    """
    counts = values.dropna().astype(str).value_counts()
    if counts.empty:
        raise ConfigError(f"No observed levels for trait {values.name!r}")
    top = counts.max()
    reference = sorted(counts.index[counts == top])[0]
    others = sorted(lvl for lvl in counts.index if lvl != reference)
    return tuple([reference] + others)


def filter_sparse_levels(
    df: pd.DataFrame,
    combo: Sequence[str],
    filter_size: int = FIT_FILTER_SIZE,
) -> pd.DataFrame:
    """
    Pre-fit filter: drop trait levels with too few species in a period.

    Levels are judged per trait separately (margins), not per combination
    cell; cells are filtered again on the final results.

    Parameters
    ----------
    df : pd.DataFrame
        One row per species and period, with a column per trait
    combo : Sequence[str]
        Trait columns
    filter_size : int
        Levels need more than this many species in every period

    Returns
    -------
    pd.DataFrame
        Filtered copy
    """
    keep = pd.Series(True, index=df.index)
    for col in combo:
        n_level = df.groupby([PERIOD_COL, col])["species"].transform("size")
        # A level must pass in every period it occurs in
        level_ok = (n_level > filter_size).groupby(df[col]).transform("all")
        keep &= level_ok

    out = df.loc[keep].copy()
    for col in combo:
        dropped = sorted(set(df[col]) - set(out[col]))
        if dropped:
            warnings.warn(
                f"{combo_id(combo)}: dropped {col} levels with <= {filter_size} "
                f"species before fitting: {dropped}",
                SparseGroupWarning,
            )
    return out


def prepare_trait_frame(
    species_traits: pd.DataFrame,
    combo: Sequence[str],
    filter_size: int = FIT_FILTER_SIZE,
) -> Tuple[pd.DataFrame, List[Factor]]:
    """
    Build the model frame for one trait or trait pair.

    Parameters
    ----------
    species_traits : pd.DataFrame
        Long table with ID_COLS plus 'trait_name' and 'trait_value'
    combo : Sequence[str]
        One or two trait names
    filter_size : int
        Pre-fit level filter size

    Returns
    -------
    Tuple[pd.DataFrame, List[Factor]]
        (frame with one row per species and period, factors in combo order)
    """
    combo = list(combo)
    if len(combo) not in (1, 2):
        raise ConfigError("Only single traits and trait pairs are supported.")

    sub = species_traits.loc[species_traits["trait_name"].isin(combo)]
    missing = [c for c in combo if c not in set(sub["trait_name"])]
    if missing:
        raise ConfigError(f"Traits not found in data: {missing}")

    wide = sub.pivot_table(
        index=ID_COLS,
        columns="trait_name",
        values="trait_value",
        aggfunc="first",
    ).reset_index()
    wide.columns.name = None

    if len(combo) == 2:
        # Species split into several taxa inherit the traits they lack
        wide = wide.sort_values(["species_nl", "species_new"] + combo)
        for col in combo:
            first = wide.groupby("species_nl")[col].transform("first")
            wide[col] = wide[col].fillna(first)

    wide = wide.dropna(subset=combo)
    for col in combo:
        wide[col] = wide[col].astype(str)

    wide = wide.drop(columns="species_nl").rename(columns={"species_new": "species"})
    wide = wide[["species", "n_grids", PERIOD_COL, "sum_per_period"] + combo]

    wide = filter_sparse_levels(wide, combo, filter_size).reset_index(drop=True)
    if wide.empty:
        raise ConfigError(f"{combo_id(combo)}: no data left after filtering")

    factors = [Factor(col, factor_levels(wide[col])) for col in combo]
    return wide, factors


def cell_counts(df: pd.DataFrame, factors: Sequence[Factor]) -> pd.DataFrame:
    """Number of distinct species per trait level (or level pair)."""
    cols = [f.name for f in factors]
    return (
        df.groupby(cols)["species"]
        .nunique()
        .reset_index(name="n_species")
    )


def expected_coefficient_names(
    factors: Sequence[Factor],
    with_period: bool = True,
) -> List[str]:
    """
    Names of the period-effect coefficients in draw-matrix column order.

    Parameters
    ----------
    factors : Sequence[Factor]
        One factor, or a (row, column) pair
    with_period : bool
        Include the period main effect as the first name

    Returns
    -------
    List[str]
        e.g. ['period', 'period:Phagy[Oligophagous]', ...]
    """
    names = ["period"] if with_period else []
    for f in factors:
        names += [f"period:{f.name}[{lvl}]" for lvl in f.levels[1:]]
    if len(factors) == 2:
        fa, fb = factors
        names += [
            f"period:{fa.name}[{a}]:{fb.name}[{b}]"
            for b in fb.levels[1:]
            for a in fa.levels[1:]
        ]
    return names


def validate_column_order(
    coef_names: Sequence[str],
    factors: Sequence[Factor],
    with_period: bool = True,
) -> None:
    """
    Check that draw-matrix columns follow the contrast matrices' order.

    Raises
    ------
    ColumnOrderError
        If the names differ in number or order
    """
    expected = expected_coefficient_names(factors, with_period=with_period)
    coef_names = [str(c) for c in coef_names]
    if len(coef_names) != len(expected):
        raise ColumnOrderError(
            f"Expected {len(expected)} coefficients, got {len(coef_names)}"
        )
    for i, (got, exp) in enumerate(zip(coef_names, expected)):
        if got != exp:
            raise ColumnOrderError(f"Column {i} is {got!r}, expected {exp!r}")


def generate_test_data(
    traits: Optional[Dict[str, Dict[str, float]]] = None,
    n_species: int = 150,
    seed: int = 1701,
) -> pd.DataFrame:
    """
    Generate a synthetic species trait table with known trends.

    Parameters
    ----------
    traits : Optional[Dict[str, Dict[str, float]]]
        Per trait, the true log change of each level. The first level is the
        most frequent one.
    n_species : int
        Number of species
    seed : int
        Random seed

    Returns
    -------
    pd.DataFrame
        Long table in the layout read by prepare_trait_frame
    """
    rng = np.random.default_rng(seed)

    if traits is None:
        traits = {
            "Phagy": {"Polyphagous": -0.05, "Oligophagous": -0.25, "Monophagous": -0.45},
            "Size": {"Intermediate": 0.0, "Small": -0.2, "Large": 0.15},
            "Biotope": {"Forest": 0.1, "Grassland": -0.3, "Wetland": -0.1},
        }

    assigned = {}
    for name, effects in traits.items():
        levels = list(effects)
        weights = np.linspace(2.0, 1.0, len(levels))
        assigned[name] = rng.choice(levels, size=n_species, p=weights / weights.sum())

    baseline = rng.normal(1.5, 1.0, size=n_species)
    slope = rng.normal(0.0, 0.1, size=n_species)

    rows = []
    for i in range(n_species):
        name = f"species_{i:03d}"
        trend = slope[i] + sum(traits[t][assigned[t][i]] for t in traits)
        for p, period in enumerate(PERIOD_LEVELS):
            n_grids = int(rng.integers(20, 200))
            mu = n_grids * np.exp(baseline[i] - 3.0 + p * trend)
            count = int(rng.poisson(mu))
            for t in traits:
                rows.append({
                    "species_nl": name,
                    "species_new": name,
                    "n_grids": n_grids,
                    PERIOD_COL: period,
                    "sum_per_period": count,
                    "trait_name": t,
                    "trait_value": assigned[t][i],
                })

    return pd.DataFrame(rows)
