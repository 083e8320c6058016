"""
Display order of trait levels and the final small-group filter.
"""

import warnings
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence

import pandas as pd

from config import ConfigError, NATURAL_ORDERS, RESULT_FILTER_SIZE, SparseGroupWarning


def order_categories(
    labels: Iterable[str],
    natural_order: Optional[Sequence[str]] = None,
    effects: Optional[Mapping[str, float]] = None,
) -> Callable[[str], tuple]:
    """
    Sort key for the levels of one trait.

    Parameters
    ----------
    labels : Iterable[str]
        Levels to be ordered
    natural_order : Optional[Sequence[str]]
        Fixed ecological order; levels not listed go last, by name
    effects : Optional[Mapping[str, float]]
        Median change per level, used when there is no natural order
        (largest first, ties by name)

    Returns
    -------
    Callable[[str], tuple]
        Key function for ``sorted``
    """
    labels = set(labels)

    if natural_order is not None:
        rank = {lvl: i for i, lvl in enumerate(natural_order)}

        def natural_key(label: str) -> tuple:
            if label in rank:
                return (0, rank[label], "")
            return (1, 0, label)

        return natural_key

    if effects is not None:
        missing = sorted(labels - set(effects))
        if missing:
            raise ConfigError(f"No effect size for levels: {missing}")

        def effect_key(label: str) -> tuple:
            return (-float(effects[label]), label)

        return effect_key

    def name_key(label: str) -> tuple:
        return (label,)

    return name_key


def category_orders(
    summary: pd.DataFrame,
    factor_names: Sequence[str],
    natural_orders: Mapping[str, Sequence[str]] = NATURAL_ORDERS,
    effect_col: str = "median",
) -> Dict[str, List[str]]:
    """
    Display order of every trait in a summary table.

    A single trait without natural order is sorted by effect. In a pair,
    only a trait without natural order whose partner has one is sorted by
    effect (mean of its cells' medians); a pair without any natural order
    stays in name order.

    Parameters
    ----------
    summary : pd.DataFrame
        Summary table with one column per trait
    factor_names : Sequence[str]
        Trait columns
    natural_orders : Mapping[str, Sequence[str]]
        Known ecological orders
    effect_col : str
        Column holding the per-row effect

    Returns
    -------
    Dict[str, List[str]]
        Ordered levels per trait
    """
    has_natural = {name: name in natural_orders for name in factor_names}
    sort_by_effect = (
        len(factor_names) == 1 or sum(has_natural.values()) == 1
    )

    orders = {}
    for name in factor_names:
        labels = summary[name].astype(str).unique()
        if has_natural[name]:
            key = order_categories(labels, natural_order=natural_orders[name])
        elif sort_by_effect:
            effects = summary.groupby(summary[name].astype(str))[effect_col].mean()
            key = order_categories(labels, effects=effects.to_dict())
        else:
            key = order_categories(labels)
        orders[name] = sorted(labels, key=key)
    return orders


def apply_category_orders(df: pd.DataFrame, orders: Mapping[str, List[str]]) -> pd.DataFrame:
    """Make trait columns ordered categoricals and sort rows accordingly."""
    out = df.copy()
    for name, levels in orders.items():
        out[name] = pd.Categorical(out[name].astype(str), categories=levels, ordered=True)
    sort_cols = list(orders)
    if "draw" in out.columns:
        sort_cols = ["draw"] + sort_cols
    return out.sort_values(sort_cols, kind="stable").reset_index(drop=True)


def filter_small_groups(
    summary_rows: pd.DataFrame,
    min_count: int = RESULT_FILTER_SIZE,
    count_col: str = "n_species",
    id_cols: Optional[Sequence[str]] = None,
    label: str = "",
) -> pd.DataFrame:
    """
    Final filter: drop categories (pairs) supported by too few species.

    Parameters
    ----------
    summary_rows : pd.DataFrame
        Summary table with a species count column
    min_count : int
        Rows need more than this many species
    count_col : str
        Species count column
    id_cols : Optional[Sequence[str]]
        Columns naming a group in the warning
    label : str
        Name used in the warning (e.g. the trait combination)

    Returns
    -------
    pd.DataFrame
        Filtered copy
    """
    keep = summary_rows[count_col] > min_count
    dropped = summary_rows.loc[~keep]
    if not dropped.empty:
        cells = []
        if id_cols:
            cells = dropped[list(id_cols)].astype(str).agg(":".join, axis=1).tolist()
        warnings.warn(
            f"{label or 'results'}: dropped {len(dropped)} group(s) with <= {min_count} "
            f"species: {cells}",
            SparseGroupWarning,
        )
    return summary_rows.loc[keep].reset_index(drop=True)
