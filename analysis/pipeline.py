"""
Per-combination pipeline: contrasts, change indices, classes, order and export.
"""

import warnings
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from config import (
    CREDIBLE_LEVEL,
    THRESHOLDS,
    RESULT_FILTER_SIZE,
    NATURAL_ORDERS,
    MAX_WORKERS,
    EXPORT_DECIMALS,
    DRAWS_FILE,
    SUMMARY_DIRNAME,
    SUMMARY_FILE,
)
from classification import classify_frame
from contrasts import contrast_for_factors, contrast_row_labels
from data_utils import ColumnOrderWarning, Factor, validate_column_order
from ordering import apply_category_orders, category_orders, filter_small_groups
from statistical_utils import summarize_change, transform

SUMMARY_COLUMNS = [
    "n_species",
    "median",
    "lower",
    "upper",
    "median_log",
    "lower_log",
    "upper_log",
    "Pr(>0)",
    "credible_level",
    "fine_label",
    "coarse_label",
    "certain",
]


@dataclass
class TraitDraws:
    """Posterior period-effect draws of one fitted trait model."""

    factors: List[Factor]
    draws: np.ndarray
    counts: pd.DataFrame
    coef_names: Optional[List[str]] = None
    with_period: bool = True

    @property
    def factor_names(self) -> List[str]:
        return [f.name for f in self.factors]

    @property
    def combo_id(self) -> str:
        return "_".join(self.factor_names)


@dataclass
class TraitResult:
    """Change indices of one trait combination."""

    combo_id: str
    factor_names: List[str]
    draws: pd.DataFrame
    summary: pd.DataFrame
    dropped: pd.DataFrame = field(default_factory=pd.DataFrame)


def run_trait_combination(
    trait_draws: TraitDraws,
    credible_level: float = CREDIBLE_LEVEL,
    thresholds: Tuple[float, float] = THRESHOLDS,
    min_count: int = RESULT_FILTER_SIZE,
    natural_orders: Mapping[str, Sequence[str]] = NATURAL_ORDERS,
) -> TraitResult:
    """
    Turn period-effect draws into change indices per trait level (pair).

    Parameters
    ----------
    trait_draws : TraitDraws
        Draws, factors and species counts of one model
    credible_level : float
        Interval probability
    thresholds : Tuple[float, float]
        Proportional-change band for classification
    min_count : int
        Final small-group filter size
    natural_orders : Mapping[str, Sequence[str]]
        Known ecological orders

    Returns
    -------
    TraitResult
        Long draw table, ordered summary and the dropped rows
    """
    factors = trait_draws.factors
    names = trait_draws.factor_names
    cid = trait_draws.combo_id

    if trait_draws.coef_names is None:
        warnings.warn(
            f"{cid}: no coefficient names, draw-matrix column order not checked",
            ColumnOrderWarning,
        )
    else:
        validate_column_order(trait_draws.coef_names, factors, trait_draws.with_period)

    contrast = contrast_for_factors(factors, with_period=trait_draws.with_period)
    log_change = transform(contrast, trait_draws.draws)
    n_draws, n_rows = log_change.shape

    labels = contrast_row_labels(*[f.levels for f in factors])
    label_cols = {name: [lbl[i] for lbl in labels] for i, name in enumerate(names)}

    counts = trait_draws.counts[names + ["n_species"]].copy()
    for name in names:
        counts[name] = counts[name].astype(str)

    rows = []
    for r in range(n_rows):
        rows.append({
            **{name: label_cols[name][r] for name in names},
            **summarize_change(log_change[:, r], credible_level),
            "credible_level": credible_level,
        })
    summary = pd.DataFrame(rows).merge(counts, on=names, how="left")
    summary["n_species"] = summary["n_species"].fillna(0).astype(int)
    summary = classify_frame(summary, thresholds)

    kept = filter_small_groups(summary, min_count, id_cols=names, label=cid)
    dropped = (
        summary.merge(kept[names], on=names, how="left", indicator=True)
        .query("_merge == 'left_only'")
        .drop(columns="_merge")
        .reset_index(drop=True)
    )

    long = pd.DataFrame({
        "draw": np.repeat(np.arange(n_draws), n_rows),
        **{name: np.tile(label_cols[name], n_draws) for name in names},
        "log_change": log_change.ravel(),
        "change": np.expm1(log_change).ravel(),
    })
    long = long.merge(kept[names + ["n_species"]], on=names, how="inner")

    if kept.empty:
        orders = {name: [] for name in names}
    else:
        orders = category_orders(kept, names, natural_orders)

    summary = apply_category_orders(kept, orders)[names + SUMMARY_COLUMNS]
    long = apply_category_orders(long, orders)

    return TraitResult(
        combo_id=cid,
        factor_names=names,
        draws=long,
        summary=summary,
        dropped=dropped,
    )


def run_all(
    inputs: Mapping[str, TraitDraws],
    max_workers: int = MAX_WORKERS,
    **kwargs,
) -> Tuple[Dict[str, TraitResult], Dict[str, Exception]]:
    """
    Run the pipeline for every trait combination in a thread pool.

    A failing combination is reported and collected; it does not stop the
    others.

    Parameters
    ----------
    inputs : Mapping[str, TraitDraws]
        Draws per combination id
    max_workers : int
        Worker threads
    **kwargs
        Passed on to run_trait_combination

    Returns
    -------
    Tuple[Dict[str, TraitResult], Dict[str, Exception]]
        (results, failures), both keyed by combination id
    """
    results: Dict[str, TraitResult] = {}
    failures: Dict[str, Exception] = {}

    with ThreadPoolExecutor(max_workers=max_workers) as ex:
        fut2id = {
            ex.submit(run_trait_combination, td, **kwargs): cid
            for cid, td in inputs.items()
        }
        for fut in as_completed(fut2id):
            cid = fut2id[fut]
            try:
                results[cid] = fut.result()
            except Exception as e:
                print(f"Warning: {cid} failed: {type(e).__name__}: {e}")
                failures[cid] = e

    order = list(inputs)
    results = {cid: results[cid] for cid in order if cid in results}
    failures = {cid: failures[cid] for cid in order if cid in failures}
    return results, failures


def combined_summary(results: Mapping[str, TraitResult]) -> pd.DataFrame:
    """All summaries in one table, with 'combination' and 'category' columns."""
    frames = []
    for cid, res in results.items():
        df = res.summary.copy()
        category = df[res.factor_names].astype(str).agg(":".join, axis=1)
        df = df.drop(columns=res.factor_names)
        df.insert(0, "category", category)
        df.insert(0, "combination", cid)
        frames.append(df)
    if not frames:
        return pd.DataFrame(columns=["combination", "category"] + SUMMARY_COLUMNS)
    return pd.concat(frames, ignore_index=True)


def export_results(
    results: Mapping[str, TraitResult],
    output_dir: Path,
    decimals: int = EXPORT_DECIMALS,
) -> Dict[str, Path]:
    """
    Write draws (pickle keyed by combination) and summary CSVs.

    Parameters
    ----------
    results : Mapping[str, TraitResult]
        Pipeline results
    output_dir : Path
        Output directory
    decimals : int
        Decimals kept for numeric columns

    Returns
    -------
    Dict[str, Path]
        Paths written
    """
    output_dir = Path(output_dir)
    summary_dir = output_dir / SUMMARY_DIRNAME
    summary_dir.mkdir(parents=True, exist_ok=True)

    draws_path = output_dir / DRAWS_FILE
    pd.to_pickle(
        {cid: res.draws.round(decimals) for cid, res in results.items()},
        draws_path,
    )

    written = {"draws": draws_path}
    for cid, res in results.items():
        path = summary_dir / f"{cid}.csv"
        res.summary.round(decimals).to_csv(path, index=False)
        written[cid] = path

    combined_path = output_dir / SUMMARY_FILE
    combined_summary(results).round(decimals).to_csv(combined_path, index=False)
    written["summary"] = combined_path
    return written
