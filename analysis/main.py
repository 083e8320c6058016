"""
Main script for the moth trait trend analysis.

Usage:
    python main.py [--test] [--data species_traits.csv] [--out output_dir]
"""

import argparse
import warnings
from pathlib import Path
from typing import Dict, Optional, Sequence, Tuple

import pandas as pd

from config import (
    SPECIES_TRAITS_CSV,
    TRAIT_COMBINATIONS,
    FIT_FILTER_SIZE,
    DRAWS,
    TUNE,
    CHAINS,
    MAX_WORKERS,
    RHAT_LIMIT,
    RHAT_FILE,
    TEST,
    ConfigError,
    SparseGroupWarning,
    get_output_paths,
)
from data_utils import (
    cell_counts,
    combo_id,
    generate_test_data,
    prepare_trait_frame,
)
from models import extract_period_draws, fit_trait_model, flag_rhats, get_rhats
from pipeline import TraitDraws, export_results, run_all


def fit_all_combinations(
    species_traits: pd.DataFrame,
    combos: Sequence[Tuple[str, ...]],
    draws: int = DRAWS,
    tune: int = TUNE,
    chains: int = CHAINS,
) -> Tuple[Dict[str, TraitDraws], Dict[str, object], Dict[str, Exception]]:
    """
    Prepare and fit one model per trait combination.

    Combinations whose traits are missing or collapse to a single level after
    filtering are skipped with a message. A model that fails to fit is
    reported and collected; the remaining combinations are still fitted.

    Returns
    -------
    Tuple[Dict[str, TraitDraws], Dict[str, object], Dict[str, Exception]]
        (pipeline inputs, InferenceData, failures) keyed by combination id
    """
    inputs = {}
    idatas = {}
    failures = {}
    available = set(species_traits["trait_name"].unique())

    for combo in combos:
        cid = combo_id(combo)
        if not set(combo) <= available:
            print(f"Skipping {cid}: trait not in data")
            continue
        try:
            frame, factors = prepare_trait_frame(species_traits, combo, FIT_FILTER_SIZE)
        except ConfigError as e:
            print(f"Skipping {cid}: {e}")
            continue

        single = [f.name for f in factors if len(f.levels) < 2]
        if single:
            print(f"Skipping {cid}: single level left for {single}")
            continue

        try:
            idata = fit_trait_model(frame, factors, draws=draws, tune=tune, chains=chains)
            draw_matrix, coef_names = extract_period_draws(idata)
        except Exception as e:
            print(f"Warning: fitting {cid} failed: {type(e).__name__}: {e}")
            failures[cid] = e
            continue

        inputs[cid] = TraitDraws(
            factors=factors,
            draws=draw_matrix,
            counts=cell_counts(frame, factors),
            coef_names=coef_names,
            with_period=True,
        )
        idatas[cid] = idata

    return inputs, idatas, failures


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Trait-level trend indices of moths")
    parser.add_argument("--test", action=argparse.BooleanOptionalAction, default=TEST,
                        help="use synthetic data")
    parser.add_argument("--data", type=Path, default=SPECIES_TRAITS_CSV,
                        help="long species trait table (csv)")
    parser.add_argument("--out", type=Path, default=None, help="output directory")
    parser.add_argument("--draws", type=int, default=DRAWS)
    parser.add_argument("--tune", type=int, default=TUNE)
    parser.add_argument("--chains", type=int, default=CHAINS)
    parser.add_argument("--workers", type=int, default=MAX_WORKERS)
    args = parser.parse_args(argv)

    paths = get_output_paths()
    output_dir = args.out if args.out is not None else paths["output_dir"]

    if args.test:
        print("TEST mode: using synthetic data")
        species_traits = generate_test_data()
    else:
        species_traits = pd.read_csv(args.data)
    print(f"Loaded {species_traits['species_nl'].nunique()} species")

    # Dropped levels and cells are reported once each, then kept in the results
    warnings.simplefilter("always", SparseGroupWarning)

    inputs, idatas, fit_failures = fit_all_combinations(
        species_traits,
        TRAIT_COMBINATIONS,
        draws=args.draws,
        tune=args.tune,
        chains=args.chains,
    )

    rhats = get_rhats(idatas)
    flagged = flag_rhats(rhats, RHAT_LIMIT)
    if not flagged.empty:
        print(f"Warning: {len(flagged)} parameters with R-hat > {RHAT_LIMIT}")
        print(flagged.to_string(index=False))

    results, failures = run_all(inputs, max_workers=args.workers)
    failures = {**fit_failures, **failures}

    written = export_results(results, output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    rhats.to_csv(output_dir / RHAT_FILE, index=False)

    for cid, res in results.items():
        print(f"{cid}: {len(res.summary)} groups kept, {len(res.dropped)} dropped")
    print(f"Summary written to {written['summary']}")

    if failures:
        print(f"{len(failures)} combination(s) failed: {sorted(failures)}")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
