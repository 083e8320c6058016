"""
Configuration and constants for the moth trait trend analysis.
"""

from pathlib import Path
from typing import Dict, List, Tuple

# =============================================================================
# PATHS
# =============================================================================

# Long table: one row per species x period x trait (species_nl, species_new,
# n_grids, period, sum_per_period, trait_name, trait_value)
SPECIES_TRAITS_CSV = Path("data") / "species_traits_final.csv"

# =============================================================================
# PERIODS
# =============================================================================

PERIOD_COL = "period"
PERIOD_LEVELS = ["p1992_2001", "p2013_2022"]  # reference period first

# =============================================================================
# TRAITS
# =============================================================================

# Ecologically meaningful display orders. Traits missing here are ordered by
# their posterior median change.
NATURAL_ORDERS: Dict[str, List[str]] = {
    "EllenbergN": [
        "VeryNutrientPoor",
        "NutrientPoor",
        "NutrientRich",
        "VeryNutrientRich",
    ],
    "Size": ["VerySmall", "Small", "Intermediate", "Large", "VeryLarge"],
    "nGenerations": ["1", "2"],
    "OverwinteringStage": ["Egg", "Caterpillar", "Pupa", "Adult"],
    "Phagy": ["Monophagous", "Oligophagous", "Polyphagous"],
    "TempHum": ["Cold_VeryWet", "Cold_Wet", "Hot_Wet", "Hot_Dry", "VeryHot_Dry"],
    "Seasonality": [
        "Spring",
        "SpringSummer",
        "Summer",
        "SummerAutumn",
        "Autumn",
        "Winter",
        "AutumnSpring",
        "SpringSummerAutumn",
    ],
}

# Single traits and trait pairs (row trait, column trait) to analyse
TRAIT_COMBINATIONS: List[Tuple[str, ...]] = [
    ("EllenbergN",),
    ("Size",),
    ("nGenerations",),
    ("OverwinteringStage",),
    ("Phagy",),
    ("TempHum",),
    ("Seasonality",),
    ("Biotope",),
    ("Phagy", "Size"),
    ("EllenbergN", "Biotope"),
    ("OverwinteringStage", "nGenerations"),
    ("TempHum", "Seasonality"),
]

# =============================================================================
# FILTERING
# =============================================================================

# Pre-fit: a trait level needs more than this many species in each period
FIT_FILTER_SIZE = 14
# Final results: a category (pair) needs more than this many species
RESULT_FILTER_SIZE = 14

# =============================================================================
# CLASSIFICATION
# =============================================================================

CREDIBLE_LEVEL = 0.90

# Proportional change thresholds (-20% / +25%)
THRESHOLDS = (-0.20, 0.25)

# =============================================================================
# MODEL PRIORS
# =============================================================================

PRIOR_SD_INTERCEPT = 5.0
PRIOR_SD_EFFECT = 1.0
PRIOR_SD_SPECIES = 1.0

# =============================================================================
# SAMPLING CONFIGURATION
# =============================================================================

TEST = True  # Enable test mode with synthetic data

DRAWS = 1000
TUNE = 1000
CHAINS = 4
TARGET_ACCEPT = 0.9
RANDOM_SEED = 1701

# Potential scale reduction factor above which a model is flagged
RHAT_LIMIT = 1.1

# Worker threads for running trait combinations
MAX_WORKERS = 4

# Decimals kept in exported tables
EXPORT_DECIMALS = 4


class ConfigError(Exception):
    pass


class SparseGroupWarning(UserWarning):
    """Trait levels or cells dropped for having too few species."""


# =============================================================================
# OUTPUT PATHS
# =============================================================================

DRAWS_FILE = "msci_draws.pkl"
SUMMARY_DIRNAME = "summaries"
SUMMARY_FILE = "msci_summary.csv"
RHAT_FILE = "rhats.csv"


def get_output_paths(base_dir: Path = None):
    """Get output directory paths."""
    if base_dir is None:
        base_dir = Path(__file__).resolve().parent

    output_dir = base_dir / "output"

    return {
        "base_dir": base_dir,
        "output_dir": output_dir,
        "draws_path": output_dir / DRAWS_FILE,
        "summary_dir": output_dir / SUMMARY_DIRNAME,
        "summary_path": output_dir / SUMMARY_FILE,
        "rhat_path": output_dir / RHAT_FILE,
    }
