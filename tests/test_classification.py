import numpy as np
import pandas as pd
import pytest

from classification import (
    COARSE_LABELS,
    FINE_LABELS,
    classify,
    classify_frame,
    coarsen,
)
from config import ConfigError

T = (-0.2, 0.25)


@pytest.mark.parametrize(
    "lower, upper, expected",
    [
        (0.3, 0.5, "strong increase"),
        (0.05, 0.25, "increase"),
        (0.05, 0.4, "increase"),
        (0.25, 0.4, "increase"),
        (0.05, 0.2, "moderate increase"),
        (-0.1, 0.1, "stable"),
        (0.0, 0.1, "stable"),
        (-0.2, 0.25, "stable"),
        (-0.15, -0.05, "moderate decrease"),
        (-0.3, -0.05, "decrease"),
        (-0.3, -0.2, "decrease"),
        (-0.5, -0.25, "strong decrease"),
        (-0.5, 0.5, "uncertain"),
        (-0.3, 0.1, "uncertain"),
        (-0.1, 0.3, "uncertain"),
    ],
)
def test_classify(lower, upper, expected):
    assert classify(lower, upper, T) == expected


def test_classify_rejects_thresholds_not_around_zero():
    with pytest.raises(ConfigError):
        classify(0.1, 0.2, (0.1, 0.3))


def test_coarsen_is_total_and_onto():
    coarse = {coarsen(label) for label in FINE_LABELS}
    assert coarse == set(COARSE_LABELS)
    assert coarsen("strong increase") == "increase"
    assert coarsen("moderate decrease") == "decrease"
    assert coarsen("stable") == "stable"
    assert coarsen("uncertain") == "uncertain"


def test_coarsen_unknown_label():
    with pytest.raises(ConfigError):
        coarsen("booming")


def test_classify_frame_adds_labels_and_certainty():
    df = pd.DataFrame({"lower": [0.3, -0.1, -0.5], "upper": [0.5, 0.1, -0.3]})
    out = classify_frame(df, T)
    assert list(out["fine_label"].astype(str)) == ["strong increase", "stable", "strong decrease"]
    assert list(out["coarse_label"].astype(str)) == ["increase", "stable", "decrease"]
    assert list(out["certain"]) == [True, False, True]
    assert "fine_label" not in df.columns
