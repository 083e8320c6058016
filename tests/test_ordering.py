import warnings

import pandas as pd
import pytest

from config import ConfigError, NATURAL_ORDERS, SparseGroupWarning
from ordering import (
    apply_category_orders,
    category_orders,
    filter_small_groups,
    order_categories,
)


def test_natural_order_wins_over_effects():
    labels = {"Polyphagous", "Monophagous", "Oligophagous"}
    key = order_categories(labels, natural_order=NATURAL_ORDERS["Phagy"])
    assert sorted(labels, key=key) == ["Monophagous", "Oligophagous", "Polyphagous"]


def test_unlisted_levels_go_last_by_name():
    key = order_categories({"b", "x", "a"}, natural_order=["x"])
    assert sorted({"b", "x", "a"}, key=key) == ["x", "a", "b"]


def test_effect_order_descending_with_name_ties():
    effects = {"Forest": 0.1, "Grassland": -0.3, "Dunes": 0.1, "Wetland": 0.0}
    key = order_categories(effects, effects=effects)
    assert sorted(effects, key=key) == ["Dunes", "Forest", "Wetland", "Grassland"]


def test_effect_order_requires_all_levels():
    with pytest.raises(ConfigError):
        order_categories({"a", "b"}, effects={"a": 1.0})


def test_single_unordered_trait_sorted_by_median():
    summary = pd.DataFrame({"Biotope": ["Forest", "Grassland", "Wetland"],
                            "median": [-0.1, 0.2, 0.05]})
    orders = category_orders(summary, ["Biotope"], NATURAL_ORDERS)
    assert orders == {"Biotope": ["Grassland", "Wetland", "Forest"]}


def test_pair_with_one_natural_order_sorts_the_other_by_effect():
    summary = pd.DataFrame({
        "Phagy": ["Polyphagous", "Monophagous", "Polyphagous", "Monophagous"],
        "Biotope": ["Forest", "Forest", "Wetland", "Wetland"],
        "median": [-0.2, -0.4, 0.3, 0.1],
    })
    orders = category_orders(summary, ["Phagy", "Biotope"], NATURAL_ORDERS)
    assert orders["Phagy"] == ["Monophagous", "Polyphagous"]
    assert orders["Biotope"] == ["Wetland", "Forest"]


def test_pair_without_natural_orders_keeps_name_order():
    summary = pd.DataFrame({
        "Biotope": ["Wetland", "Forest"],
        "Habitat": ["Open", "Closed"],
        "median": [0.5, -0.5],
    })
    orders = category_orders(summary, ["Biotope", "Habitat"], NATURAL_ORDERS)
    assert orders == {"Biotope": ["Forest", "Wetland"], "Habitat": ["Closed", "Open"]}


def test_pair_with_two_natural_orders_keeps_them():
    # By effect, Polyphagous and Large would come first
    summary = pd.DataFrame({
        "Phagy": ["Polyphagous", "Monophagous", "Polyphagous", "Monophagous"],
        "Size": ["Small", "Small", "Large", "Large"],
        "median": [0.2, -0.4, 0.5, -0.1],
    })
    orders = category_orders(summary, ["Phagy", "Size"], NATURAL_ORDERS)
    assert orders == {
        "Phagy": ["Monophagous", "Polyphagous"],
        "Size": ["Small", "Large"],
    }


def test_apply_category_orders_sorts_rows():
    df = pd.DataFrame({"Size": ["Large", "Small", "Intermediate"], "median": [1, 2, 3]})
    out = apply_category_orders(df, {"Size": ["Small", "Intermediate", "Large"]})
    assert list(out["Size"].astype(str)) == ["Small", "Intermediate", "Large"]
    assert out["Size"].cat.ordered


def test_filter_small_groups_drops_at_threshold_and_warns():
    summary = pd.DataFrame({"Phagy": ["a", "b", "c"], "n_species": [14, 15, 40]})
    with pytest.warns(SparseGroupWarning, match=r"\['a'\]"):
        out = filter_small_groups(summary, 14, id_cols=["Phagy"], label="Phagy")
    assert list(out["Phagy"]) == ["b", "c"]


def test_filter_small_groups_idempotent():
    summary = pd.DataFrame({"Phagy": list("abcde"), "n_species": [3, 20, 14, 15, 0]})
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", SparseGroupWarning)
        once = filter_small_groups(summary, 14)
        twice = filter_small_groups(once, 14)
    pd.testing.assert_frame_equal(once, twice)
