import numpy as np
import pytest

from config import ConfigError
from contrasts import (
    build_contrast,
    build_interaction_contrast,
    contrast_row_labels,
    treatment_contrast,
)


def test_build_contrast_shape_and_rows():
    c = build_contrast(3)
    assert c.shape == (3, 2)
    assert np.array_equal(c, np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0]]))


def test_reference_row_of_zero_vector_is_zero():
    for n in range(1, 8):
        c = build_contrast(n)
        assert c[0] @ np.zeros(n - 1) == 0.0


def test_rows_reproduce_reference_relative_deviations():
    coef = np.array([0.1, -0.2])
    out = build_contrast(3) @ coef
    assert np.allclose(out, [0.0, 0.1, -0.2])

    rng = np.random.default_rng(3)
    for n in range(2, 9):
        coef = rng.normal(size=n - 1)
        out = build_contrast(n) @ coef
        assert out[0] == 0.0
        assert np.allclose(out[1:], coef)


def test_single_level_is_trivial():
    assert build_contrast(1).shape == (1, 0)
    assert np.array_equal(build_contrast(1, with_period=True), np.ones((1, 1)))


@pytest.mark.parametrize("n", [0, -2, 2.5])
def test_invalid_cardinality_raises(n):
    with pytest.raises(ConfigError):
        build_contrast(n)


def test_with_period_adds_reference_change_to_every_level():
    c = build_contrast(3, with_period=True)
    assert np.array_equal(c, np.array([[1, 0, 0], [1, 1, 0], [1, 0, 1]], dtype=float))
    coef = np.array([0.5, 0.1, -0.2])
    assert np.allclose(c @ coef, [0.5, 0.6, 0.3])


def test_interaction_with_single_column_level_equals_single_contrast():
    for n1 in range(1, 6):
        assert np.array_equal(build_interaction_contrast(n1, 1), build_contrast(n1))
        assert np.array_equal(
            build_interaction_contrast(n1, 1, with_period=True),
            build_contrast(n1, with_period=True),
        )


def test_interaction_with_single_row_level_equals_single_contrast():
    for n2 in range(1, 6):
        assert np.array_equal(build_interaction_contrast(1, n2), build_contrast(n2))


def test_interaction_shapes():
    assert build_interaction_contrast(3, 2).shape == (6, 5)
    assert build_interaction_contrast(3, 2, with_period=True).shape == (6, 6)
    assert build_interaction_contrast(4, 3).shape == (12, 11)


def test_interaction_3x2_layout():
    # columns: period, A2, A3, B2, A2:B2, A3:B2
    expected = np.array([
        [1, 0, 0, 0, 0, 0],
        [1, 1, 0, 0, 0, 0],
        [1, 0, 1, 0, 0, 0],
        [1, 0, 0, 1, 0, 0],
        [1, 1, 0, 1, 1, 0],
        [1, 0, 1, 1, 0, 1],
    ], dtype=float)
    assert np.array_equal(build_interaction_contrast(3, 2, with_period=True), expected)


def test_interaction_reconstructs_cell_effects():
    # Cell effect = period + A[a] + B[b] + AxB[a, b], treatment coded
    n1, n2 = 3, 4
    rng = np.random.default_rng(11)
    period = rng.normal()
    a_eff = np.concatenate([[0.0], rng.normal(size=n1 - 1)])
    b_eff = np.concatenate([[0.0], rng.normal(size=n2 - 1)])
    ab_eff = np.zeros((n1, n2))
    ab_eff[1:, 1:] = rng.normal(size=(n1 - 1, n2 - 1))

    # A varies fastest within each B level
    inter = [ab_eff[a, b] for b in range(1, n2) for a in range(1, n1)]
    coef = np.concatenate([[period], a_eff[1:], b_eff[1:], inter])

    out = build_interaction_contrast(n1, n2, with_period=True) @ coef
    labels = contrast_row_labels(range(n1), range(n2))
    for r, (a, b) in enumerate(labels):
        assert out[r] == pytest.approx(period + a_eff[a] + b_eff[b] + ab_eff[a, b])


def test_row_labels_grouped_by_column_level():
    labels = contrast_row_labels(["a1", "a2"], ["b1", "b2", "b3"])
    assert labels == [
        ("a1", "b1"), ("a2", "b1"),
        ("a1", "b2"), ("a2", "b2"),
        ("a1", "b3"), ("a2", "b3"),
    ]
    assert contrast_row_labels(["x", "y"]) == [("x",), ("y",)]


def test_treatment_contrast_reference_row_is_zero():
    c = treatment_contrast(4)
    assert np.all(c[0] == 0)
    assert np.array_equal(c[1:], np.eye(3))
