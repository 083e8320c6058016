"""
Contrast matrices for treatment-coded trait models.

The period effect of a trait model is estimated relative to the reference
level of every trait. These matrices turn the coefficient vector into one
change value per trait level (or per cell of two crossed traits).
"""

from typing import List, Optional, Sequence, Tuple

import numpy as np

from config import ConfigError


def _check_cardinality(n: int, name: str = "n") -> None:
    if int(n) != n or n < 1:
        raise ConfigError(f"{name} must be a positive integer, got {n!r}")


def treatment_contrast(n: int) -> np.ndarray:
    """
    Treatment contrast coding for ``n`` levels, reference level first.

    Parameters
    ----------
    n : int
        Number of levels

    Returns
    -------
    np.ndarray
        Matrix of shape (n, n - 1); first row zeros, identity below
    """
    _check_cardinality(n)
    return np.vstack([np.zeros((1, n - 1)), np.eye(n - 1)])


def build_contrast(n: int, with_period: bool = False) -> np.ndarray:
    """
    Contrast matrix mapping treatment-coded coefficients to per-level values.

    Parameters
    ----------
    n : int
        Number of trait levels
    with_period : bool
        Whether the coefficient vector starts with the period main effect.
        If so a column of ones is prepended, so every level receives the
        reference level's change plus its own deviation.

    Returns
    -------
    np.ndarray
        Matrix of shape (n, n - 1), or (n, n) when ``with_period`` is set
    """
    contrast = treatment_contrast(n)
    if with_period:
        contrast = np.hstack([np.ones((n, 1)), contrast])
    return contrast


def build_interaction_contrast(n1: int, n2: int, with_period: bool = False) -> np.ndarray:
    """
    Contrast matrix for every cell of two crossed, treatment-coded traits.

    Coefficient (column) layout of the full model:
    ``[period | A (n1-1) | B (n2-1) | A x B ((n1-1)(n2-1), A varies fastest)]``.

    Rows are grouped by B level (reference first) and ordered by A level
    within each group.

    Parameters
    ----------
    n1 : int
        Number of levels of the row trait A
    n2 : int
        Number of levels of the column trait B
    with_period : bool
        Whether the coefficient vector starts with the period main effect

    Returns
    -------
    np.ndarray
        Matrix of shape (n1 * n2, n1 * n2), or (n1 * n2, n1 * n2 - 1)
        without the period column
    """
    _check_cardinality(n1, "n1")
    _check_cardinality(n2, "n2")

    n_cols = n1 * n2
    n_inter = (n1 - 1) * (n2 - 1)
    a_contrast = build_contrast(n1, with_period=True)

    # Reference B block: plain A structure
    ref_block = np.hstack([a_contrast, np.zeros((n1, n_cols - n1))])

    blocks = [ref_block]
    for j in range(n2 - 1):
        indicator = np.zeros((n1, n2 - 1))
        indicator[:, j] = 1.0

        inter = np.zeros((n1, n_inter))
        first = j * (n1 - 1)
        inter[:, first:first + n1 - 1] = treatment_contrast(n1)

        blocks.append(np.hstack([a_contrast, indicator, inter]))

    contrast = np.vstack(blocks)
    if not with_period:
        contrast = contrast[:, 1:]
    return contrast


def contrast_row_labels(
    levels_a: Sequence[str],
    levels_b: Optional[Sequence[str]] = None,
) -> List[Tuple[str, ...]]:
    """
    Labels of the contrast rows, in row order.

    Parameters
    ----------
    levels_a : Sequence[str]
        Levels of the (row) trait, reference first
    levels_b : Optional[Sequence[str]]
        Levels of the column trait, reference first

    Returns
    -------
    List[Tuple[str, ...]]
        One tuple per row: ``(a,)`` or ``(a, b)``
    """
    if levels_b is None:
        return [(a,) for a in levels_a]
    return [(a, b) for b in levels_b for a in levels_a]


def contrast_for_factors(factors, with_period: bool = False) -> np.ndarray:
    """Contrast matrix for one factor or a pair of factors."""
    if len(factors) == 1:
        return build_contrast(len(factors[0].levels), with_period=with_period)
    if len(factors) == 2:
        return build_interaction_contrast(
            len(factors[0].levels), len(factors[1].levels), with_period=with_period
        )
    raise ConfigError("Contrasts are only defined for one or two traits.")
