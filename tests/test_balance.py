"""Tests for design matrices and counterbalancing diagnostics."""
from __future__ import annotations

import pandas as pd
import pytest

from mrlab.analysis.balance import (
    carryover_counts,
    design_matrix,
    is_position_balanced,
    max_carryover,
    position_counts,
)
from mrlab.core.config import SequenceOption
from mrlab.orchestration.sequencing import InfeasiblePermutations


def test_design_matrix_has_one_row_per_participant():
    design = design_matrix(["A", "B", "C", "D"], SequenceOption.BALANCED_LATIN_SQUARE, range(4))

    assert design.shape == (4, 4)
    assert design.index.name == "participant"
    assert list(design.index) == [0, 1, 2, 3]
    assert list(design.columns) == ["pos_0", "pos_1", "pos_2", "pos_3"]
    assert list(design.loc[0]) == ["A", "B", "D", "C"]
    assert list(design.loc[3]) == ["D", "A", "C", "B"]


def test_balanced_square_diagnostics_even():
    design = design_matrix(["A", "B", "C", "D"], "balanced_latin_square", range(4))

    counts = position_counts(design)
    assert (counts.to_numpy() == 1).all()
    assert is_position_balanced(design)

    carry = carryover_counts(design)
    assert carry.index.name == "first"
    assert carry.columns.name == "next"
    assert list(carry.index) == ["A", "B", "C", "D"]
    for first in carry.index:
        for second in carry.columns:
            assert carry.loc[first, second] == (0 if first == second else 1)
    assert max_carryover(design) == 1


def test_balanced_square_diagnostics_odd_needs_two_squares():
    items = ["A", "B", "C"]
    partial = design_matrix(items, SequenceOption.BALANCED_LATIN_SQUARE, range(3))
    assert not is_position_balanced(partial)

    full = design_matrix(items, SequenceOption.BALANCED_LATIN_SQUARE, range(6))
    assert is_position_balanced(full)
    assert max_carryover(full) == 2
    assert int(carryover_counts(full).to_numpy().sum()) == 12


def test_permutations_cover_every_order():
    design = design_matrix(["A", "B", "C"], SequenceOption.PERMUTATIONS, range(6))
    assert len({tuple(row) for row in design.itertuples(index=False)}) == 6
    assert is_position_balanced(design)


def test_design_matrix_forwards_permutation_limit():
    with pytest.raises(InfeasiblePermutations):
        design_matrix(["A", "B", "C", "D"], SequenceOption.PERMUTATIONS, range(2), max_items=3)


def test_design_matrix_requires_participants():
    with pytest.raises(ValueError):
        design_matrix(["A", "B"], SequenceOption.LATIN_SQUARE, [])


def test_diagnostics_flag_unbalanced_designs():
    design = pd.DataFrame([["A", "B"], ["A", "B"]], columns=["pos_0", "pos_1"])

    counts = position_counts(design)
    assert counts.loc["A", "pos_0"] == 2
    assert counts.loc["A", "pos_1"] == 0
    assert not is_position_balanced(design)
    assert carryover_counts(design).loc["A", "B"] == 2
    assert max_carryover(design) == 2
