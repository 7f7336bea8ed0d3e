"""Design matrices and counterbalancing diagnostics."""
from __future__ import annotations

from typing import Any, Iterable, Sequence

import numpy as np
import pandas as pd

from mrlab.core.config import SequenceOption
from mrlab.orchestration.pipeline import plan_range


def design_matrix(
    items: Sequence[Any],
    option: SequenceOption,
    participants: Iterable[int],
    **kwargs: Any,
) -> pd.DataFrame:
    """Return one row per participant with the condition name at each position."""

    plans = list(plan_range(items, option, participants, **kwargs))
    if not plans:
        raise ValueError("At least one participant is required for a design matrix.")
    df = pd.DataFrame(
        [plan.names for plan in plans],
        index=pd.Index([plan.participant for plan in plans], name="participant"),
    )
    df.columns = [f"pos_{i}" for i in range(df.shape[1])]
    return df


def position_counts(design: pd.DataFrame) -> pd.DataFrame:
    """Count how often each condition occupies each position (condition × position)."""

    long = design.melt(var_name="position", value_name="condition", ignore_index=True)
    counts = pd.crosstab(long["condition"], long["position"])
    return counts.reindex(columns=list(design.columns), fill_value=0)


def carryover_counts(design: pd.DataFrame) -> pd.DataFrame:
    """Count ordered adjacent pairs (row condition immediately followed by column condition)."""

    values = design.to_numpy()
    labels = sorted(pd.unique(values.ravel()).tolist())
    lookup = {label: i for i, label in enumerate(labels)}
    matrix = np.zeros((len(labels), len(labels)), dtype=int)
    for row in values:
        for first, second in zip(row[:-1], row[1:]):
            matrix[lookup[first], lookup[second]] += 1
    return pd.DataFrame(matrix, index=pd.Index(labels, name="first"), columns=pd.Index(labels, name="next"))


def is_position_balanced(design: pd.DataFrame) -> bool:
    """True when every condition appears equally often in every position."""

    counts = position_counts(design).to_numpy()
    return bool(counts.size) and bool(np.all(counts == counts.flat[0]))


def max_carryover(design: pd.DataFrame) -> int:
    """Largest number of times any ordered pair of distinct conditions occurs."""

    matrix = carryover_counts(design).to_numpy().copy()
    np.fill_diagonal(matrix, 0)
    return int(matrix.max()) if matrix.size else 0
