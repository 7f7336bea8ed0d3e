"""CLI entry point for tabulating counterbalanced orders across participants."""
from __future__ import annotations

import argparse
from dataclasses import dataclass
from math import factorial
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings
import pandas as pd

from mrlab.analysis.balance import carryover_counts, design_matrix, is_position_balanced, max_carryover
from mrlab.core.config import SequenceOption, load_experiment_config
from mrlab.core.io import compute_sequence_hash, write_jsonl
from mrlab.orchestration.pipeline import is_reproducible
from mrlab.orchestration.sequencing import DEFAULT_MAX_PERMUTATION_ITEMS

load_dotenv()  # Load environment variables from .env file


class PlanConfig(BaseSettings):
    """Configuration for design-table runs with environment variable support.

    Unset ``strategy`` and ``max_permutation_items`` fall back to the
    experiment file given with ``config``, then to the library defaults.
    """
    config: Optional[Path] = Field(None, description="Path to experiment YAML file")
    conditions: List[str] = Field(default_factory=list, description="Condition names, in base order")
    strategy: Optional[SequenceOption] = Field(None, description="Counterbalancing strategy")
    participants: int = Field(0, description="Number of participants to plan (0 = one full square)")
    first_participant: int = Field(0, description="First participant identifier")
    max_permutation_items: Optional[int] = Field(None, description="Largest condition count for full permutations")
    out: Optional[Path] = Field(None, description="Optional CSV output path for the design table")
    manifest: Optional[Path] = Field(None, description="Optional JSONL export of per-participant plans")

    class Config:
        env_prefix = "MRLAB_"  # Environment variables will be prefixed with MRLAB_


@dataclass
class Design:
    """Resolved inputs for one design table."""

    conditions: List[str]
    strategy: SequenceOption
    max_permutation_items: int


def parse_args(argv: Optional[Sequence[str]] = None) -> Dict[str, object]:
    """Parse command line arguments into a dictionary."""
    parser = argparse.ArgumentParser(description="Tabulate counterbalanced condition orders.")
    parser.add_argument("--config", type=Path, help="Path to experiment YAML file")
    parser.add_argument(
        "--condition",
        action="append",
        dest="conditions",
        help="Condition name in base order (repeatable).",
    )
    parser.add_argument("--strategy", choices=[opt.value for opt in SequenceOption], help="Counterbalancing strategy")
    parser.add_argument("--participants", type=int, help="Number of participants to plan")
    parser.add_argument("--first-participant", type=int, help="First participant identifier")
    parser.add_argument("--max-permutation-items", type=int, help="Limit for full permutations")
    parser.add_argument("--out", type=Path, help="Optional CSV output path")
    parser.add_argument("--manifest", type=Path, help="Optional JSONL plan export")
    args = parser.parse_args(argv)
    # Convert to dict and remove None values
    return {k: v for k, v in vars(args).items() if v is not None}


def default_participant_count(n_conditions: int, strategy: SequenceOption) -> int:
    """Participants needed to complete one full counterbalancing cycle."""

    if strategy is SequenceOption.BALANCED_LATIN_SQUARE and n_conditions % 2 != 0:
        return 2 * n_conditions
    if strategy is SequenceOption.PERMUTATIONS:
        return factorial(n_conditions)
    return n_conditions


def resolve_design(settings: PlanConfig) -> Design:
    """Merge the experiment file with explicit settings; explicit values win."""

    design = Design(
        conditions=[],
        strategy=SequenceOption.BALANCED_LATIN_SQUARE,
        max_permutation_items=DEFAULT_MAX_PERMUTATION_ITEMS,
    )
    if settings.config:
        experiment = load_experiment_config(settings.config)
        design = Design(
            conditions=[str(c) for c in experiment.conditions],
            strategy=experiment.sequence,
            max_permutation_items=experiment.max_permutation_items,
        )
    if settings.conditions:
        design.conditions = list(settings.conditions)
    if settings.strategy is not None:
        design.strategy = settings.strategy
    if settings.max_permutation_items is not None:
        design.max_permutation_items = settings.max_permutation_items
    if not design.conditions:
        raise SystemExit("Provide conditions with --condition or a --config file.")
    return design


def build_table(settings: PlanConfig, design: Optional[Design] = None) -> pd.DataFrame:
    design = design or resolve_design(settings)
    count = settings.participants or default_participant_count(len(design.conditions), design.strategy)
    participants = range(settings.first_participant, settings.first_participant + count)
    return design_matrix(
        design.conditions, design.strategy, participants, max_items=design.max_permutation_items
    )


def main(argv: Optional[Sequence[str]] = None) -> None:
    # Load configuration from environment variables and command line arguments
    settings = PlanConfig(**parse_args(argv))
    design = resolve_design(settings)
    table = build_table(settings, design)
    print(table.to_string())
    if is_reproducible(design.strategy):
        balanced = "yes" if is_position_balanced(table) else "no"
        print(f"\nPosition balanced: {balanced}; max ordered-pair repeats: {max_carryover(table)}")
        print(carryover_counts(table).to_string())
    else:
        print("\nUnseeded shuffle: orders will differ on every run.")
    if settings.out:
        settings.out.parent.mkdir(parents=True, exist_ok=True)
        table.to_csv(settings.out)
    if settings.manifest:
        write_jsonl(
            (
                {
                    "participant": int(participant),
                    "strategy": design.strategy.value,
                    "order": list(row),
                    "sequence_hash": compute_sequence_hash(*row),
                }
                for participant, row in table.iterrows()
            ),
            settings.manifest,
        )


if __name__ == "__main__":
    main()
