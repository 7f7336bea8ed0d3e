"""Strategy dispatch and per-participant sequence plans."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence

from loguru import logger

from mrlab.core.config import ExperimentConfig, SequenceOption, condition_name
from mrlab.core.io import AssignmentEntry, compute_sequence_hash
from mrlab.orchestration import sequencing


def _balanced(items: Sequence[Any], participant: int, **_: Any) -> List[Any]:
    return sequencing.balanced_latin_square(items, participant)


def _latin(items: Sequence[Any], participant: int, **_: Any) -> List[Any]:
    return sequencing.latin_square(items, participant)


def _permutations(items: Sequence[Any], participant: int, *, max_items: Optional[int] = None, **_: Any) -> List[Any]:
    limit = sequencing.DEFAULT_MAX_PERMUTATION_ITEMS if max_items is None else max_items
    return sequencing.permutations(items, participant, max_items=limit)


def _seeded(items: Sequence[Any], participant: int, **_: Any) -> List[Any]:
    return sequencing.shuffle_by_seed(items, participant)


def _random(items: Sequence[Any], participant: int, *, rng=None, **_: Any) -> List[Any]:
    return sequencing.shuffle(items, rng=rng)


_STRATEGIES: Dict[SequenceOption, Callable[..., List[Any]]] = {
    SequenceOption.BALANCED_LATIN_SQUARE: _balanced,
    SequenceOption.LATIN_SQUARE: _latin,
    SequenceOption.PERMUTATIONS: _permutations,
    SequenceOption.SHUFFLE_BY_SEED: _seeded,
    SequenceOption.SHUFFLE: _random,
}


def apply_sequence(option: SequenceOption, items: Sequence[Any], participant: int, **kwargs: Any) -> List[Any]:
    """Reorder ``items`` for ``participant`` with the selected strategy.

    ``ShuffleBySeed`` uses the participant identifier as its seed. Extra
    keyword arguments (``max_items``, ``rng``) reach the strategies that use them.
    """

    strategy = _STRATEGIES[SequenceOption(option)]
    return strategy(items, participant, **kwargs)


def is_reproducible(option: SequenceOption) -> bool:
    """Return True when the same participant always receives the same order."""

    return SequenceOption(option) is not SequenceOption.SHUFFLE


@dataclass
class SequencePlan:
    """Order of conditions assigned to a single participant."""

    participant: int
    option: SequenceOption
    order: List[Any]

    @property
    def names(self) -> List[str]:
        return [condition_name(item) for item in self.order]

    @property
    def sequence_hash(self) -> str:
        return compute_sequence_hash(*self.names)

    def to_entry(self, run_id: str, experiment_name: str, **params: object) -> AssignmentEntry:
        """Convert the plan into a manifest entry."""

        return AssignmentEntry(
            run_id=run_id,
            experiment_name=experiment_name,
            subject_id=self.participant,
            strategy=self.option.value,
            order=self.names,
            sequence_hash=self.sequence_hash,
            params=dict(params),
        )


def plan_for(config: ExperimentConfig, **kwargs: Any) -> SequencePlan:
    """Compute the run's final condition order; called once per run."""

    kwargs.setdefault("max_items", config.max_permutation_items)
    order = apply_sequence(config.sequence, config.conditions, config.participant, **kwargs)
    plan = SequencePlan(participant=config.participant, option=config.sequence, order=order)
    logger.info(
        "Subject {} assigned {} order: {}", config.participant, config.sequence.value, ", ".join(plan.names)
    )
    return plan


def plan_range(
    items: Sequence[Any],
    option: SequenceOption,
    participants: Iterable[int],
    **kwargs: Any,
) -> Iterator[SequencePlan]:
    """Yield plans for each participant identifier."""

    option = SequenceOption(option)
    for participant in participants:
        yield SequencePlan(
            participant=participant,
            option=option,
            order=apply_sequence(option, items, participant, **kwargs),
        )
