"""
Supports and election scores.

An election outcome is reduced to the stake each winner receives
(its *support*) and then to a single comparable ``ElectionScore``:

    minimal_stake      = min(total of every winner)
    sum_stake          = Σ total
    sum_stake_squared  = Σ total²

A higher ``minimal_stake`` is better, then a higher ``sum_stake``,
then a lower ``sum_stake_squared`` (flatter distribution).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping


@dataclass
class StakedAssignment:
    """The stake one voter hands to each of its targets."""
    who: str
    distribution: list[tuple[str, int]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return sum(amount for _, amount in self.distribution)


@dataclass
class Support:
    """Total backing of one target and the voters that provide it."""
    total: int = 0
    voters: list[tuple[str, int]] = field(default_factory=list)


@dataclass(frozen=True)
class ElectionScore:
    minimal_stake: int = 0
    sum_stake: int = 0
    sum_stake_squared: int = 0

    def as_tuple(self) -> tuple[int, int, int]:
        return (self.minimal_stake, self.sum_stake, self.sum_stake_squared)

    def is_better_than(self, other: "ElectionScore") -> bool:
        """Strict lexicographic comparison used to rank election outcomes."""
        if self.minimal_stake != other.minimal_stake:
            return self.minimal_stake > other.minimal_stake
        if self.sum_stake != other.sum_stake:
            return self.sum_stake > other.sum_stake
        return self.sum_stake_squared < other.sum_stake_squared


def to_supports(assignments: Iterable[StakedAssignment]) -> dict[str, Support]:
    """Aggregate staked assignments into one ``Support`` per target."""
    supports: dict[str, Support] = {}
    for assignment in assignments:
        for target, amount in assignment.distribution:
            support = supports.setdefault(target, Support())
            support.total += amount
            support.voters.append((assignment.who, amount))
    return supports


def evaluate(supports: Mapping[str, Support] | Iterable[tuple[str, Support]]) -> ElectionScore:
    """Reduce the winners' supports to an ``ElectionScore``.

    Accepts either a mapping ``target -> Support`` or an ordered sequence of
    ``(target, Support)`` pairs.  No winners yields an all-zero score.
    """
    items = supports.items() if isinstance(supports, Mapping) else supports
    totals = [support.total for _, support in items]
    if not totals:
        return ElectionScore()
    return ElectionScore(
        minimal_stake=min(totals),
        sum_stake=sum(totals),
        sum_stake_squared=sum(t * t for t in totals),
    )
