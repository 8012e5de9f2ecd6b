"""
Stake aggregation and share-distribution policies for the DPoS heuristic.

``SortedTargets`` ranks targets by the total stake of the voters that
nominated them (ascending).  A share-distribution policy then splits a
voter's weight across a ranked target list:

  - **pro-rata** — every listed target gets ``weight // len``.
  - **pareto**   — the bottom 80 % of the list shares 20 % of the
    weight, the top 20 % shares the remaining 80 %.

All arithmetic is integer; shares round down.
"""

from __future__ import annotations

from collections import defaultdict
from enum import Enum
from typing import Iterable, Sequence

from timetravel_core.snapshot import Voter


class ShareDistribution(str, Enum):
    PRO_RATA = "pro-rata"
    PARETO = "pareto"


# Pareto split: the bottom PARETO_BOTTOM_NUM / PARETO_DEN of the targets
# receive PARETO_BOTTOM_SHARE_NUM / PARETO_DEN of the weight.
PARETO_DEN = 5
PARETO_BOTTOM_NUM = 4
PARETO_BOTTOM_SHARE_NUM = 1


class SortedTargets:
    """Targets ordered by aggregate nominated stake, ascending.

    Ties are broken by the target id so the order is deterministic.
    """

    def __init__(self, targets: Sequence[str], stakes: dict[str, int] | None = None):
        self.targets: list[str] = list(targets)
        self.stakes: dict[str, int] = dict(stakes or {})

    @classmethod
    def from_voters(cls, voters: Iterable[Voter | tuple]) -> "SortedTargets":
        """Build the ranking from ``Voter`` objects or ``(id, stake, targets)`` tuples."""
        aggregate: dict[str, int] = defaultdict(int)
        for voter in voters:
            if isinstance(voter, Voter):
                stake, targets = voter.stake, voter.targets
            else:
                _, stake, targets = voter
            for target in targets:
                aggregate[target] += stake
        ordered = sorted(aggregate, key=lambda t: (aggregate[t], t))
        return cls(ordered, aggregate)

    def restrict(self, targets: Iterable[str]) -> "SortedTargets":
        """The ranking restricted to *targets*, keeping the global order."""
        wanted = set(targets)
        return SortedTargets([t for t in self.targets if t in wanted], self.stakes)

    def rank_of(self, target: str) -> int:
        return self.targets.index(target)

    def __len__(self) -> int:
        return len(self.targets)

    def __iter__(self):
        return iter(self.targets)

    def __repr__(self) -> str:
        return f"SortedTargets({self.targets!r})"


def share_distribution(
    sorted_targets: SortedTargets | Sequence[str],
    weight: int,
    distribution: ShareDistribution = ShareDistribution.PRO_RATA,
) -> list[tuple[str, int]]:
    """Split *weight* over the ranked targets according to *distribution*."""
    targets = list(sorted_targets)
    if not targets:
        return []

    if distribution == ShareDistribution.PRO_RATA:
        share = weight // len(targets)
        return [(target, share) for target in targets]

    if distribution == ShareDistribution.PARETO:
        split_index = len(targets) * PARETO_BOTTOM_NUM // PARETO_DEN
        bottom, top = targets[:split_index], targets[split_index:]

        bottom_total = weight * PARETO_BOTTOM_SHARE_NUM // PARETO_DEN
        top_total = weight * (PARETO_DEN - PARETO_BOTTOM_SHARE_NUM) // PARETO_DEN

        # an empty partition receives nothing
        bottom_share = bottom_total // len(bottom) if bottom else 0
        top_share = top_total // len(top) if top else 0

        return (
            [(target, bottom_share) for target in bottom]
            + [(target, top_share) for target in top]
        )

    raise ValueError(f"unknown share distribution: {distribution!r}")
