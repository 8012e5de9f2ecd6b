"""
Delegated Proof-of-Stake (DPoS) election heuristic.

Every voter splits its stake over the targets it voted for according to
a share-distribution policy (pro-rata by default); the targets are then
ranked by the stake they collected and the top ``desired_targets`` are
the winners.  Losing targets do not contribute to the score.
"""

from __future__ import annotations

import logging

from timetravel_core.distribution import ShareDistribution, SortedTargets, share_distribution
from timetravel_core.score import ElectionScore, StakedAssignment, Support, evaluate, to_supports
from timetravel_core.snapshot import Snapshot

logger = logging.getLogger("timetravel.dpos")


def dpos_assignments(
    snapshot: Snapshot,
    distribution: ShareDistribution = ShareDistribution.PRO_RATA,
) -> list[StakedAssignment]:
    """Staked assignment of every good voter in the snapshot."""
    ranking = SortedTargets.from_voters(snapshot.voters)

    assignments: list[StakedAssignment] = []
    for voter in snapshot.voters:
        if not voter.targets or voter.stake == 0:
            logger.warning(
                "Bad voter %s with stake %d, targets: %d. skipping.",
                voter.id, voter.stake, len(voter.targets),
            )
            continue
        ranked = ranking.restrict(voter.targets)
        assignments.append(
            StakedAssignment(voter.id, share_distribution(ranked, voter.stake, distribution))
        )
    return assignments


def dpos_winners(
    assignments: list[StakedAssignment],
    desired_targets: int,
) -> list[tuple[str, Support]]:
    """Top *desired_targets* supports by total, best first (ties by target id)."""
    supports = to_supports(assignments)
    ranked = sorted(supports.items(), key=lambda item: (-item[1].total, item[0]))
    return ranked[:desired_targets]


def mine_dpos(
    snapshot: Snapshot,
    desired_targets: int,
    distribution: ShareDistribution = ShareDistribution.PRO_RATA,
) -> ElectionScore:
    """Score of the DPoS-style election over *snapshot*."""
    assignments = dpos_assignments(snapshot, distribution)
    winners = dpos_winners(assignments, desired_targets)
    score = evaluate(winners)
    logger.info("mined a dpos-like solution (%s) with score = %s", distribution.value, score)
    return score
