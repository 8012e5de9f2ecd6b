"""
Analysis operations.

Each operation reads one (or, for the ledger checks, two) staking states
and produces a result for the reporting layer:

  - ``MIN_ACTIVE_STAKE``       → ``MinActiveStakeRow``
  - ``ELECTION_ANALYSIS``      → ``ElectionAnalysisRow``
  - ``STAKING_LEDGER_CHECKS``  → ``LedgerCheckReport``

The election analysis computes, for the bounded snapshot:

  * the configured Phragmén solver's score
  * the PhragMMS score
  * the DPoS heuristic's score

and, when ``compute_unbounded`` is set, rebuilds the snapshot over the
whole voter list and computes the Phragmén and DPoS scores again.

Errors propagate as ``TimetravelError`` subclasses; an operation that
fails produces no row.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Optional, Sequence

from timetravel_core.distribution import ShareDistribution
from timetravel_core.dpos import mine_dpos
from timetravel_core.ledger_checks import LedgerCheckReport, staking_ledger_checks
from timetravel_core.min_stake import NPOS_MAX_ITERATIONS_COEFFICIENT, state_min_active_stake
from timetravel_core.phragmen import PhragMMS, SeqPhragmen, Solver, mine_with
from timetravel_core.score import ElectionScore
from timetravel_core.snapshot import snapshot_size
from timetravel_core.snapshot_builder import bounded_snapshot, unbounded_snapshot
from timetravel_core.state import StakingState

logger = logging.getLogger("timetravel.operations")


class Operation(str, Enum):
    MIN_ACTIVE_STAKE = "min-active-stake"
    ELECTION_ANALYSIS = "election-analysis"
    STAKING_LEDGER_CHECKS = "staking-ledger-checks"


@dataclass(frozen=True)
class AnalysisConfig:
    """Knobs of the election analysis."""
    solver: Solver = field(default_factory=SeqPhragmen)
    compute_unbounded: bool = True
    do_feasibility: bool = False
    share_distribution: ShareDistribution = ShareDistribution.PRO_RATA
    max_iterations_coefficient: int = NPOS_MAX_ITERATIONS_COEFFICIENT


# ── CSV rows ────────────────────────────────────────────────────────────

class _Row:
    """Mixin turning a dataclass row into an ordered CSV record."""

    @classmethod
    def header(cls) -> list[str]:
        return [f.name for f in fields(cls)]

    def to_record(self) -> dict[str, Any]:
        # unknown values become empty cells
        return {
            f.name: ("" if getattr(self, f.name) is None else getattr(self, f.name))
            for f in fields(self)
        }


@dataclass
class MinActiveStakeRow(_Row):
    block_number: int
    min_active_stake: Optional[int]


def _score_columns(prefix: str, score: Optional[ElectionScore]) -> dict[str, Optional[int]]:
    if score is None:
        return {f"{prefix}_min_stake": None, f"{prefix}_sum_stake": None,
                f"{prefix}_sum_stake_squared": None}
    return {
        f"{prefix}_min_stake": score.minimal_stake,
        f"{prefix}_sum_stake": score.sum_stake,
        f"{prefix}_sum_stake_squared": score.sum_stake_squared,
    }


@dataclass
class ElectionAnalysisRow(_Row):
    block_number: int
    active_era: int
    solver: str
    phrag_min_stake: int
    phrag_sum_stake: int
    phrag_sum_stake_squared: int
    phrag_mms_min_stake: int
    phrag_mms_sum_stake: int
    phrag_mms_sum_stake_squared: int
    phrag_unbound_min_stake: Optional[int]
    phrag_unbound_sum_stake: Optional[int]
    phrag_unbound_sum_stake_squared: Optional[int]
    dpos_min_stake: int
    dpos_sum_stake: int
    dpos_sum_stake_squared: int
    dpos_unbound_min_stake: Optional[int]
    dpos_unbound_sum_stake: Optional[int]
    dpos_unbound_sum_stake_squared: Optional[int]
    voters: int
    targets: int
    snapshot_size: int
    voters_unbound: Optional[int]
    targets_unbound: Optional[int]
    snapshot_size_unbound: Optional[int]
    min_active_stake: Optional[int]


# ── Operations ──────────────────────────────────────────────────────────

def min_active_stake_operation(
    state: StakingState,
    coefficient: int = NPOS_MAX_ITERATIONS_COEFFICIENT,
) -> MinActiveStakeRow:
    """Minimum active stake of the state's voter list."""
    logger.info("Transform::min_active_stake starting.")
    min_stake = state_min_active_stake(state, coefficient)
    if min_stake is None:
        logger.warning("Transform::min_active_stake: no active voter at #%d", state.block_number)
    else:
        logger.info(
            "Transform::min_active_stake result %d (%s)",
            min_stake, state.profile.format_balance(min_stake),
        )
    return MinActiveStakeRow(block_number=state.block_number, min_active_stake=min_stake)


def election_analysis(
    state: StakingState,
    config: AnalysisConfig | None = None,
) -> ElectionAnalysisRow:
    """Comprehensive election analysis of one state."""
    config = config or AnalysisConfig()
    coefficient = config.max_iterations_coefficient
    logger.info("Transform::election_analysis starting at #%d.", state.block_number)

    snapshot, metadata = bounded_snapshot(state, coefficient=coefficient)
    size = snapshot_size(snapshot)
    desired = state.desired_targets or 0
    min_stake = state_min_active_stake(state, coefficient)

    phrag = mine_with(config.solver, snapshot, desired, config.do_feasibility)
    mms = mine_with(PhragMMS(iterations=config.solver.iterations), snapshot, desired,
                    config.do_feasibility)
    dpos = mine_dpos(snapshot, desired, config.share_distribution)

    phrag_unbound = dpos_unbound = None
    metadata_unbound = size_unbound = None
    if config.compute_unbounded:
        snapshot_u, metadata_unbound = unbounded_snapshot(state, coefficient=coefficient)
        size_unbound = snapshot_size(snapshot_u)
        desired_u = state.desired_targets or 0
        phrag_unbound = mine_with(config.solver, snapshot_u, desired_u, config.do_feasibility).score
        dpos_unbound = mine_dpos(snapshot_u, desired_u, config.share_distribution)

    row = ElectionAnalysisRow(
        block_number=state.block_number,
        active_era=state.active_era or 0,
        solver=config.solver.name,
        **_score_columns("phrag", phrag.score),
        **_score_columns("phrag_mms", mms.score),
        **_score_columns("phrag_unbound", phrag_unbound),
        **_score_columns("dpos", dpos),
        **_score_columns("dpos_unbound", dpos_unbound),
        voters=metadata.voters,
        targets=metadata.targets,
        snapshot_size=size,
        voters_unbound=metadata_unbound.voters if metadata_unbound else None,
        targets_unbound=metadata_unbound.targets if metadata_unbound else None,
        snapshot_size_unbound=size_unbound,
        min_active_stake=min_stake,
    )
    logger.info("Transform::election_analysis done at #%d.", state.block_number)
    return row


def ledger_checks_operation(states: Sequence[StakingState]) -> LedgerCheckReport:
    """Staking ledger checks over a parent / child pair of states."""
    logger.info("Transform::staking_ledger_checks starting.")
    report = staking_ledger_checks(states)
    if report.is_consistent:
        logger.info("Transform::staking_ledger_checks: child block #%d is consistent.",
                    report.child_block)
    return report
