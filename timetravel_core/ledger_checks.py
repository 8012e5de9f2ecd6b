"""
Staking ledger consistency checks across a parent / child block pair.

For every ledger the stash recorded in it must be bonded to the
controller the ledger is stored under, and for every bonded stash a
ledger must exist under its controller recording that same stash.  The
checks run on the child block first to find the broken stashes, then on
the parent block, and finally a controller-deprecation migration is
simulated on a scratch copy of the parent: every stash without a ledger
becomes self-controlled and its ledger moves to the stash key.

Structural problems are logged and reported, never raised.  Only a
broken precondition (not exactly two states, or a ledger that cannot be
found for the migration) raises ``PreconditionViolation``.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Sequence

from timetravel_core.errors import PreconditionViolation
from timetravel_core.state import StakingLedger, StakingState

logger = logging.getLogger("timetravel.ledger")


@dataclass
class BondedCheck:
    """Classification of every ``(stash, controller)`` bond."""
    none_ledgers: list[tuple[str, str]] = field(default_factory=list)
    inconsistent_ledgers: list[tuple[str, str]] = field(default_factory=list)
    ok_ledgers: list[str] = field(default_factory=list)


@dataclass
class LedgerView:
    """Scratch copy of the staking relation that the migration may mutate."""
    ledgers: dict[str, StakingLedger]
    bonded: dict[str, str]
    payees: dict[str, str]

    @classmethod
    def of(cls, state: StakingState) -> "LedgerView":
        return cls(
            ledgers=copy.deepcopy(state.ledgers),
            bonded=copy.deepcopy(state.bonded),
            payees=copy.deepcopy(state.payees),
        )

    def counts(self) -> tuple[int, int, int]:
        return len(self.ledgers), len(self.bonded), len(self.payees)


@dataclass
class LedgerCheckReport:
    parent_block: int
    child_block: int
    child_counts: tuple[int, int, int]
    child_counts_in_sync: bool
    bad_stashes: list[str]
    none_ledgers: list[tuple[str, str]]
    inconsistent_ledgers: list[tuple[str, str]]
    ok_ledgers: list[str]
    parent_counts: tuple[int, int, int]
    parent_bad_stashes: list[str]
    migrated_stashes: list[str]
    migrated_counts: tuple[int, int, int]
    migrated: LedgerView

    @property
    def is_consistent(self) -> bool:
        return (
            self.child_counts_in_sync
            and not self.bad_stashes
            and not self.none_ledgers
            and not self.inconsistent_ledgers
        )


# ── Checks ──────────────────────────────────────────────────────────────

def ledger_checks(ledgers: dict[str, StakingLedger], bonded: dict[str, str]) -> list[str]:
    """Stashes whose ledger is not stored under their bonded controller."""
    bad_stashes: list[str] = []
    for controller, ledger in ledgers.items():
        stash = ledger.stash
        bonded_controller = bonded.get(stash)
        if bonded_controller is None:
            logger.error("ledger's controller does not have a bonded stash. %s", stash)
            bad_stashes.append(stash)
        elif bonded_controller != controller:
            logger.error(
                "ledger's controller does not match bonded controller. "
                "stash: %s (controllers: %s != %s)",
                stash, controller, bonded_controller,
            )
            bad_stashes.append(stash)
    return bad_stashes


def bonded_checks(ledgers: dict[str, StakingLedger], bonded: dict[str, str]) -> BondedCheck:
    """Classify every bond as missing its ledger, inconsistent, or ok."""
    result = BondedCheck()
    for stash, controller in bonded.items():
        ledger = ledgers.get(controller)
        if ledger is None:
            logger.error(
                "%s with bonded does not have a ledger associated with the controller %s",
                stash, controller,
            )
            result.none_ledgers.append((stash, controller))
        elif ledger.stash != stash:
            logger.error(
                "stash in ledger does not match expected %s != %s", ledger.stash, stash,
            )
            result.inconsistent_ledgers.append((stash, ledger.stash))
        else:
            result.ok_ledgers.append(stash)
    return result


# ── Migration simulation ────────────────────────────────────────────────

def deprecate_controller_simulation(
    view: LedgerView,
    batch: Sequence[tuple[str, str]],
) -> list[str]:
    """Make every ``(stash, controller)`` in *batch* self-controlled in *view*.

    The ledger is looked up under *controller*, then under the controller
    *view* itself bonds the stash to.  Returns the migrated stashes.
    """
    migrated: list[str] = []
    for stash, controller in batch:
        source = controller
        ledger = view.ledgers.get(source)
        if ledger is None:
            source = view.bonded.get(stash, controller)
            ledger = view.ledgers.get(source)
        if ledger is None:
            raise PreconditionViolation(
                f"ledger should exist for controller {controller} (stash {stash})"
            )

        if ledger.stash != stash:
            logger.warning("ledger stash != stash in batch %s %s", ledger.stash, stash)

        view.bonded[stash] = stash
        del view.ledgers[source]
        view.ledgers[stash] = ledger
        migrated.append(stash)
    return migrated


# ── Entry point ─────────────────────────────────────────────────────────

def order_states(states: Sequence[StakingState]) -> tuple[StakingState, StakingState]:
    """``(parent, child)`` by block number; exactly two states are required."""
    if len(states) != 2:
        raise PreconditionViolation(
            f"staking ledger checks need exactly 2 states, got {len(states)}"
        )
    first, second = states
    if first.block_number > second.block_number:
        return second, first
    return first, second


def staking_ledger_checks(states: Sequence[StakingState]) -> LedgerCheckReport:
    """Run the child / parent ledger checks and the migration simulation."""
    parent, child = order_states(states)

    # 1. child block: find the faulty ledgers
    logger.info(" ------ Running logic for child block #%d..", child.block_number)
    ledgers, bonded, payees = child.counts()
    logger.info("#ledgers: %d, #bonded: %d, #payees: %d", ledgers, bonded, payees)
    in_sync = ledgers == bonded == payees
    if not in_sync:
        logger.error(
            "#s out of sync: #ledgers: %d, #bonded: %d, #payees: %d",
            ledgers, bonded, payees,
        )

    bad_stashes = ledger_checks(child.ledgers, child.bonded)
    child_bonded = bonded_checks(child.ledgers, child.bonded)

    logger.warning(
        " Report: #none_ledgers: %d; #inconsistent_ledgers: %d, #bad_ledgers: %d",
        len(child_bonded.none_ledgers),
        len(child_bonded.inconsistent_ledgers),
        len(bad_stashes),
    )

    # 2. parent block: same checks, then simulate the migration
    logger.info(" ------ Running logic for parent block #%d..", parent.block_number)
    parent_counts = parent.counts()
    logger.info("#ledgers: %d, #bonded: %d, #payees: %d", *parent_counts)

    parent_bad = ledger_checks(parent.ledgers, parent.bonded)
    logger.warning(
        " Report: none_ledgers: %d, inconsistent_ledgers: %d, ok_ledgers: %d, total_ledgers: %d",
        len(child_bonded.none_ledgers),
        len(parent_bad),
        len(child_bonded.ok_ledgers),
        parent_counts[0],
    )

    view = LedgerView.of(parent)
    migrated = deprecate_controller_simulation(view, child_bonded.none_ledgers)
    migrated_counts = view.counts()
    logger.info(
        "After deprecate: #ledgers: %d, #bonded: %d, #payees: %d", *migrated_counts,
    )

    return LedgerCheckReport(
        parent_block=parent.block_number,
        child_block=child.block_number,
        child_counts=(ledgers, bonded, payees),
        child_counts_in_sync=in_sync,
        bad_stashes=bad_stashes,
        none_ledgers=child_bonded.none_ledgers,
        inconsistent_ledgers=child_bonded.inconsistent_ledgers,
        ok_ledgers=child_bonded.ok_ledgers,
        parent_counts=parent_counts,
        parent_bad_stashes=parent_bad,
        migrated_stashes=migrated,
        migrated_counts=migrated_counts,
        migrated=view,
    )
