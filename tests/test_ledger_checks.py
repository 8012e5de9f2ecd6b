"""
Tests for the staking ledger consistency checks (ledger_checks.py).

Covers:
  - consistent parent / child pairs report nothing
  - a corrupted bond surfaces exactly one missing ledger
  - the controller-deprecation simulation repairs it on a copy
  - inconsistent ledgers and out-of-sync counts
  - precondition violations
"""

from __future__ import annotations

import copy

import pytest

from timetravel_core.errors import PreconditionViolation
from timetravel_core.ledger_checks import (
    LedgerView,
    bonded_checks,
    deprecate_controller_simulation,
    ledger_checks,
    order_states,
    staking_ledger_checks,
)
from timetravel_core.state import StakingLedger, StakingState

N_STASHES = 5


def _consistent_state(block_number: int) -> StakingState:
    state = StakingState(block_number=block_number)
    for i in range(N_STASHES):
        stash, controller = f"s{i}", f"c{i}"
        state.ledgers[controller] = StakingLedger(stash=stash, total=100 + i, active=100 + i)
        state.bonded[stash] = controller
        state.payees[stash] = "Staked"
    return state


@pytest.fixture
def parent():
    return _consistent_state(10)


@pytest.fixture
def child(parent):
    state = copy.deepcopy(parent)
    state.block_number = 11
    return state


# ═══════════════════════════════════════════════════════════════════
#  Building blocks
# ═══════════════════════════════════════════════════════════════════

class TestLedgerChecks:
    def test_consistent(self, parent):
        assert ledger_checks(parent.ledgers, parent.bonded) == []

    def test_missing_bond(self, parent):
        del parent.bonded["s1"]
        assert ledger_checks(parent.ledgers, parent.bonded) == ["s1"]

    def test_controller_mismatch(self, parent):
        parent.bonded["s2"] = "c9"
        assert ledger_checks(parent.ledgers, parent.bonded) == ["s2"]


class TestBondedChecks:
    def test_all_ok(self, parent):
        result = bonded_checks(parent.ledgers, parent.bonded)
        assert result.ok_ledgers == [f"s{i}" for i in range(N_STASHES)]
        assert result.none_ledgers == []
        assert result.inconsistent_ledgers == []

    def test_none_ledger(self, parent):
        parent.bonded["s0"] = "ghost"
        result = bonded_checks(parent.ledgers, parent.bonded)
        assert result.none_ledgers == [("s0", "ghost")]
        assert len(result.ok_ledgers) == N_STASHES - 1

    def test_inconsistent_ledger(self, parent):
        parent.ledgers["c1"] = StakingLedger(stash="s2", total=1, active=1)
        result = bonded_checks(parent.ledgers, parent.bonded)
        assert result.inconsistent_ledgers == [("s1", "s2")]


class TestMigrationSimulation:
    def test_moves_ledger_to_stash(self, parent):
        view = LedgerView.of(parent)
        migrated = deprecate_controller_simulation(view, [("s3", "c3")])
        assert migrated == ["s3"]
        assert view.bonded["s3"] == "s3"
        assert view.ledgers["s3"].stash == "s3"
        assert "c3" not in view.ledgers

    def test_falls_back_to_bonded_controller(self, parent):
        view = LedgerView.of(parent)
        deprecate_controller_simulation(view, [("s0", "ghost")])
        assert view.bonded["s0"] == "s0"
        assert "c0" not in view.ledgers

    def test_view_is_a_copy(self, parent):
        view = LedgerView.of(parent)
        deprecate_controller_simulation(view, [("s0", "c0")])
        assert parent.bonded["s0"] == "c0"
        assert "c0" in parent.ledgers

    def test_missing_ledger_is_a_precondition_violation(self, parent):
        view = LedgerView.of(parent)
        del view.ledgers["c4"]
        with pytest.raises(PreconditionViolation):
            deprecate_controller_simulation(view, [("s4", "c4")])


# ═══════════════════════════════════════════════════════════════════
#  Full check
# ═══════════════════════════════════════════════════════════════════

class TestStakingLedgerChecks:
    def test_consistent_pair(self, parent, child):
        report = staking_ledger_checks([parent, child])
        assert report.is_consistent
        assert report.bad_stashes == []
        assert report.none_ledgers == []
        assert report.inconsistent_ledgers == []
        assert len(report.ok_ledgers) == N_STASHES
        assert report.migrated_stashes == []
        assert report.child_counts == (N_STASHES, N_STASHES, N_STASHES)

    def test_corrupted_bond_is_repaired_by_migration(self, parent, child):
        child.bonded["s0"] = "ghost"
        report = staking_ledger_checks([parent, child])

        assert not report.is_consistent
        assert report.none_ledgers == [("s0", "ghost")]
        assert report.inconsistent_ledgers == []
        assert report.migrated_stashes == ["s0"]
        assert report.migrated.bonded["s0"] == "s0"
        assert report.migrated.ledgers["s0"].stash == "s0"
        assert report.migrated_counts == (N_STASHES, N_STASHES, N_STASHES)
        # the parent state itself is untouched
        assert parent.bonded["s0"] == "c0"

    def test_states_ordered_by_block_number(self, parent, child):
        report = staking_ledger_checks([child, parent])
        assert report.parent_block == 10
        assert report.child_block == 11

    def test_counts_out_of_sync(self, parent, child):
        del child.payees["s1"]
        report = staking_ledger_checks([parent, child])
        assert not report.child_counts_in_sync
        assert not report.is_consistent

    @pytest.mark.parametrize("count", [0, 1, 3])
    def test_exactly_two_states(self, parent, count):
        with pytest.raises(PreconditionViolation):
            staking_ledger_checks([parent] * count)

    def test_order_states(self, parent, child):
        assert order_states([child, parent]) == (parent, child)
