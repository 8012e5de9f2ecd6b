"""
Tests for the staking state data providers and snapshot construction.

Covers:
  - voter list ordering and electing voters
  - electable targets and the target bound
  - bounded vs unbounded snapshots
  - snapshot reuse, desired-target capping, read-back
  - state and snapshot serialisation
"""

from __future__ import annotations

from dataclasses import replace

import pytest

from conftest import make_state

from timetravel_core.errors import ElectionDataUnavailable
from timetravel_core.profile import POLKADOT
from timetravel_core.snapshot import Snapshot, SnapshotBounds, Voter, snapshot_size
from timetravel_core.snapshot_builder import (
    bounded_snapshot,
    bounds_for,
    build_snapshot,
    unbounded_snapshot,
)
from timetravel_core.state import StakingState


# ═══════════════════════════════════════════════════════════════════
#  Data providers
# ═══════════════════════════════════════════════════════════════════

class TestDataProviders:
    def test_voter_list_heaviest_first(self, small_state):
        assert small_state.voter_list() == ["A", "B", "C", "n1", "n2", "n3", "n4"]

    def test_weight_of(self, small_state):
        assert small_state.weight_of("A") == 100
        assert small_state.weight_of("n4") == 0
        assert small_state.weight_of("nobody") == 0

    def test_electing_voters(self, small_state):
        voters = {v.id: v for v in small_state.electing_voters()}
        assert voters["A"] == Voter("A", 100, ("A",))
        assert voters["n1"].targets == ("A", "B")
        # nominations of non-validators are dropped
        assert voters["n3"].targets == ("C",)
        # zero-weight voters stay in the list
        assert voters["n4"].stake == 0

    def test_electing_voters_limit(self, small_state):
        voters = small_state.electing_voters(limit=2)
        assert [v.id for v in voters] == ["A", "B"]

    def test_empty_voter_list(self):
        with pytest.raises(ElectionDataUnavailable):
            StakingState(block_number=1).electing_voters()

    def test_electable_targets_sorted(self, small_state):
        assert small_state.electable_targets() == ["A", "B", "C"]

    def test_target_snapshot_too_big(self, small_state):
        with pytest.raises(ElectionDataUnavailable):
            small_state.electable_targets(limit=2)

    def test_no_targets(self):
        with pytest.raises(ElectionDataUnavailable):
            StakingState(block_number=1).electable_targets()


# ═══════════════════════════════════════════════════════════════════
#  Snapshot construction
# ═══════════════════════════════════════════════════════════════════

class TestBuildSnapshot:
    def test_bounded_snapshot_stored(self, small_state):
        snapshot, metadata = bounded_snapshot(small_state)
        assert metadata.voters == 7
        assert metadata.targets == 3
        assert small_state.snapshot is snapshot
        assert small_state.snapshot_metadata == metadata
        assert small_state.desired_targets == 2

    def test_existing_snapshot_reused(self, small_state):
        first, _ = bounded_snapshot(small_state)
        second, _ = bounded_snapshot(small_state)
        assert second is first

    def test_force_rebuilds(self, small_state):
        first, _ = bounded_snapshot(small_state)
        second, _ = bounded_snapshot(small_state, force=True)
        assert second is not first
        assert second == first

    def test_profile_bounds(self, small_state):
        small_state.profile = replace(POLKADOT, max_electing_voters=3)
        assert bounds_for(small_state) == SnapshotBounds(voters=3, targets=POLKADOT.max_electable_targets)
        _, metadata = bounded_snapshot(small_state)
        assert metadata.voters == 3

    def test_unbounded_profile_takes_whole_list(self, small_state):
        small_state.profile = replace(POLKADOT, max_electing_voters=None)
        assert bounds_for(small_state).voters == 7

    def test_unbounded_at_least_bounded(self, small_state):
        small_state.profile = replace(POLKADOT, max_electing_voters=3)
        _, bounded = bounded_snapshot(small_state)
        _, unbounded = unbounded_snapshot(small_state)
        assert unbounded.voters >= bounded.voters
        assert unbounded.voters == 7
        assert unbounded.targets == bounded.targets

    def test_unbounded_replaces_stored_snapshot(self, small_state):
        small_state.profile = replace(POLKADOT, max_electing_voters=3)
        bounded_snapshot(small_state)
        snapshot, _ = unbounded_snapshot(small_state)
        assert small_state.snapshot is snapshot

    def test_desired_targets_capped(self, small_state):
        small_state.validator_count = 10
        build_snapshot(small_state, None)
        assert small_state.desired_targets == 3

    def test_target_bound_violation(self, small_state):
        with pytest.raises(ElectionDataUnavailable):
            build_snapshot(small_state, SnapshotBounds(voters=10, targets=2))

    def test_no_data(self):
        with pytest.raises(ElectionDataUnavailable):
            bounded_snapshot(make_state())


# ═══════════════════════════════════════════════════════════════════
#  Serialisation
# ═══════════════════════════════════════════════════════════════════

class TestSerialisation:
    def test_snapshot_size_is_encoded_length(self):
        snapshot = Snapshot.new([Voter("a", 1, ("b",))], ["b"])
        assert snapshot.encode() == b'{"voters":[["a",1,["b"]]],"targets":["b"]}'
        assert snapshot_size(snapshot) == len(snapshot.encode())

    def test_more_voters_bigger_snapshot(self, small_state):
        small_state.profile = replace(POLKADOT, max_electing_voters=3)
        bounded, _ = bounded_snapshot(small_state)
        unbounded, _ = unbounded_snapshot(small_state)
        assert snapshot_size(unbounded) > snapshot_size(bounded)

    def test_state_round_trip_with_snapshot(self, small_state):
        bounded_snapshot(small_state)
        restored = StakingState.from_dict(small_state.to_dict())
        assert restored == small_state

    def test_ledger_active_defaults_to_total(self):
        state = StakingState.from_dict({
            "block_number": 5,
            "ledgers": {"c": {"stash": "s", "total": 40}},
            "bonded": {"s": "c"},
        })
        assert state.weight_of("s") == 40
        assert state.profile is POLKADOT
