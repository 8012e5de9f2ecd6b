"""
Bounded and unbounded election snapshot construction.

``build_snapshot`` mirrors what the election provider does when it opens
a round: it asks the data providers for electing voters and electable
targets within the configured bounds, stores the snapshot together with
its metadata and the desired number of winners, and reads it back to
make sure the stored counts agree.

  - bounded   — voters limited to ``max_electing_voters`` (or the whole
    voter list when the profile sets no limit)
  - unbounded — the whole voter list; the target bound is unchanged
"""

from __future__ import annotations

import logging
from typing import Optional

from timetravel_core.errors import SnapshotError
from timetravel_core.min_stake import NPOS_MAX_ITERATIONS_COEFFICIENT
from timetravel_core.snapshot import Snapshot, SnapshotBounds, SnapshotMetadata
from timetravel_core.state import StakingState

logger = logging.getLogger("timetravel.snapshot")


def bounds_for(state: StakingState) -> SnapshotBounds:
    """Snapshot bounds from the state's runtime profile."""
    profile = state.profile
    voter_limit = profile.max_electing_voters
    if voter_limit is None:
        voter_limit = len(state.voter_list())
    return SnapshotBounds(voters=voter_limit, targets=profile.max_electable_targets)


def build_snapshot(
    state: StakingState,
    bounds: Optional[SnapshotBounds],
    force: bool = False,
    coefficient: int = NPOS_MAX_ITERATIONS_COEFFICIENT,
) -> tuple[Snapshot, SnapshotMetadata]:
    """Return the state's election snapshot, creating it if needed.

    With *bounds* ``None`` the voter bound is ignored and the whole voter
    list is used.  An existing snapshot is reused unless *force* is set.

    Raises ``ElectionDataUnavailable`` when the providers fail and
    ``SnapshotError`` when the stored snapshot does not read back.
    """
    if state.snapshot is not None and not force:
        logger.info("build_snapshot: snapshot already exists at #%d, reusing it.", state.block_number)
        metadata = state.snapshot_metadata or state.snapshot.metadata
        return state.snapshot, metadata

    if bounds is None:
        voter_limit = len(state.voter_list())
        target_limit = state.profile.max_electable_targets
        mode = "unbounded"
    else:
        voter_limit, target_limit = bounds.voters, bounds.targets
        mode = "bounded"

    logger.info(
        "build_snapshot: creating %s snapshot at #%d (voter limit %d, target limit %d).",
        mode, state.block_number, voter_limit, target_limit,
    )

    state.kill_snapshot()

    targets = state.electable_targets(target_limit)
    voters = state.electing_voters(voter_limit, coefficient=coefficient)

    desired_targets = state.validator_count
    if desired_targets > len(targets):
        logger.warning(
            "build_snapshot: desired targets %d capped to the %d available targets.",
            desired_targets, len(targets),
        )
        desired_targets = len(targets)

    snapshot = Snapshot.new(voters, targets)
    metadata = SnapshotMetadata(voters=len(voters), targets=len(targets))
    state.put_snapshot(snapshot, metadata, desired_targets)

    # read back what was stored
    stored = state.snapshot
    stored_metadata = state.snapshot_metadata
    if stored is None or stored_metadata is None:
        raise SnapshotError("snapshot missing right after it was stored")
    if stored.metadata != stored_metadata or stored_metadata != metadata:
        raise SnapshotError(
            f"snapshot counts do not read back: wrote {metadata}, "
            f"read {stored_metadata} / {stored.metadata}"
        )

    return stored, stored_metadata


def bounded_snapshot(state: StakingState, **kwargs) -> tuple[Snapshot, SnapshotMetadata]:
    """Existing snapshot, or a new one within the profile's bounds."""
    return build_snapshot(state, bounds_for(state), **kwargs)


def unbounded_snapshot(state: StakingState, **kwargs) -> tuple[Snapshot, SnapshotMetadata]:
    """A freshly built snapshot over the whole voter list."""
    kwargs.setdefault("force", True)
    return build_snapshot(state, None, **kwargs)
