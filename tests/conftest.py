"""
Shared pytest fixtures for the timetravel test suite.
"""

from __future__ import annotations

import os
import sys

import pytest

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from timetravel_core.snapshot import Snapshot, Voter  # noqa: E402
from timetravel_core.state import StakingLedger, StakingState  # noqa: E402


def make_state(
    block_number: int = 100,
    validators: dict[str, int] | None = None,
    nominators: dict[str, tuple[int, list[str]]] | None = None,
    validator_count: int = 2,
    **kwargs,
) -> StakingState:
    """StakingState where every stash ``s`` is bonded to controller ``ctrl-s``.

    Stashes with zero stake get no ledger (and so weigh nothing).
    """
    validators = validators or {}
    nominators = nominators or {}
    state = StakingState(
        block_number=block_number,
        block_hash=f"0x{block_number:064x}",
        active_era=block_number // 10,
        validator_count=validator_count,
        validators=list(validators),
        nominators={who: list(targets) for who, (_, targets) in nominators.items()},
        **kwargs,
    )
    stakes = dict(validators)
    stakes.update({who: stake for who, (stake, _) in nominators.items()})
    for stash, stake in stakes.items():
        if stake == 0:
            continue
        controller = f"ctrl-{stash}"
        state.bonded[stash] = controller
        state.ledgers[controller] = StakingLedger(stash=stash, total=stake, active=stake)
        state.payees[stash] = "Staked"
    return state


@pytest.fixture
def small_state():
    """Three validators, four nominators (one with no stake, one voting off-list)."""
    return make_state(
        validators={"A": 100, "B": 80, "C": 60},
        nominators={
            "n1": (50, ["A", "B"]),
            "n2": (30, ["B", "C"]),
            "n3": (20, ["C", "X"]),
            "n4": (0, ["A"]),
        },
        validator_count=2,
    )


@pytest.fixture
def example_voters():
    """Five voters as ``(id, stake, targets)``; targets rank as 4, 2, 1, 3."""
    return [
        ("1", 20, ["1", "2"]),
        ("2", 10, ["3"]),
        ("3", 10, ["1", "3"]),
        ("4", 10, ["4", "3"]),
        ("5", 10, ["1", "3"]),
    ]


@pytest.fixture
def example_snapshot(example_voters):
    voters = [Voter(who, stake, tuple(targets)) for who, stake, targets in example_voters]
    return Snapshot.new(voters, ["1", "2", "3", "4"])


@pytest.fixture
def two_seat_snapshot():
    """Two targets, three voters; balancing lifts the weakest winner from 7 to 8."""
    return Snapshot.new(
        [
            Voter("v1", 10, ("A", "B")),
            Voter("v2", 5, ("A",)),
            Voter("v3", 1, ("B",)),
        ],
        ["A", "B"],
    )
