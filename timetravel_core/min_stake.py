"""
Minimum active stake scanner.

Walks a weight-sorted voter list the same way the staking system builds
its electing-voter set and reports the smallest nonzero weight among the
voters that would make it into the set.

The walk accepts at most ``max_allowed_len`` nonzero voters and gives up
after ``coefficient × max_allowed_len`` entries, so a list padded with
zero-weight voters cannot make it scan without bound.

Returns ``None`` when no voter with nonzero weight was found; a returned
integer is always a real, nonzero stake.
"""

from __future__ import annotations

from typing import Iterable, Optional

NPOS_MAX_ITERATIONS_COEFFICIENT = 2


def min_active_stake(
    weights: Iterable[int],
    max_len: Optional[int] = None,
    total: Optional[int] = None,
    coefficient: int = NPOS_MAX_ITERATIONS_COEFFICIENT,
) -> Optional[int]:
    """Smallest nonzero weight among the first accepted voters.

    *weights* is the voters' weights in voter-list order.  *total* is the
    voter-list length; it is computed from *weights* when omitted.
    """
    weights = list(weights) if total is None else weights
    if total is None:
        total = len(weights)

    max_allowed_len = total if max_len is None else min(max_len, total)
    max_seen = coefficient * max_allowed_len

    accepted = 0
    seen = 0
    found: Optional[int] = None

    iterator = iter(weights)
    while accepted < max_allowed_len and seen < max_seen:
        try:
            weight = next(iterator)
        except StopIteration:
            break
        seen += 1

        if weight == 0:
            continue

        if found is None or weight < found:
            found = weight
        accepted += 1

    return found


def state_min_active_stake(state, coefficient: int = NPOS_MAX_ITERATIONS_COEFFICIENT) -> Optional[int]:
    """Minimum active stake of a ``StakingState``'s voter list."""
    voter_list = state.voter_list()
    return min_active_stake(
        (state.weight_of(who) for who in voter_list),
        max_len=state.profile.max_electing_voters,
        total=len(voter_list),
        coefficient=coefficient,
    )
