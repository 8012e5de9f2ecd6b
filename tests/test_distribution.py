"""
Tests for timetravel_core.distribution — target ranking and share policies.

Covers:
  - SortedTargets ranking by aggregate stake (ties by id)
  - restrict keeps the global order
  - pro-rata and pareto splits, integer rounding
  - empty target lists and empty pareto partitions
"""

from __future__ import annotations

import pytest

from timetravel_core.distribution import ShareDistribution, SortedTargets, share_distribution
from timetravel_core.snapshot import Voter


# ═══════════════════════════════════════════════════════════════════
#  SortedTargets
# ═══════════════════════════════════════════════════════════════════

class TestSortedTargets:
    def test_ranking_from_tuples(self, example_voters):
        ranking = SortedTargets.from_voters(example_voters)
        assert list(ranking) == ["4", "2", "1", "3"]

    def test_ranking_from_voter_objects(self, example_snapshot):
        ranking = SortedTargets.from_voters(example_snapshot.voters)
        assert list(ranking) == ["4", "2", "1", "3"]
        assert ranking.stakes == {"1": 40, "2": 20, "3": 40, "4": 10}

    def test_ties_broken_by_id(self):
        ranking = SortedTargets.from_voters([("a", 5, ["z", "y"])])
        assert list(ranking) == ["y", "z"]

    def test_restrict_keeps_global_order(self, example_voters):
        ranking = SortedTargets.from_voters(example_voters)
        assert list(ranking.restrict(["3", "4"])) == ["4", "3"]
        assert list(ranking.restrict(["1", "2"])) == ["2", "1"]

    def test_rank_of_and_len(self, example_voters):
        ranking = SortedTargets.from_voters(example_voters)
        assert len(ranking) == 4
        assert ranking.rank_of("4") == 0
        assert ranking.rank_of("3") == 3

    def test_no_voters(self):
        assert len(SortedTargets.from_voters([])) == 0


# ═══════════════════════════════════════════════════════════════════
#  Share distribution
# ═══════════════════════════════════════════════════════════════════

class TestProRata:
    def test_example(self, example_voters):
        ranking = SortedTargets.from_voters(example_voters)
        assert share_distribution(ranking, 100) == [
            ("4", 25), ("2", 25), ("1", 25), ("3", 25),
        ]

    def test_rounds_down(self):
        assert share_distribution(["a", "b", "c"], 10) == [("a", 3), ("b", 3), ("c", 3)]

    def test_empty_targets(self):
        assert share_distribution([], 100) == []


class TestPareto:
    def test_example(self, example_voters):
        ranking = SortedTargets.from_voters(example_voters)
        assert share_distribution(ranking, 100, ShareDistribution.PARETO) == [
            ("4", 6), ("2", 6), ("1", 6), ("3", 80),
        ]

    def test_shares_never_exceed_weight(self):
        for n in range(1, 12):
            targets = [f"t{i}" for i in range(n)]
            shares = share_distribution(targets, 997, ShareDistribution.PARETO)
            assert len(shares) == n
            assert sum(amount for _, amount in shares) <= 997

    def test_single_target_gets_top_share_only(self):
        # the bottom partition is empty and receives nothing
        assert share_distribution(["x"], 100, ShareDistribution.PARETO) == [("x", 80)]

    def test_five_targets(self):
        shares = share_distribution(list("abcde"), 100, ShareDistribution.PARETO)
        assert shares == [("a", 5), ("b", 5), ("c", 5), ("d", 5), ("e", 80)]

    def test_empty_targets(self):
        assert share_distribution([], 100, ShareDistribution.PARETO) == []


class TestSelector:
    def test_values(self):
        assert ShareDistribution("pro-rata") is ShareDistribution.PRO_RATA
        assert ShareDistribution("pareto") is ShareDistribution.PARETO

    def test_unknown_value(self):
        with pytest.raises(ValueError):
            ShareDistribution("uniform")

    def test_voter_objects_accepted_for_ranking(self):
        ranking = SortedTargets.from_voters([Voter("v", 3, ("b", "a"))])
        assert list(ranking) == ["a", "b"]
