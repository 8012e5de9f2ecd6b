"""
NPoS election solvers: Sequential Phragmén and PhragMMS.

Both solvers elect ``to_elect`` winners out of the snapshot targets and
spread every voter's stake over the winners it voted for.  The result is
a list of winners plus one ``StakedAssignment`` per voter; its score is
evaluated on the winners' supports.

Arithmetic
──────────
Phragmén loads and PhragMMS scores are fixed-point integers scaled by
``LOAD_ACCURACY`` and rounded down; edge weights and backed stakes are
integers (planck).  Operand sizes stay bounded whatever the number of
rounds, and nothing depends on float rounding, so identical input in
identical order always gives an identical solution.

Balancing
─────────
After (Phragmén) or during (PhragMMS) the election, star balancing moves
each voter's stake from its better-backed winners to its worse-backed
ones.  ``BalancingConfig.iterations`` bounds the number of passes over
all voters; ``tolerance`` stops early once no voter moves more than that.
Balancing inside PhragMMS changes which targets win later rounds, so
``mine_solution`` also mines the unbalanced PhragMMS outcome and keeps
whichever scores better.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence, Union

from timetravel_core.errors import FeasibilityError, SolverFailure
from timetravel_core.score import ElectionScore, StakedAssignment, Support, evaluate, to_supports
from timetravel_core.snapshot import Snapshot, Voter

logger = logging.getLogger("timetravel.solver")

DEFAULT_BALANCE_ITERATIONS = 10

# One unit of load.  A load of 1/stake keeps ~20 significant digits even
# when stake is the whole issuance of a chain (~10**19 planck).
LOAD_ACCURACY = 10**40


# ── Solver selection ────────────────────────────────────────────────────

@dataclass(frozen=True)
class BalancingConfig:
    iterations: int = DEFAULT_BALANCE_ITERATIONS
    tolerance: int = 0


@dataclass(frozen=True)
class SeqPhragmen:
    iterations: int = DEFAULT_BALANCE_ITERATIONS
    name = "seq-phragmen"


@dataclass(frozen=True)
class PhragMMS:
    iterations: int = DEFAULT_BALANCE_ITERATIONS
    name = "phragmms"


Solver = Union[SeqPhragmen, PhragMMS]

SOLVERS: dict[str, type] = {
    SeqPhragmen.name: SeqPhragmen,
    PhragMMS.name: PhragMMS,
}


def solver_from_name(name: str, iterations: int = DEFAULT_BALANCE_ITERATIONS) -> Solver:
    """``"seq-phragmen"`` / ``"phragmms"`` → solver selector."""
    key = name.strip().lower().replace("_", "-")
    if key not in SOLVERS:
        raise ValueError(f"unknown solver {name!r}; expected one of {sorted(SOLVERS)}")
    if iterations < 0:
        raise ValueError("balancing iterations must be non-negative")
    return SOLVERS[key](iterations=iterations)


# ── Internal election graph ─────────────────────────────────────────────

class _Candidate:
    __slots__ = ("who", "approval_stake", "backed_stake", "elected", "round",
                 "score", "score_num", "score_den", "backers")

    def __init__(self, who: str):
        self.who = who
        self.approval_stake = 0
        self.backed_stake = 0
        self.elected = False
        self.round = 0
        self.score: Optional[int] = None
        # Σ budget · load over the voters approving this candidate
        self.score_num = 0
        self.score_den = LOAD_ACCURACY
        self.backers: list[tuple[_Voter, _Edge]] = []


class _Edge:
    __slots__ = ("candidate", "load", "weight")

    def __init__(self, candidate: _Candidate):
        self.candidate = candidate
        self.load = 0
        self.weight = 0


class _Voter:
    __slots__ = ("who", "budget", "edges", "load")

    def __init__(self, who: str, budget: int, edges: list[_Edge]):
        self.who = who
        self.budget = budget
        self.edges = edges
        self.load = 0

    def elected_edges(self) -> list[_Edge]:
        return [e for e in self.edges if e.candidate.elected]


def _setup_inputs(
    targets: Sequence[str],
    voters: Sequence[Voter],
) -> tuple[list[_Candidate], list[_Voter]]:
    """Build the candidate / voter graph; votes for unknown targets are dropped."""
    candidates = [_Candidate(who) for who in targets]
    by_id = {c.who: c for c in candidates}

    graph_voters: list[_Voter] = []
    for voter in voters:
        edges: list[_Edge] = []
        seen: set[str] = set()
        for target in voter.targets:
            candidate = by_id.get(target)
            if candidate is None or target in seen:
                continue
            seen.add(target)
            candidate.approval_stake += voter.stake
            edges.append(_Edge(candidate))
        graph_voter = _Voter(voter.id, voter.stake, edges)
        for edge in edges:
            edge.candidate.backers.append((graph_voter, edge))
        graph_voters.append(graph_voter)
    return candidates, graph_voters


@dataclass
class ElectionResult:
    """Winners in order of election with their backing, plus the assignments."""
    winners: list[tuple[str, int]] = field(default_factory=list)
    assignments: list[StakedAssignment] = field(default_factory=list)


def _into_result(candidates: list[_Candidate], voters: list[_Voter]) -> ElectionResult:
    elected = sorted((c for c in candidates if c.elected), key=lambda c: c.round)
    assignments = []
    for voter in voters:
        distribution = [
            (e.candidate.who, e.weight)
            for e in voter.edges
            if e.candidate.elected and e.weight > 0
        ]
        if distribution:
            assignments.append(StakedAssignment(voter.who, distribution))
    return ElectionResult(
        winners=[(c.who, c.backed_stake) for c in elected],
        assignments=assignments,
    )


# ── Balancing ───────────────────────────────────────────────────────────

def balance_voter(voter: _Voter, tolerance: int) -> int:
    """Rebalance one voter's stake over its elected edges.

    Returns the imbalance observed before the move.
    """
    elected_edges = voter.elected_edges()
    # empty, or a single vote: nothing to move
    if len(elected_edges) <= 1:
        return 0

    stake_used = sum(e.weight for e in elected_edges)
    backed_stakes = [e.candidate.backed_stake for e in elected_edges]
    backing_backed_stakes = [e.candidate.backed_stake for e in elected_edges if e.weight > 0]

    if backing_backed_stakes:
        difference = max(backing_backed_stakes) - min(backed_stakes)
        difference += max(0, voter.budget - stake_used)
        if difference < tolerance:
            return difference
    else:
        difference = voter.budget

    for edge in elected_edges:
        edge.candidate.backed_stake = max(0, edge.candidate.backed_stake - edge.weight)
        edge.weight = 0

    elected_edges.sort(key=lambda e: e.candidate.backed_stake)

    cumulative = 0
    last_index = len(elected_edges) - 1
    for index, edge in enumerate(elected_edges):
        backed = edge.candidate.backed_stake
        if backed * index - cumulative > voter.budget:
            last_index = index - 1
            break
        cumulative += backed

    last_stake = elected_edges[last_index].candidate.backed_stake
    ways_to_split = last_index + 1
    excess = voter.budget + cumulative - last_stake * ways_to_split

    # the division remainder goes one planck at a time to the lowest-backed edges
    share, rem = divmod(excess, ways_to_split)
    for index, edge in enumerate(elected_edges[:ways_to_split]):
        edge.weight = share + last_stake - edge.candidate.backed_stake
        if index < rem:
            edge.weight += 1
        edge.candidate.backed_stake += edge.weight

    return difference


def balance(voters: list[_Voter], config: BalancingConfig) -> int:
    """Run balancing passes; returns the number of passes made."""
    if config.iterations <= 0:
        return 0
    passes = 0
    while True:
        max_diff = 0
        for voter in voters:
            max_diff = max(max_diff, balance_voter(voter, config.tolerance))
        passes += 1
        if max_diff <= config.tolerance or passes >= config.iterations:
            return passes


# ── Sequential Phragmén ─────────────────────────────────────────────────

def _seq_phragmen_core(
    to_elect: int,
    candidates: list[_Candidate],
    voters: list[_Voter],
) -> None:
    for round_ in range(min(to_elect, len(candidates))):
        winner: Optional[_Candidate] = None
        for c in candidates:
            if c.elected or c.approval_stake == 0:
                continue
            c.score = (LOAD_ACCURACY + c.score_num) // c.approval_stake
            if winner is None or c.score < winner.score:
                winner = c
        if winner is None:
            break

        winner.elected = True
        winner.round = round_
        # only the winner's backers change load; push the change into the
        # score numerators of the candidates they still approve
        for voter, edge in winner.backers:
            raised = max(0, winner.score - voter.load)
            edge.load = raised
            if raised == 0:
                continue
            voter.load += raised
            if voter.budget == 0:
                continue
            for other in voter.edges:
                if not other.candidate.elected:
                    other.candidate.score_num += voter.budget * raised

    # loads → integer weights; a voter backing anyone spends its whole budget
    for voter in voters:
        elected_edges = voter.elected_edges()
        if not elected_edges or voter.load <= 0:
            continue
        for edge in elected_edges:
            edge.weight = voter.budget * edge.load // voter.load
        remainder = voter.budget - sum(e.weight for e in elected_edges)
        if remainder > 0:
            last_elected = max(elected_edges, key=lambda e: e.candidate.round)
            last_elected.weight += remainder
        for edge in elected_edges:
            edge.candidate.backed_stake += edge.weight


def seq_phragmen(
    to_elect: int,
    targets: Sequence[str],
    voters: Sequence[Voter],
    balancing: Optional[BalancingConfig] = None,
) -> ElectionResult:
    """Sequential Phragmén election of *to_elect* winners."""
    candidates, graph_voters = _setup_inputs(targets, voters)
    _seq_phragmen_core(to_elect, candidates, graph_voters)
    if balancing is not None:
        balance(graph_voters, balancing)
    return _into_result(candidates, graph_voters)


# ── PhragMMS ────────────────────────────────────────────────────────────

def _calculate_max_score(
    candidates: list[_Candidate],
    voters: list[_Voter],
) -> Optional[_Candidate]:
    """Pick the unelected candidate with the highest PhragMMS score.

    A score is ``approval / (1 + Σ weight / backed)``, the sum running over
    the elected edges of the candidate's voters; it is kept as planck
    scaled by ``LOAD_ACCURACY``.
    """
    for c in candidates:
        if not c.elected:
            c.score_den = LOAD_ACCURACY

    for voter in voters:
        contribution = 0
        for edge in voter.edges:
            c = edge.candidate
            if c.elected and c.backed_stake > 0:
                contribution += edge.weight * LOAD_ACCURACY // c.backed_stake
        if contribution:
            for edge in voter.edges:
                if not edge.candidate.elected:
                    edge.candidate.score_den += contribution

    best: Optional[_Candidate] = None
    for c in candidates:
        if c.elected or c.approval_stake == 0:
            continue
        c.score = c.approval_stake * LOAD_ACCURACY * LOAD_ACCURACY // c.score_den
        if best is None or c.score > best.score:
            best = c
    return best


def _apply_elected(elected: _Candidate) -> None:
    """Insert *elected*, pulling stake down from edges backed above its score."""
    cutoff = elected.score
    elected_backed = elected.backed_stake

    for voter, new_edge in elected.backers:
        used_budget = sum(e.weight for e in voter.edges)
        new_weight = max(0, voter.budget - used_budget)

        for edge in voter.edges:
            if edge is new_edge or edge.weight == 0:
                continue
            c = edge.candidate
            if c.backed_stake * LOAD_ACCURACY > cutoff:
                keep = edge.weight * cutoff // (LOAD_ACCURACY * c.backed_stake)
                take = edge.weight - keep
                edge.weight = keep
                c.backed_stake -= take
                new_weight += take

        new_edge.weight = new_weight
        elected_backed += new_weight

    elected.backed_stake = elected_backed


def phragmms(
    to_elect: int,
    targets: Sequence[str],
    voters: Sequence[Voter],
    balancing: Optional[BalancingConfig] = None,
) -> ElectionResult:
    """PhragMMS election of *to_elect* winners, balancing after every round."""
    candidates, graph_voters = _setup_inputs(targets, voters)

    for round_ in range(min(to_elect, len(candidates))):
        winner = _calculate_max_score(candidates, graph_voters)
        if winner is None:
            break
        _apply_elected(winner)
        winner.elected = True
        winner.round = round_
        if balancing is not None:
            balance(graph_voters, balancing)

    return _into_result(candidates, graph_voters)


# ── Mining & feasibility ────────────────────────────────────────────────

@dataclass
class RawSolution:
    """A mined solution and the score it claims."""
    winners: list[str]
    assignments: list[StakedAssignment]
    score: ElectionScore
    solver: str = ""

    def supports(self) -> list[tuple[str, Support]]:
        return winner_supports(self.winners, self.assignments)


def winner_supports(
    winners: Sequence[str],
    assignments: Sequence[StakedAssignment],
) -> list[tuple[str, Support]]:
    """Support of every winner, in winner order (empty support for unbacked ones)."""
    supports = to_supports(assignments)
    return [(w, supports.get(w, Support())) for w in winners]


def mine_solution(
    solver: Solver,
    snapshot: Snapshot,
    desired_targets: int,
) -> RawSolution:
    """Run *solver* over the snapshot and score its outcome.

    Balancing never leaves ``minimal_stake`` below the unbalanced outcome:
    seq-Phragmén only balances after the winners are fixed, and for
    PhragMMS the unbalanced election is mined as well and the better
    scoring of the two is kept.
    """
    balancing = BalancingConfig(iterations=solver.iterations, tolerance=0)
    if isinstance(solver, SeqPhragmen):
        result = seq_phragmen(desired_targets, snapshot.targets, snapshot.voters, balancing)
    elif isinstance(solver, PhragMMS):
        result = phragmms(desired_targets, snapshot.targets, snapshot.voters, balancing)
    else:
        raise SolverFailure(f"unsupported solver: {solver!r}")
    solution = _scored(solver, result, desired_targets)

    if isinstance(solver, PhragMMS) and solver.iterations > 0:
        unbalanced = _scored(
            solver,
            phragmms(desired_targets, snapshot.targets, snapshot.voters),
            desired_targets,
        )
        if unbalanced.score.is_better_than(solution.score):
            logger.debug(
                "phragmms: unbalanced outcome %s beats balanced %s",
                unbalanced.score, solution.score,
            )
            solution = unbalanced
    return solution


def _scored(solver: Solver, result: ElectionResult, desired_targets: int) -> RawSolution:
    winners = [who for who, _ in result.winners]
    if len(winners) < desired_targets:
        raise SolverFailure(
            f"{solver.name} elected {len(winners)} winners, {desired_targets} desired"
        )
    score = evaluate(winner_supports(winners, result.assignments))
    return RawSolution(winners, result.assignments, score, solver.name)


def feasibility_check(
    solution: RawSolution,
    snapshot: Snapshot,
    desired_targets: int,
) -> ElectionScore:
    """Re-validate *solution* against *snapshot*; returns the recomputed score.

    Raises ``FeasibilityError`` on the first violated rule.
    """
    if len(solution.winners) != desired_targets:
        raise FeasibilityError(
            "wrong winner count", f"{len(solution.winners)} != {desired_targets}"
        )

    targets = set(snapshot.targets)
    winners = set(solution.winners)
    if len(winners) != len(solution.winners):
        raise FeasibilityError("duplicate winner")
    for winner in solution.winners:
        if winner not in targets:
            raise FeasibilityError("invalid winner", winner)

    voters = snapshot.voter_index()
    seen: set[str] = set()
    for assignment in solution.assignments:
        voter = voters.get(assignment.who)
        if voter is None:
            raise FeasibilityError("invalid voter", assignment.who)
        if assignment.who in seen:
            raise FeasibilityError("duplicate voter", assignment.who)
        seen.add(assignment.who)

        for target, amount in assignment.distribution:
            if amount < 0:
                raise FeasibilityError("negative stake", f"{assignment.who} -> {target}")
            if target not in winners or target not in voter.targets:
                raise FeasibilityError("invalid vote", f"{assignment.who} -> {target}")
        if assignment.total > voter.stake:
            raise FeasibilityError(
                "assignment exceeds stake",
                f"{assignment.who}: {assignment.total} > {voter.stake}",
            )

    score = evaluate(winner_supports(solution.winners, solution.assignments))
    if score != solution.score:
        raise FeasibilityError("invalid score", f"claimed {solution.score}, computed {score}")
    return score


def mine_with(
    solver: Solver,
    snapshot: Snapshot,
    desired_targets: int,
    do_feasibility: bool = False,
) -> RawSolution:
    """Mine with *solver*; optionally re-validate the result before returning it."""
    solution = mine_solution(solver, snapshot, desired_targets)
    if do_feasibility:
        feasibility_check(solution, snapshot, desired_targets)

    logger.info(
        "mined a npos-like solution with %s: score = %s (voters: %d, targets: %d)",
        solver.name, solution.score, len(snapshot.voters), len(snapshot.targets),
    )
    return solution
