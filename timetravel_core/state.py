"""
Point-in-time view of a chain's staking and election state.

A ``StakingState`` holds everything the analysis reads at one block:

  - the staking relation: ``bonded`` (stash → controller), ``ledgers``
    (controller → StakingLedger) and ``payees`` (stash → destination)
  - the election inputs: validators, nominations and the desired
    number of winners (``validator_count``)
  - the election-provider slots that the snapshot builder writes and
    reads back: ``snapshot``, ``snapshot_metadata``, ``desired_targets``

It also exposes the data providers the election uses (voter list,
weights, electing voters, electable targets).  The state is a plain
value owned by the analysis run that loaded it; nothing here is global.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from timetravel_core.errors import ElectionDataUnavailable
from timetravel_core.min_stake import NPOS_MAX_ITERATIONS_COEFFICIENT
from timetravel_core.profile import POLKADOT, RuntimeProfile, profile_for_chain
from timetravel_core.snapshot import Snapshot, SnapshotMetadata, Voter

logger = logging.getLogger("timetravel.state")


@dataclass(frozen=True)
class StakingLedger:
    """Bonded funds of a stash, stored under its controller."""
    stash: str
    total: int = 0
    active: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"stash": self.stash, "total": self.total, "active": self.active}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "StakingLedger":
        total = int(raw.get("total", 0))
        return cls(
            stash=str(raw["stash"]),
            total=total,
            active=int(raw.get("active", total)),
        )


@dataclass
class StakingState:
    """Staking and election state of one block."""
    block_number: int
    block_hash: str = ""
    profile: RuntimeProfile = POLKADOT
    active_era: Optional[int] = None
    validator_count: int = 0
    validators: list[str] = field(default_factory=list)
    nominators: dict[str, list[str]] = field(default_factory=dict)
    ledgers: dict[str, StakingLedger] = field(default_factory=dict)
    bonded: dict[str, str] = field(default_factory=dict)
    payees: dict[str, str] = field(default_factory=dict)

    # election-provider slots
    snapshot: Optional[Snapshot] = None
    snapshot_metadata: Optional[SnapshotMetadata] = None
    desired_targets: Optional[int] = None

    # ── staking helpers ──────────────────────────────────────────

    def ledger_of_stash(self, stash: str) -> Optional[StakingLedger]:
        controller = self.bonded.get(stash)
        if controller is None:
            return None
        return self.ledgers.get(controller)

    def weight_of(self, stash: str) -> int:
        """Active bonded stake of *stash* (0 when it has no ledger)."""
        ledger = self.ledger_of_stash(stash)
        return ledger.active if ledger is not None else 0

    def counts(self) -> tuple[int, int, int]:
        """``(#ledgers, #bonded, #payees)``."""
        return len(self.ledgers), len(self.bonded), len(self.payees)

    # ── election data providers ──────────────────────────────────

    def voter_list(self) -> list[str]:
        """Every voter (nominators and validators) sorted by weight, heaviest first."""
        voters = set(self.nominators) | set(self.validators)
        return sorted(voters, key=lambda who: (-self.weight_of(who), who))

    def electing_voters(
        self,
        limit: Optional[int] = None,
        coefficient: int = NPOS_MAX_ITERATIONS_COEFFICIENT,
    ) -> list[Voter]:
        """Voters for the election snapshot, at most *limit* of them.

        Nominators vote for their nominations that are still validators,
        validators vote for themselves.
        """
        voter_list = self.voter_list()
        if not voter_list:
            raise ElectionDataUnavailable("voter list is empty")

        max_allowed_len = len(voter_list) if limit is None else min(limit, len(voter_list))
        validators = set(self.validators)

        voters: list[Voter] = []
        seen = 0
        for who in voter_list:
            if len(voters) >= max_allowed_len or seen >= coefficient * max_allowed_len:
                break
            seen += 1
            weight = self.weight_of(who)
            if who in self.nominators:
                targets = tuple(t for t in self.nominators[who] if t in validators)
                voters.append(Voter(who, weight, targets))
            else:
                voters.append(Voter(who, weight, (who,)))

        logger.debug(
            "electing_voters: took %d of %d voters (seen %d)",
            len(voters), len(voter_list), seen,
        )
        return voters

    def electable_targets(self, limit: Optional[int] = None) -> list[str]:
        """All validators, sorted.  More than *limit* of them is an error."""
        if not self.validators:
            raise ElectionDataUnavailable("no electable targets")
        targets = sorted(set(self.validators))
        if limit is not None and len(targets) > limit:
            raise ElectionDataUnavailable(
                f"target snapshot too big: {len(targets)} > {limit}"
            )
        return targets

    # ── election-provider slots ──────────────────────────────────

    def put_snapshot(
        self,
        snapshot: Snapshot,
        metadata: SnapshotMetadata,
        desired_targets: int,
    ) -> None:
        self.snapshot_metadata = metadata
        self.desired_targets = desired_targets
        self.snapshot = snapshot

    def kill_snapshot(self) -> None:
        self.snapshot = None
        self.snapshot_metadata = None
        self.desired_targets = None

    # ── (de)serialisation ────────────────────────────────────────

    def to_dict(self) -> dict[str, Any]:
        return {
            "chain": self.profile.name,
            "block_hash": self.block_hash,
            "block_number": self.block_number,
            "active_era": self.active_era,
            "validator_count": self.validator_count,
            "validators": list(self.validators),
            "nominators": {k: list(v) for k, v in self.nominators.items()},
            "ledgers": {k: v.to_dict() for k, v in self.ledgers.items()},
            "bonded": dict(self.bonded),
            "payees": dict(self.payees),
            "election": {
                "snapshot": self.snapshot.to_dict() if self.snapshot is not None else None,
                "desired_targets": self.desired_targets,
            },
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "StakingState":
        state = cls(
            block_number=int(raw["block_number"]),
            block_hash=str(raw.get("block_hash", "")),
            profile=profile_for_chain(raw.get("chain", "polkadot")),
            active_era=raw.get("active_era"),
            validator_count=int(raw.get("validator_count", 0)),
            validators=[str(v) for v in raw.get("validators", [])],
            nominators={
                str(k): [str(t) for t in v]
                for k, v in raw.get("nominators", {}).items()
            },
            ledgers={
                str(k): StakingLedger.from_dict(v)
                for k, v in raw.get("ledgers", {}).items()
            },
            bonded={str(k): str(v) for k, v in raw.get("bonded", {}).items()},
            payees={str(k): str(v) for k, v in raw.get("payees", {}).items()},
        )
        election = raw.get("election") or {}
        if election.get("snapshot") is not None:
            snapshot = Snapshot.from_dict(election["snapshot"])
            desired = election.get("desired_targets")
            state.put_snapshot(
                snapshot,
                snapshot.metadata,
                int(desired) if desired is not None else state.validator_count,
            )
        return state
