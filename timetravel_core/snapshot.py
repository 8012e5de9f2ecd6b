"""
Election snapshot model.

A snapshot is the frozen view of voters and targets that one election
computation runs against.  It is built by ``snapshot_builder`` for a
single analysis run and never mutated afterwards.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Iterable


@dataclass(frozen=True)
class Voter:
    """A voter: its id, its stake weight and the targets it votes for."""
    id: str
    stake: int
    targets: tuple[str, ...]

    @property
    def is_good(self) -> bool:
        """True when the voter can back anything (nonzero stake, has targets)."""
        return self.stake > 0 and len(self.targets) > 0

    def to_list(self) -> list:
        return [self.id, self.stake, list(self.targets)]

    @classmethod
    def from_list(cls, raw: list) -> "Voter":
        who, stake, targets = raw
        return cls(str(who), int(stake), tuple(str(t) for t in targets))


@dataclass(frozen=True)
class SnapshotMetadata:
    """Voter and target counts of a snapshot."""
    voters: int
    targets: int


@dataclass(frozen=True)
class SnapshotBounds:
    """Upper limits on the number of voters and targets in a snapshot."""
    voters: int
    targets: int


@dataclass(frozen=True)
class Snapshot:
    """Voters and targets of one election round."""
    voters: tuple[Voter, ...]
    targets: tuple[str, ...]

    @classmethod
    def new(cls, voters: Iterable[Voter], targets: Iterable[str]) -> "Snapshot":
        return cls(tuple(voters), tuple(targets))

    @property
    def metadata(self) -> SnapshotMetadata:
        return SnapshotMetadata(voters=len(self.voters), targets=len(self.targets))

    def voter_index(self) -> dict[str, Voter]:
        return {v.id: v for v in self.voters}

    def to_dict(self) -> dict[str, Any]:
        return {
            "voters": [v.to_list() for v in self.voters],
            "targets": list(self.targets),
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Snapshot":
        return cls(
            tuple(Voter.from_list(v) for v in raw.get("voters", [])),
            tuple(str(t) for t in raw.get("targets", [])),
        )

    def encode(self) -> bytes:
        """Canonical byte encoding (compact JSON)."""
        return json.dumps(self.to_dict(), separators=(",", ":")).encode("utf-8")


def snapshot_size(snapshot: Snapshot) -> int:
    """Size in bytes of the snapshot's canonical encoding."""
    return len(snapshot.encode())
