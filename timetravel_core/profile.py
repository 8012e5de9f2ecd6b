"""
Runtime profiles — the per-chain parameters the analysis depends on.

A ``RuntimeProfile`` is an immutable value carried by every
``StakingState`` and threaded through every entry point.  It exposes
the election bounds and token metadata of one chain; the analysis code
is written once against it and instantiated per chain by picking the
matching profile.
"""

from __future__ import annotations

from dataclasses import dataclass

from timetravel_core.errors import PreconditionViolation

U16_MAX = 2**16 - 1


@dataclass(frozen=True)
class RuntimeProfile:
    """Election bounds and token metadata of a supported chain."""
    name: str
    token: str
    decimals: int                        # planck per token
    max_electable_targets: int
    max_electing_voters: int | None      # None = unbounded voter snapshot

    def format_balance(self, amount: int) -> str:
        """Render *amount* (in planck) as a token amount, e.g. ``1.5000 DOT``."""
        whole, frac = divmod(amount, self.decimals)
        digits = len(str(self.decimals)) - 1
        frac_str = str(frac).rjust(digits, "0")[:4] if digits else "0"
        return f"{whole}.{frac_str} {self.token}"


POLKADOT = RuntimeProfile(
    name="polkadot",
    token="DOT",
    decimals=10_000_000_000,
    max_electable_targets=U16_MAX,
    max_electing_voters=22_500,
)

KUSAMA = RuntimeProfile(
    name="kusama",
    token="KSM",
    decimals=1_000_000_000_000,
    max_electable_targets=U16_MAX,
    max_electing_voters=12_500,
)

WESTEND = RuntimeProfile(
    name="westend",
    token="WND",
    decimals=1_000_000_000_000,
    max_electable_targets=U16_MAX,
    max_electing_voters=22_500,
)

PROFILES: dict[str, RuntimeProfile] = {
    "polkadot": POLKADOT,
    "development": POLKADOT,
    "kusama": KUSAMA,
    "kusama-dev": KUSAMA,
    "westend": WESTEND,
}


def profile_for_chain(chain: str) -> RuntimeProfile:
    """Return the profile for the chain name reported by ``system_chain``."""
    try:
        return PROFILES[chain.strip().lower()]
    except KeyError:
        raise PreconditionViolation(f"unexpected chain: {chain!r}") from None
