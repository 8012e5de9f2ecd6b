"""
Timetravel - staking election analysis over historical chain states.

Key features:
- Election snapshots built the way the on-chain election provider builds them
- Sequential Phragmén and PhragMMS solvers with star balancing
- DPoS heuristic with pro-rata and pareto share distribution
- Election score evaluation and feasibility checks
- Minimum active stake scan over the voter list
- Staking ledger consistency checks with a controller-deprecation simulation
"""

__version__ = "0.1.0"
__all__ = [
    "config",
    "distribution",
    "dpos",
    "errors",
    "ledger_checks",
    "logging_config",
    "min_stake",
    "operations",
    "phragmen",
    "profile",
    "reporting",
    "rpc",
    "score",
    "snapshot",
    "snapshot_builder",
    "state",
    "storage",
]
