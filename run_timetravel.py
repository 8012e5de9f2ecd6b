#!/usr/bin/env python3
"""
Time-travel runner — extracts staking states from a node and analyses them.

Two commands:
  - ``extract``    fetch the staking state at one or more blocks over
                   JSON-RPC and store it in the local SQLite state store
  - ``transform``  run an analysis over stored (or, with ``--live``,
                   freshly fetched) states and append the results to CSV

Usage:
    python run_timetravel.py --uri http://127.0.0.1:9933 extract --at 0xabc..
    python run_timetravel.py transform election-analysis --at 0xabc.. \\
                             --solver phragmms --iterations 5
    python run_timetravel.py transform staking-ledger-checks \\
                             --at 0xparent.. --at 0xchild.. --live

Environment variables (alternative to flags):
    TIMETRAVEL_URI, TIMETRAVEL_SNAPSHOT_PATH, TIMETRAVEL_OUTPUT_PATH,
    TIMETRAVEL_SOLVER, TIMETRAVEL_ITERATIONS, TIMETRAVEL_LOG_LEVEL
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import os
import sys
from typing import Sequence

# ---------------------------------------------------------------------------
# Ensure the project root is in sys.path so imports work before pip install
# ---------------------------------------------------------------------------
PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from timetravel_core.config import TimetravelConfig, load_config  # noqa: E402
from timetravel_core.distribution import ShareDistribution  # noqa: E402
from timetravel_core.errors import TimetravelError  # noqa: E402
from timetravel_core.logging_config import setup_logging  # noqa: E402
from timetravel_core.operations import (  # noqa: E402
    AnalysisConfig,
    Operation,
    election_analysis,
    ledger_checks_operation,
    min_active_stake_operation,
)
from timetravel_core.phragmen import SOLVERS, solver_from_name  # noqa: E402
from timetravel_core.reporting import CsvSink  # noqa: E402
from timetravel_core.rpc import RpcClient, chain_profile, fetch_states  # noqa: E402
from timetravel_core.state import StakingState  # noqa: E402
from timetravel_core.storage import StateStore  # noqa: E402

logger = logging.getLogger("timetravel.runner")


# ===================================================================
#  Argument parsing
# ===================================================================

def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Staking election time-travel analyser")
    p.add_argument("--config", default=None, help="Path to timetravel.toml config file")
    p.add_argument("--uri", default=None, help="JSON-RPC endpoint of the node")
    p.add_argument("--snapshot-path", default=None, help="SQLite state store path")
    p.add_argument("--output-path", default=None, help="CSV output file")
    p.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING, ...")

    sub = p.add_subparsers(dest="command", required=True)

    ext = sub.add_parser("extract", help="Fetch staking states and store them")
    ext.add_argument("--at", action="append", default=[], metavar="HASH",
                     help="Block hash to extract (repeatable; latest block if omitted)")

    tr = sub.add_parser("transform", help="Analyse staking states")
    tr.add_argument("operation", choices=[op.value for op in Operation])
    tr.add_argument("--at", action="append", default=[], metavar="HASH",
                    help="Block hash to analyse (repeatable)")
    tr.add_argument("--solver", choices=sorted(SOLVERS), default=None)
    tr.add_argument("--iterations", type=int, default=None,
                    help="Balancing iterations of the Phragmén solvers")
    tr.add_argument("--no-unbounded", action="store_true",
                    help="Skip the unbounded snapshot election")
    tr.add_argument("--feasibility", action="store_true",
                    help="Check every mined solution for feasibility")
    tr.add_argument("--share-distribution", default=None,
                    choices=[d.value for d in ShareDistribution])
    tr.add_argument("--live", action="store_true",
                    help="Fetch the states over RPC instead of loading them")
    return p.parse_args(argv)


def apply_overrides(cfg: TimetravelConfig, args: argparse.Namespace) -> TimetravelConfig:
    """CLI flags override config file and environment."""
    if args.uri:
        cfg.rpc.uri = args.uri
    if args.snapshot_path:
        cfg.paths.snapshot_path = args.snapshot_path
    if args.output_path:
        cfg.paths.output_path = args.output_path
    if args.log_level:
        cfg.logging.level = args.log_level.upper()
    if getattr(args, "solver", None):
        cfg.election.solver = args.solver
    if getattr(args, "iterations", None) is not None:
        cfg.election.iterations = args.iterations
    if getattr(args, "no_unbounded", False):
        cfg.election.compute_unbounded = False
    if getattr(args, "feasibility", False):
        cfg.election.do_feasibility = True
    if getattr(args, "share_distribution", None):
        cfg.election.share_distribution = args.share_distribution
    return cfg


def analysis_config(cfg: TimetravelConfig) -> AnalysisConfig:
    e = cfg.election
    return AnalysisConfig(
        solver=solver_from_name(e.solver, e.iterations),
        compute_unbounded=e.compute_unbounded,
        do_feasibility=e.do_feasibility,
        share_distribution=ShareDistribution(e.share_distribution),
        max_iterations_coefficient=e.max_iterations_coefficient,
    )


# ===================================================================
#  Acquisition
# ===================================================================

async def _connect(cfg: TimetravelConfig) -> RpcClient:
    r = cfg.rpc
    return await RpcClient.connect(
        r.uri,
        connection_timeout=r.connection_timeout,
        request_timeout=r.request_timeout,
        retry_delay=r.retry_delay,
        max_attempts=r.max_connect_attempts,
    )


async def fetch_live(cfg: TimetravelConfig, hashes: Sequence[str]) -> list[StakingState]:
    """Fetch the states at *hashes* (the latest block if empty)."""
    async with await _connect(cfg) as client:
        profile = await chain_profile(client)
        if not hashes:
            hashes = [await client.block_hash()]
        states = await fetch_states(client, hashes)
    for state in states:
        state.profile = profile
    return states


def load_stored(store: StateStore, hashes: Sequence[str]) -> tuple[list[StakingState], int]:
    """Load stored states; returns ``(states, failures)``."""
    states: list[StakingState] = []
    failures = 0
    for block_hash in hashes:
        try:
            states.append(store.load_state(block_hash))
        except TimetravelError as exc:
            logger.error("Error loading state at %s: %s", block_hash, exc)
            failures += 1
    return states, failures


# ===================================================================
#  Operations
# ===================================================================

def run_operations(
    operation: Operation,
    states: Sequence[StakingState],
    config: AnalysisConfig,
    sink: CsvSink,
) -> int:
    """Run *operation* over *states*; returns the number of failed runs.

    A failed run is logged and produces no CSV row; the remaining runs
    still go ahead.
    """
    if operation is Operation.STAKING_LEDGER_CHECKS:
        try:
            report = ledger_checks_operation(states)
        except TimetravelError as exc:
            logger.error("Error in operation %s: %s", operation.value, exc)
            return 1
        logger.info(
            "Ledger checks #%d -> #%d: %d bad stashes, %d none ledgers, "
            "%d inconsistent ledgers, %d migrated",
            report.parent_block, report.child_block, len(report.bad_stashes),
            len(report.none_ledgers), len(report.inconsistent_ledgers),
            len(report.migrated_stashes),
        )
        return 0

    failures = 0
    for state in states:
        try:
            if operation is Operation.MIN_ACTIVE_STAKE:
                row = min_active_stake_operation(state, config.max_iterations_coefficient)
            else:
                row = election_analysis(state, config)
        except TimetravelError as exc:
            logger.error(
                "Error in operation %s at #%d: %s", operation.value, state.block_number, exc,
            )
            failures += 1
            continue
        sink.append(row)
    return failures


async def extract(cfg: TimetravelConfig, hashes: Sequence[str]) -> int:
    states = await fetch_live(cfg, hashes)
    store = StateStore(cfg.paths.snapshot_path)
    try:
        for state in states:
            store.save_state(state)
    finally:
        store.close()
    return 0


async def transform(cfg: TimetravelConfig, args: argparse.Namespace) -> int:
    operation = Operation(args.operation)
    config = analysis_config(cfg)
    failures = 0
    if args.live:
        states = await fetch_live(cfg, args.at)
    else:
        if not args.at:
            logger.error("transform needs at least one --at block hash without --live")
            return 2
        store = StateStore(cfg.paths.snapshot_path)
        try:
            states, failures = load_stored(store, args.at)
        finally:
            store.close()

    failures += run_operations(operation, states, config, CsvSink(cfg.paths.output_path))
    return 1 if failures else 0


async def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)

    # Load config (TOML + env overrides), then CLI flags
    cfg = apply_overrides(load_config(args.config), args)
    setup_logging(cfg.logging.level, cfg.logging.format, cfg.logging.file)

    try:
        if args.command == "extract":
            return await extract(cfg, args.at)
        return await transform(cfg, args)
    except (TimetravelError, ValueError) as exc:
        logger.error("%s failed: %s", args.command, exc)
        return 1


def main_sync():
    """Synchronous entry point for console_scripts."""
    code = 0
    with contextlib.suppress(KeyboardInterrupt):
        code = asyncio.run(main())
    raise SystemExit(code)


if __name__ == "__main__":
    main_sync()
