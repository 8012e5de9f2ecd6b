"""
TOML-based configuration for the time-travel analyser.

Loads settings from a TOML file and/or environment variables.
Environment variables take precedence over file values; command-line
flags (see ``run_timetravel.py``) take precedence over both.

Usage:
    from timetravel_core.config import load_config
    cfg = load_config("timetravel.toml")
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib


@dataclass
class RpcConfig:
    """Acquisition endpoint settings."""
    uri: str = "http://127.0.0.1:9933"
    connection_timeout: int = 60
    request_timeout: int = 60 * 10
    retry_delay: float = 2.5
    max_connect_attempts: int = 0     # 0 = retry forever


@dataclass
class PathsConfig:
    """Where extracted states and CSV results go."""
    snapshot_path: str = "data/states.db"
    output_path: str = "./output.csv"


@dataclass
class ElectionConfig:
    """Election analysis settings."""
    solver: str = "seq-phragmen"      # "seq-phragmen" or "phragmms"
    iterations: int = 10              # balancing iterations
    compute_unbounded: bool = True
    do_feasibility: bool = False
    share_distribution: str = "pro-rata"   # "pro-rata" or "pareto"
    max_iterations_coefficient: int = 2


@dataclass
class LoggingConfig:
    """Logging settings."""
    level: str = "INFO"
    format: str = "human"   # "human" or "json"
    file: str | None = None


@dataclass
class TimetravelConfig:
    """Top-level configuration container."""
    rpc: RpcConfig = field(default_factory=RpcConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)
    election: ElectionConfig = field(default_factory=ElectionConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _merge(dc: Any, raw: dict[str, Any]) -> None:
    """Merge a raw dict into a dataclass instance (in-place)."""
    for key, value in raw.items():
        key_under = key.replace("-", "_")
        if hasattr(dc, key_under):
            setattr(dc, key_under, value)


def load_config(path: str | None = None) -> TimetravelConfig:
    """
    Load configuration from a TOML file, then overlay environment variables.

    Env-var mapping:
        TIMETRAVEL_URI            -> rpc.uri
        TIMETRAVEL_SNAPSHOT_PATH  -> paths.snapshot_path
        TIMETRAVEL_OUTPUT_PATH    -> paths.output_path
        TIMETRAVEL_SOLVER         -> election.solver
        TIMETRAVEL_ITERATIONS     -> election.iterations
        TIMETRAVEL_LOG_LEVEL      -> logging.level
        TIMETRAVEL_LOG_FMT        -> logging.format
    """
    cfg = TimetravelConfig()

    # ── TOML file ────────────────────────────────────────────────
    if path is not None:
        p = Path(path)
        if p.exists():
            with open(p, "rb") as f:
                data = tomllib.load(f)
            for section_name, section_dc in [
                ("rpc", cfg.rpc),
                ("paths", cfg.paths),
                ("election", cfg.election),
                ("logging", cfg.logging),
            ]:
                if section_name in data:
                    _merge(section_dc, data[section_name])

    # ── Environment variable overrides ───────────────────────────
    if v := os.environ.get("TIMETRAVEL_URI"):
        cfg.rpc.uri = v
    if v := os.environ.get("TIMETRAVEL_SNAPSHOT_PATH"):
        cfg.paths.snapshot_path = v
    if v := os.environ.get("TIMETRAVEL_OUTPUT_PATH"):
        cfg.paths.output_path = v
    if v := os.environ.get("TIMETRAVEL_SOLVER"):
        cfg.election.solver = v
    if v := os.environ.get("TIMETRAVEL_ITERATIONS"):
        cfg.election.iterations = int(v)
    if v := os.environ.get("TIMETRAVEL_LOG_LEVEL"):
        cfg.logging.level = v.upper()
    if v := os.environ.get("TIMETRAVEL_LOG_FMT"):
        cfg.logging.format = v

    return cfg
