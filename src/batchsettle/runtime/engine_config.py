# src/batchsettle/runtime/engine_config.py
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from batchsettle.ledger.constants import (
    DEFAULT_MAX_RECIPIENTS,
    ENGINE_ADDRESS,
    MIN_FEE_DELAY_FLOOR_S,
)
from batchsettle.util.addresses import is_valid_address

Json = Dict[str, Any]


def _as_int(v: Any, default: int) -> int:
    if v is None or isinstance(v, bool):
        return int(default)
    try:
        return int(v)
    except (TypeError, ValueError):
        return int(default)


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    s = str(v)
    return s if s.strip() else str(default)


@dataclass(frozen=True)
class EngineConfig:
    mode: str  # "dev" | "testnet" | "prod"

    owner: str
    fee_bps: int
    fee_recipient: str
    max_recipients: int
    min_fee_delay_s: int
    engine_address: str

    # SQLite file for snapshots + events; empty keeps the engine in memory only.
    db_path: str

    api_host: str
    api_port: int
    log_level: str

    # World seed applied on first boot (see runtime/genesis.py)
    genesis: Json = field(default_factory=dict)


_ALLOWED_MODES = {"dev", "testnet", "prod"}


def validate_engine_config(cfg: EngineConfig) -> None:
    """Fail-fast validation of operator config.

    Fee/limit/delay ranges are left to GovernanceConfig.initialize, which
    raises ConfigError with the exact bound that was violated.
    """
    mode = str(cfg.mode or "").strip().lower()
    if mode not in _ALLOWED_MODES:
        raise ValueError(f"mode must be one of {_ALLOWED_MODES}; got: {cfg.mode!r}")

    if int(cfg.api_port) <= 0 or int(cfg.api_port) > 65535:
        raise ValueError(f"api_port must be 1..65535; got: {cfg.api_port}")

    for name, addr in (
        ("owner", cfg.owner),
        ("fee_recipient", cfg.fee_recipient),
        ("engine_address", cfg.engine_address),
    ):
        if not is_valid_address(addr):
            raise ValueError(f"{name} must be a non-zero 0x-prefixed 20-byte hex address; got: {addr!r}")

    if not isinstance(cfg.genesis, dict):
        raise ValueError("genesis must be a mapping")


def default_engine_config() -> EngineConfig:
    # No built-in owner: an operator must name one (file or env) before boot.
    return EngineConfig(
        mode="prod",
        owner=os.environ.get("BATCHSETTLE_OWNER", ""),
        fee_bps=_as_int(os.environ.get("BATCHSETTLE_FEE_BPS"), 10),
        fee_recipient=os.environ.get("BATCHSETTLE_FEE_RECIPIENT", ""),
        max_recipients=DEFAULT_MAX_RECIPIENTS,
        min_fee_delay_s=MIN_FEE_DELAY_FLOOR_S,
        engine_address=ENGINE_ADDRESS,
        db_path=os.environ.get("BATCHSETTLE_DB_PATH", ""),
        api_host="127.0.0.1",
        api_port=8080,
        log_level="INFO",
    )


def read_engine_config_file(path: str) -> EngineConfig:
    """Read YAML (or JSON, which is a YAML subset) into an EngineConfig."""
    p = Path(path)
    raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValueError("engine config must be a mapping")

    d = default_engine_config()
    genesis = raw.get("genesis")

    cfg = EngineConfig(
        mode=_as_str(raw.get("mode"), d.mode).strip().lower(),
        owner=_as_str(raw.get("owner"), d.owner),
        fee_bps=_as_int(raw.get("fee_bps"), d.fee_bps),
        fee_recipient=_as_str(raw.get("fee_recipient"), d.fee_recipient),
        max_recipients=_as_int(raw.get("max_recipients"), d.max_recipients),
        min_fee_delay_s=_as_int(raw.get("min_fee_delay_s"), d.min_fee_delay_s),
        engine_address=_as_str(raw.get("engine_address"), d.engine_address),
        db_path=str(raw.get("db_path") if raw.get("db_path") is not None else d.db_path),
        api_host=_as_str(raw.get("api_host"), d.api_host),
        api_port=_as_int(raw.get("api_port"), d.api_port),
        log_level=_as_str(raw.get("log_level"), d.log_level).strip().upper(),
        genesis=genesis if genesis is not None else {},
    )

    validate_engine_config(cfg)
    return cfg


def load_engine_config(*, config_path: Optional[str] = None) -> EngineConfig:
    p = config_path or os.environ.get("BATCHSETTLE_CONFIG_PATH")
    if p:
        return read_engine_config_file(p)

    cfg = default_engine_config()
    validate_engine_config(cfg)
    return cfg


def apply_engine_config_to_env(cfg: EngineConfig) -> None:
    validate_engine_config(cfg)
    os.environ["BATCHSETTLE_MODE"] = (cfg.mode or "prod").strip().lower()
    os.environ["BATCHSETTLE_LOG_LEVEL"] = cfg.log_level
    os.environ["BATCHSETTLE_API_HOST"] = cfg.api_host
    os.environ["BATCHSETTLE_API_PORT"] = str(int(cfg.api_port))
