# src/batchsettle/runtime/genesis.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List

from batchsettle.runtime.world import World
from batchsettle.util.units import to_base_units

Json = Dict[str, Any]


@dataclass(frozen=True, slots=True)
class GenesisToken:
    token_id: str
    return_style: str = "bool"
    fee_bps: int = 0
    decimals: int = 0
    balances: Dict[str, int] = field(default_factory=dict)
    allowances: Dict[str, Dict[str, int]] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class GenesisConfig:
    native: Dict[str, int] = field(default_factory=dict)
    tokens: List[GenesisToken] = field(default_factory=list)


def _amount(v: Any, where: str, decimals: int = 0) -> int:
    # Big balances are usually written as strings in YAML/JSON; with `decimals`
    # they may also be written in whole units ("1.25").
    if isinstance(v, bool):
        raise ValueError(f"{where}: amount must be an integer; got: {v!r}")
    try:
        return to_base_units(v if isinstance(v, int) else str(v), decimals)
    except ValueError as e:
        raise ValueError(f"{where}: {e}") from e


def parse_genesis(obj: Any) -> GenesisConfig:
    """Parse the `genesis` section of the engine config.

    Shape:
      native_decimals?: int
      native:  {addr: amount}
      tokens:  [{id, return_style?, fee_bps?, decimals?, balances?: {addr: amount},
                 allowances?: {owner: {spender: amount}}}, ...]

    Amounts are base units unless `decimals` (or `native_decimals`) is set, in
    which case they are whole units converted exactly.
    """
    if obj is None:
        return GenesisConfig()
    if not isinstance(obj, dict):
        raise ValueError("genesis must be a mapping")

    native_raw = obj.get("native") or {}
    if not isinstance(native_raw, dict):
        raise ValueError("genesis.native must be a mapping")
    native_decimals = _amount(obj.get("native_decimals", 0), "genesis.native_decimals")
    native = {str(a): _amount(v, f"genesis.native.{a}", native_decimals) for a, v in native_raw.items()}

    tokens_raw = obj.get("tokens") or []
    if not isinstance(tokens_raw, list):
        raise ValueError("genesis.tokens must be a list")

    tokens: List[GenesisToken] = []
    for i, rec in enumerate(tokens_raw):
        if not isinstance(rec, dict):
            raise ValueError(f"genesis.tokens[{i}] must be a mapping")
        tid = str(rec.get("id") or "").strip()
        if not tid:
            raise ValueError(f"genesis.tokens[{i}].id is required")
        decimals = _amount(rec.get("decimals", 0), f"genesis.tokens[{i}].decimals")

        bals_raw = rec.get("balances") or {}
        allow_raw = rec.get("allowances") or {}
        if not isinstance(bals_raw, dict) or not isinstance(allow_raw, dict):
            raise ValueError(f"genesis.tokens[{i}] balances/allowances must be mappings")

        allowances: Dict[str, Dict[str, int]] = {}
        for owner, spenders in allow_raw.items():
            if not isinstance(spenders, dict):
                raise ValueError(f"genesis.tokens[{i}].allowances.{owner} must be a mapping")
            allowances[str(owner)] = {
                str(s): _amount(v, f"genesis.tokens[{i}].allowances.{owner}.{s}", decimals) for s, v in spenders.items()
            }

        tokens.append(
            GenesisToken(
                token_id=tid,
                return_style=str(rec.get("return_style") or "bool"),
                fee_bps=_amount(rec.get("fee_bps", 0), f"genesis.tokens[{i}].fee_bps"),
                decimals=decimals,
                balances={str(a): _amount(v, f"genesis.tokens[{i}].balances.{a}", decimals) for a, v in bals_raw.items()},
                allowances=allowances,
            )
        )

    return GenesisConfig(native=native, tokens=tokens)


def apply_genesis_to_world(world: World, cfg: GenesisConfig) -> bool:
    """Seed balances and tokens into an empty world.

    Returns True if anything was written. A world that already holds balances
    or tokens is left alone, so restarting from a persisted snapshot never
    re-mints.
    """
    if world.state["native"] or world.state["tokens"]:
        return False
    if not cfg.native and not cfg.tokens:
        return False

    for addr, amount in cfg.native.items():
        world.credit_native(addr, amount)

    for t in cfg.tokens:
        token = world.deploy_token(t.token_id, return_style=t.return_style, fee_bps=t.fee_bps)
        for addr, amount in t.balances.items():
            token.mint(addr, amount)
        for owner, spenders in t.allowances.items():
            for spender, amount in spenders.items():
                token.set_allowance(owner, spender, amount)

    return True
