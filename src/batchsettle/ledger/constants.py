# src/batchsettle/ledger/constants.py
from __future__ import annotations

"""Settlement engine constants.

Fee math:
- Fee rate is expressed in basis points (1 bps = 0.01%).
- fee = ceil(total * fee_bps / BPS_DENOMINATOR), integer-only.

Bounds are hard limits; governance can move values inside them but never past them.
"""

import re

BPS_DENOMINATOR: int = 10_000

# Fee rate cap: 5%
MAX_FEE_BPS: int = 500

# Per-call recipient limits
MAX_RECIPIENTS_HARD_CAP: int = 500
DEFAULT_MAX_RECIPIENTS: int = 200

# Fee-update timelock window
MIN_FEE_DELAY_FLOOR_S: int = 60 * 60  # 1 hour
MIN_FEE_DELAY_CEILING_S: int = 30 * 24 * 60 * 60  # 30 days

# Checked-sum bound (amounts are uint256 on the wire)
UINT256_MAX: int = (1 << 256) - 1

# Addresses: 0x + 20 bytes hex
ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
ZERO_ADDRESS: str = "0x" + "0" * 40

# Asset id used for native currency in balances, events and receipts
NATIVE_ASSET: str = "native"

# Default address the engine holds value under
ENGINE_ADDRESS: str = "0x" + "5e" * 20
