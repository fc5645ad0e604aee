from __future__ import annotations

from typing import Any

from batchsettle.ledger.constants import ADDRESS_RE, ZERO_ADDRESS


def is_valid_address(v: Any) -> bool:
    """0x-prefixed 20-byte hex, and not the zero address."""
    return isinstance(v, str) and bool(ADDRESS_RE.match(v)) and v.lower() != ZERO_ADDRESS
