from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

Json = Dict[str, Any]


@dataclass
class SettlementError(Exception):
    """Canonical error type for settlement, governance and recovery failures.

    `code` is the coarse category, `reason` the specific cause. Callers branch on
    the subclass (or `kind`) to decide whether a retry makes sense.
    """

    code: str
    reason: str
    details: Optional[Json] = None

    kind = "settlement"

    def __str__(self) -> str:  # pragma: no cover
        if self.details is None:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"


class ValidationError(SettlementError):
    """Batch shape problems: length mismatch, empty batch, cap exceeded, bad recipient or amount."""

    kind = "validation"


class AmountArithmeticError(SettlementError):
    """Checked-sum overflow."""

    kind = "arithmetic"


class FundingMismatchError(SettlementError):
    """Supplied or pulled funds differ from what the batch requires."""

    kind = "funding"


class TransferFailure(SettlementError):
    """An individual value movement failed."""

    kind = "transfer"


class AccessError(SettlementError):
    kind = "access"


class StateError(SettlementError):
    """Paused, reentrant call, or timelock not satisfied."""

    kind = "state"


class ConfigError(SettlementError):
    """Out-of-range fee rate, limit or delay."""

    kind = "config"


__all__ = [
    "SettlementError",
    "ValidationError",
    "AmountArithmeticError",
    "FundingMismatchError",
    "TransferFailure",
    "AccessError",
    "StateError",
    "ConfigError",
]
