# src/batchsettle/runtime/receipts.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List

Json = Dict[str, Any]


@dataclass(frozen=True)
class TransferOutcome:
    recipient: str
    amount: int
    succeeded: bool

    def to_json(self) -> Json:
        return {"recipient": self.recipient, "amount": int(self.amount), "succeeded": bool(self.succeeded)}


@dataclass(frozen=True)
class SettlementReceipt:
    asset: str
    recipient_count: int
    total: int
    fee: int

    def to_json(self) -> Json:
        return {
            "asset": self.asset,
            "recipient_count": int(self.recipient_count),
            "total": str(int(self.total)),
            "fee": str(int(self.fee)),
        }


@dataclass(frozen=True)
class PartialSettlementReceipt:
    """Best-effort result.

    Always: sent_total + failed_total == total, and
    refund == failed_total + (fee_max - fee_charged) >= 0.
    """

    asset: str
    requested_count: int
    sent_count: int
    total: int
    sent_total: int
    failed_total: int
    fee_max: int
    fee_charged: int
    refund: int
    outcomes: List[TransferOutcome] = field(default_factory=list)

    @property
    def failed_count(self) -> int:
        return int(self.requested_count) - int(self.sent_count)

    def to_json(self) -> Json:
        return {
            "asset": self.asset,
            "requested_count": int(self.requested_count),
            "sent_count": int(self.sent_count),
            "failed_count": self.failed_count,
            "total": str(int(self.total)),
            "sent_total": str(int(self.sent_total)),
            "failed_total": str(int(self.failed_total)),
            "fee_max": str(int(self.fee_max)),
            "fee_charged": str(int(self.fee_charged)),
            "refund": str(int(self.refund)),
            "outcomes": [o.to_json() for o in self.outcomes],
        }


@dataclass(frozen=True)
class SweepReceipt:
    asset: str
    to: str
    amount: int

    def to_json(self) -> Json:
        return {"asset": self.asset, "to": self.to, "amount": str(int(self.amount))}
