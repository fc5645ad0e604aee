# src/batchsettle/runtime/apply/__init__.py
"""Settlement apply modules.

Each module moves value for one family of operations:

  plan      pure validation + quoting (no state access)
  atomic    all-or-nothing native/token distribution
  partial   best-effort token distribution with refund
  recovery  owner sweeps of residual engine balances

Apply functions assume the caller already holds the reentrancy guard, checked
pause/ownership, and opened a world transaction; they raise SettlementError
subclasses and leave rollback to that transaction.
"""

from __future__ import annotations

__all__ = [
    "plan",
    "atomic",
    "partial",
    "recovery",
]
