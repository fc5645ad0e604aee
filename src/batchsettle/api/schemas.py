from __future__ import annotations

"""Pydantic request schemas for the HTTP API.

Amounts are accepted as JSON integers or decimal-digit strings (uint256 values
do not survive a round trip through JavaScript numbers). Recipient addresses
are passed through untouched; the engine validates them so the error kind is
the same over HTTP as in-process.
"""

from typing import List, Union

from pydantic import BaseModel, Field, StrictBool, StrictInt, StrictStr, field_validator


def _to_amount(v: Union[int, str]) -> int:
    if isinstance(v, int):
        return v
    s = v.strip()
    if not (s.isascii() and s.isdigit()):
        raise ValueError(f"amount must be a non-negative integer or digit string; got: {v!r}")
    return int(s)


class SettleNativeRequest(BaseModel):
    recipients: List[StrictStr] = Field(..., description="Recipient addresses, in payout order")
    amounts: List[Union[StrictInt, StrictStr]] = Field(..., description="Amounts in base units")
    value: Union[StrictInt, StrictStr] = Field(..., description="Native value supplied; must equal total + fee")

    model_config = {"extra": "forbid"}

    @field_validator("amounts")
    @classmethod
    def _amounts(cls, v: List[Union[int, str]]) -> List[int]:
        return [_to_amount(a) for a in v]

    @field_validator("value")
    @classmethod
    def _value(cls, v: Union[int, str]) -> int:
        return _to_amount(v)


class SettleTokenRequest(BaseModel):
    token: StrictStr = Field(..., min_length=1, description="Token id")
    recipients: List[StrictStr]
    amounts: List[Union[StrictInt, StrictStr]]

    model_config = {"extra": "forbid"}

    @field_validator("amounts")
    @classmethod
    def _amounts(cls, v: List[Union[int, str]]) -> List[int]:
        return [_to_amount(a) for a in v]


class MaxRecipientsRequest(BaseModel):
    max_recipients: StrictInt


class FeeOnTransferRequest(BaseModel):
    token: StrictStr = Field(..., min_length=1)
    flag: StrictBool


class FeeProposeRequest(BaseModel):
    fee_bps: StrictInt
    fee_recipient: StrictStr


class SweepTokenRequest(BaseModel):
    token: StrictStr = Field(..., min_length=1)
    to: StrictStr


class SweepNativeRequest(BaseModel):
    to: StrictStr


class OwnershipRequest(BaseModel):
    new_owner: StrictStr
