from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

# SettlementError.kind -> HTTP status
STATUS_BY_KIND: Dict[str, int] = {
    "validation": 400,
    "arithmetic": 400,
    "funding": 400,
    "config": 400,
    "access": 403,
    "state": 409,
    "transfer": 422,
}


def status_for_kind(kind: str) -> int:
    return STATUS_BY_KIND.get(str(kind), 400)


@dataclass
class ApiError(Exception):
    status_code: int
    code: str
    message: str
    details: Dict[str, Any]

    @staticmethod
    def bad_request(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(400, code, message, details or {})

    @staticmethod
    def unauthorized(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(401, code, message, details or {})

    @staticmethod
    def forbidden(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(403, code, message, details or {})

    @staticmethod
    def internal(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(500, code, message, details or {})
