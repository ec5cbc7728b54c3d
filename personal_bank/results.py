"""
Operation Results

Domain operations never raise for business-rule failures. They return an
OperationResult instead, which is truthy only on success, so callers can
either test it like a boolean or branch on the failure reason.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .transactions import Transaction


class FailureReason(Enum):
    """Why a domain operation was rejected"""
    NEGATIVE_AMOUNT = "negative_amount"
    INVALID_AMOUNT = "invalid_amount"
    UNSUPPORTED_CURRENCY = "unsupported_currency"
    CONVERSION_ERROR = "conversion_error"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    LOCKED = "locked"
    INVALID_PIN = "invalid_pin"


@dataclass(frozen=True)
class OperationResult:
    """Outcome of a deposit, withdrawal, transfer, login or account creation"""
    success: bool
    reason: Optional[FailureReason] = None
    message: str = ""
    transaction: Optional[Transaction] = None

    def __post_init__(self):
        if self.success and self.reason is not None:
            raise ValueError("A successful result cannot carry a failure reason")
        if not self.success and self.reason is None:
            raise ValueError("A failed result must carry a failure reason")

    def __bool__(self) -> bool:
        return self.success

    @classmethod
    def ok(cls, message: str = "", transaction: Optional[Transaction] = None) -> 'OperationResult':
        return cls(success=True, message=message, transaction=transaction)

    @classmethod
    def fail(cls, reason: FailureReason, message: str) -> 'OperationResult':
        return cls(success=False, reason=reason, message=message)
