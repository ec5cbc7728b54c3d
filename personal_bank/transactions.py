"""
Transaction Records

Immutable records of balance-affecting events. Amounts are always
normalized to the reference currency; the currency field keeps the code
the user originally asked for and is only used for display.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

from .currency import format_amount, to_decimal


class TransactionKind(Enum):
    """Descriptions used for transaction history entries"""
    INITIAL_DEPOSIT = "Initial Deposit"
    DEPOSIT = "Deposit"
    WITHDRAWAL = "Withdrawal"
    INTEREST_APPLIED = "Interest Applied"


@dataclass(frozen=True)
class Transaction:
    """One entry in an account's history"""
    date: datetime
    amount: Decimal
    description: str
    currency: str

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, 'amount', to_decimal(self.amount))
        if isinstance(self.description, TransactionKind):
            object.__setattr__(self, 'description', self.description.value)

    @property
    def is_credit(self) -> bool:
        return self.amount > 0

    @property
    def is_debit(self) -> bool:
        return self.amount < 0

    def __str__(self) -> str:
        return f"{self.date.isoformat()}: {self.description} £{format_amount(self.amount)} {self.currency}"
