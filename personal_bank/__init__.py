"""
Personal Bank

A single-user ledger manager: PIN-gated accounts with multi-currency
deposits, an append-only transaction history and whole-state snapshots
on disk. All monetary values use Decimal.
"""

__version__ = "1.0.0"
