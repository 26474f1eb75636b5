"""
Ledger module - transaction history and per-user locking for FlowPay.
"""

from flowpay.ledger.ledger import (
    TransactionLog,
    TransactionRecord,
    TransactionStatus,
)
from flowpay.ledger.lock import UserLockService

__all__ = [
    "TransactionLog",
    "TransactionRecord",
    "TransactionStatus",
    "UserLockService",
]
