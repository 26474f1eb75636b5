"""
Transaction log.

Records every intent that reached a terminal status, and answers the
history questions the risk policy asks ("what does this user usually pay?").
"""

from __future__ import annotations

import statistics
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from flowpay.storage.base import StorageBackend


class TransactionStatus(str, Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class TransactionRecord:
    """
    A finished payment, transfer or request.

    Attributes:
        id: Unique record ID
        timestamp: When the intent reached its final status
        user_id: Owner of the intent
        intent_id: The intent this record closes
        intent_type: PAY_MERCHANT, SEND_MONEY or RECEIVE_MONEY
        counterparty: Merchant, recipient or requester display name
        amount: Amount moved (zero for open requests)
        currency: ISO currency code
        status: Final status
        rail: Rail the user was handed off to, if any
        plan_id: Resolution plan used, if any
        auto_approved: Whether the plan ran without explicit confirmation
        metadata: Additional data
    """

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=datetime.now)
    user_id: str = ""
    intent_id: str = ""
    intent_type: str = ""
    counterparty: str | None = None
    amount: Decimal = Decimal("0")
    currency: str = "USD"
    status: TransactionStatus = TransactionStatus.COMPLETED
    rail: str | None = None
    plan_id: str | None = None
    auto_approved: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "user_id": self.user_id,
            "intent_id": self.intent_id,
            "intent_type": self.intent_type,
            "counterparty": self.counterparty,
            "amount": str(self.amount),
            "currency": self.currency,
            "status": self.status.value,
            "rail": self.rail,
            "plan_id": self.plan_id,
            "auto_approved": self.auto_approved,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TransactionRecord:
        ts_str = data.get("timestamp")
        timestamp = datetime.fromisoformat(ts_str) if ts_str else datetime.now()

        return cls(
            id=data.get("id", str(uuid.uuid4())),
            timestamp=timestamp,
            user_id=data.get("user_id", ""),
            intent_id=data.get("intent_id", ""),
            intent_type=data.get("intent_type", ""),
            counterparty=data.get("counterparty"),
            amount=Decimal(str(data.get("amount", "0"))),
            currency=data.get("currency", "USD"),
            status=TransactionStatus(data.get("status", TransactionStatus.COMPLETED.value)),
            rail=data.get("rail"),
            plan_id=data.get("plan_id"),
            auto_approved=bool(data.get("auto_approved", False)),
            metadata=data.get("metadata", {}),
        )


class TransactionLog:
    """Transaction history backed by the storage backend."""

    COLLECTION = "transactions"

    def __init__(self, storage: StorageBackend) -> None:
        self._storage = storage

    async def record(self, record: TransactionRecord) -> str:
        await self._storage.save(self.COLLECTION, record.id, record.to_dict())
        return record.id

    async def get(self, record_id: str) -> TransactionRecord | None:
        data = await self._storage.get(self.COLLECTION, record_id)
        if not data:
            return None
        return TransactionRecord.from_dict(data)

    async def query(
        self,
        user_id: str | None = None,
        status: TransactionStatus | None = None,
        intent_type: str | None = None,
        currency: str | None = None,
        from_date: datetime | None = None,
        limit: int = 100,
    ) -> list[TransactionRecord]:
        """
        Query transaction records, newest first.

        Args:
            user_id: Filter by user
            status: Filter by final status
            intent_type: Filter by intent type
            currency: Filter by currency
            from_date: Records at or after this time
            limit: Maximum records to return
        """
        filters: dict[str, Any] = {}
        if user_id:
            filters["user_id"] = user_id
        if status:
            filters["status"] = status.value
        if intent_type:
            filters["intent_type"] = intent_type
        if currency:
            filters["currency"] = currency

        raw_results = await self._storage.query(self.COLLECTION, filters=filters)
        records = [TransactionRecord.from_dict(d) for d in raw_results]

        if from_date:
            records = [r for r in records if r.timestamp >= from_date]

        records.sort(key=lambda r: r.timestamp, reverse=True)
        return records[:limit]

    async def typical_amount(
        self,
        user_id: str,
        currency: str | None = None,
        lookback: int = 20,
    ) -> Decimal | None:
        """
        Median of the user's recent completed payments.

        Returns:
            The median amount, or None when the user has no history
        """
        records = await self.query(
            user_id=user_id,
            status=TransactionStatus.COMPLETED,
            currency=currency,
            limit=lookback,
        )
        amounts = [r.amount for r in records if r.amount > 0]
        if not amounts:
            return None
        return statistics.median(amounts)

    async def clear(self) -> int:
        return await self._storage.clear(self.COLLECTION)
