"""
Daily auto-approval tracking.

Today's auto-approved total is a per-user, per-day storage counter moved
with `atomic_add`, so a new day starts from zero and concurrent writers never
lose an update. A commit that pushes the counter past the limit is rolled
back. Per-intent approval records make commits idempotent; callers serialize
commits per user (UserLockService) so those records stay consistent.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING

from flowpay.core.exceptions import BlockedByGuardrailError
from flowpay.core.logging import get_logger
from flowpay.core.types import ZERO, ReasonCode, to_decimal
from flowpay.guardrails.base import UserPaymentState

if TYPE_CHECKING:
    from flowpay.storage.base import StorageBackend

logger = get_logger("guardrails.daily")


class DailyApprovalTracker:
    STATE_COLLECTION = "payment_state"
    APPROVALS_COLLECTION = "daily_approvals"

    def __init__(self, storage: StorageBackend) -> None:
        self._storage = storage

    @staticmethod
    def _approval_key(user_id: str, intent_id: str) -> str:
        return f"{user_id}:{intent_id}"

    @staticmethod
    def _counter_key(user_id: str, today: date) -> str:
        return f"{user_id}:{today.isoformat()}"

    async def load(self, user_id: str, today: date | None = None) -> UserPaymentState:
        """Current state for a user; a day with no approvals reads as zero."""
        today = today or date.today()
        data = await self._storage.get(self.STATE_COLLECTION, self._counter_key(user_id, today))
        total = to_decimal(data.get("value")) if data else ZERO
        return UserPaymentState(daily_auto_approved=total, last_reset_date=today)

    async def _add(self, user_id: str, amount: Decimal, today: date) -> Decimal:
        total = await self._storage.atomic_add(
            self.STATE_COLLECTION, self._counter_key(user_id, today), str(amount)
        )
        return to_decimal(total)

    async def approved_amount(self, user_id: str, intent_id: str, today: date | None = None) -> Decimal:
        """Amount already counted today for this intent."""
        today = today or date.today()
        record = await self._storage.get(
            self.APPROVALS_COLLECTION, self._approval_key(user_id, intent_id)
        )
        if not record or record.get("date") != today.isoformat():
            return ZERO
        return to_decimal(record.get("amount"))

    async def commit(
        self,
        user_id: str,
        intent_id: str,
        amount: Decimal,
        limit: Decimal,
        today: date | None = None,
    ) -> UserPaymentState:
        """
        Count an auto-approved amount against today's total.

        Recommitting the same intent only applies the difference from what
        was already counted for it.

        Raises:
            BlockedByGuardrailError: If the new total would exceed `limit`
        """
        today = today or date.today()
        previous = await self.approved_amount(user_id, intent_id, today)
        delta = amount - previous

        state = await self.load(user_id, today)
        if delta:
            if state.daily_auto_approved + delta > limit:
                raise _over_limit(limit, intent_id, state.daily_auto_approved, amount)

            total = await self._add(user_id, delta, today)
            if total > limit:
                # Another writer moved the counter after it was read
                total = await self._add(user_id, -delta, today)
                raise _over_limit(limit, intent_id, total, amount)
            state = UserPaymentState(daily_auto_approved=total, last_reset_date=today)

        await self._storage.save(
            self.APPROVALS_COLLECTION,
            self._approval_key(user_id, intent_id),
            {
                "user_id": user_id,
                "intent_id": intent_id,
                "amount": str(amount),
                "date": today.isoformat(),
            },
        )

        logger.debug(
            f"Committed {delta} for {user_id}/{intent_id}; "
            f"daily total {state.daily_auto_approved}"
        )
        return state

    async def release(self, user_id: str, intent_id: str, today: date | None = None) -> Decimal:
        """
        Roll back the approval recorded for an intent.

        Returns:
            The amount removed from today's total (zero if nothing was counted)
        """
        today = today or date.today()
        released = await self.approved_amount(user_id, intent_id, today)
        await self._storage.delete(self.APPROVALS_COLLECTION, self._approval_key(user_id, intent_id))

        if released <= 0:
            return ZERO

        total = await self._add(user_id, -released, today)
        if total < 0:
            await self._add(user_id, -total, today)
        logger.info(f"Released {released} auto-approval for {user_id}/{intent_id}")
        return released


def _over_limit(
    limit: Decimal, intent_id: str, current: Decimal, amount: Decimal
) -> BlockedByGuardrailError:
    return BlockedByGuardrailError(
        f"Daily auto-approval limit of {limit} would be exceeded",
        blocked_reason=ReasonCode.OVER_DAILY_LIMIT.value,
        intent_id=intent_id,
        details={"daily_auto_approved": str(current), "amount": str(amount)},
    )
