"""
PlanStore - persistence for resolution plans.

A plan is written once when it is committed; afterwards only its approval
status changes. Write failures are fatal for the resolution attempt.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from flowpay.core.exceptions import PlanPersistenceError, ValidationError
from flowpay.core.logging import get_logger
from flowpay.core.types import ResolutionPlan

if TYPE_CHECKING:
    from flowpay.storage.base import StorageBackend

logger = get_logger("resolution.store")


class PlanStatus(str, Enum):
    APPROVED = "approved"  # auto-approved, ready for handoff
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    CONFIRMED = "confirmed"  # user accepted an async plan


class PlanStore:
    COLLECTION = "resolution_plans"

    def __init__(self, storage: StorageBackend) -> None:
        self._storage = storage

    @staticmethod
    def _new_plan_id() -> str:
        return f"plan_{uuid.uuid4().hex}"

    async def save(self, user_id: str, plan: ResolutionPlan) -> ResolutionPlan:
        """
        Persist a plan and assign its id.

        Raises:
            PlanPersistenceError: If the backend rejects the write
        """
        stored = plan.with_plan_id(plan.plan_id or self._new_plan_id())
        record = stored.to_dict()
        record.update(
            user_id=user_id,
            status=(
                PlanStatus.AWAITING_CONFIRMATION.value
                if plan.requires_confirmation
                else PlanStatus.APPROVED.value
            ),
            confirmed_at=None,
        )

        try:
            await self._storage.save(self.COLLECTION, stored.plan_id, record)  # type: ignore[arg-type]
        except Exception as e:
            logger.error(f"Failed to persist plan for intent {plan.intent_id}: {e}")
            raise PlanPersistenceError(
                f"Could not persist resolution plan: {e}",
                intent_id=plan.intent_id,
            ) from e

        return stored

    async def _load_record(self, plan_id: str) -> dict[str, Any] | None:
        return await self._storage.get(self.COLLECTION, plan_id)

    async def get(self, plan_id: str) -> ResolutionPlan | None:
        data = await self._load_record(plan_id)
        if not data:
            return None
        return ResolutionPlan.from_dict(data)

    async def get_status(self, plan_id: str) -> PlanStatus | None:
        data = await self._load_record(plan_id)
        if not data:
            return None
        return PlanStatus(data["status"])

    async def get_owner(self, plan_id: str) -> str | None:
        data = await self._load_record(plan_id)
        return data.get("user_id") if data else None

    async def latest_for_intent(self, intent_id: str) -> ResolutionPlan | None:
        """Most recently created plan for an intent."""
        records = await self._storage.query(self.COLLECTION, filters={"intent_id": intent_id})
        if not records:
            return None
        records.sort(key=lambda r: r.get("created_at", ""))
        return ResolutionPlan.from_dict(records[-1])

    async def mark_confirmed(self, plan_id: str) -> ResolutionPlan:
        """
        Record the user's explicit acceptance of a plan.

        Raises:
            ValidationError: If the plan does not exist
        """
        data = await self._load_record(plan_id)
        if not data:
            raise ValidationError(f"Plan not found: {plan_id}")

        if data.get("status") != PlanStatus.CONFIRMED.value:
            await self._storage.update(
                self.COLLECTION,
                plan_id,
                {
                    "status": PlanStatus.CONFIRMED.value,
                    "confirmed_at": datetime.now().isoformat(),
                },
            )
        return ResolutionPlan.from_dict(data)
