"""
IntentService - manages the lifecycle of intents.

Each user has at most one current intent. Lifecycle transitions are
one-directional; once an intent reaches a terminal status it is appended to
the user's history and the current slot is cleared.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import TYPE_CHECKING

from flowpay.core.events import EventDispatcher, IntentEvent
from flowpay.core.exceptions import IntentStateError, ValidationError
from flowpay.core.logging import get_logger
from flowpay.intents.models import Intent, IntentStatus, can_transition, intent_from_dict

if TYPE_CHECKING:
    from flowpay.storage.base import StorageBackend

logger = get_logger("intents")


class IntentService:
    """
    Service for managing intents.

    Persists the current intent per user in `intents` and finished intents
    in `intent_history`.
    """

    CURRENT_COLLECTION = "intents"
    HISTORY_COLLECTION = "intent_history"

    def __init__(self, storage: StorageBackend, dispatcher: EventDispatcher | None = None) -> None:
        self._storage = storage
        self._dispatcher = dispatcher or EventDispatcher()

    @property
    def dispatcher(self) -> EventDispatcher:
        return self._dispatcher

    async def activate(self, user_id: str, intent: Intent) -> Intent:
        """Make `intent` the user's current intent, replacing any other."""
        if intent.status.is_terminal:
            raise IntentStateError(
                "Cannot activate a finished intent",
                intent_id=intent.id,
                current_status=intent.status.value,
                target_status=IntentStatus.PENDING.value,
            )
        await self._save_current(user_id, intent)
        await self._publish(user_id, intent, previous=None)
        logger.debug(f"Activated {intent.type.value} intent {intent.id} for {user_id}")
        return intent

    async def current(self, user_id: str) -> Intent | None:
        data = await self._storage.get(self.CURRENT_COLLECTION, user_id)
        if not data:
            return None
        return intent_from_dict(data["intent"])

    async def clear_current(self, user_id: str) -> bool:
        return await self._storage.delete(self.CURRENT_COLLECTION, user_id)

    async def get(self, user_id: str, intent_id: str) -> Intent | None:
        """Find an intent in the current slot or the user's history."""
        current = await self.current(user_id)
        if current is not None and current.id == intent_id:
            return current

        data = await self._storage.get(self.HISTORY_COLLECTION, intent_id)
        if not data or data.get("user_id") != user_id:
            return None
        return intent_from_dict(data["intent"])

    async def history(self, user_id: str, limit: int = 50) -> list[Intent]:
        """Finished intents, most recent first."""
        records = await self._storage.query(self.HISTORY_COLLECTION, filters={"user_id": user_id})
        records.sort(key=lambda r: r.get("finished_at", ""), reverse=True)
        return [intent_from_dict(r["intent"]) for r in records[:limit]]

    async def authorize(self, user_id: str, intent_id: str) -> Intent:
        return await self._transition(user_id, intent_id, IntentStatus.AUTHORIZED)

    async def complete(self, user_id: str, intent_id: str) -> Intent:
        return await self._transition(user_id, intent_id, IntentStatus.COMPLETED)

    async def cancel(self, user_id: str, intent_id: str, reason: str | None = None) -> Intent:
        return await self._transition(user_id, intent_id, IntentStatus.CANCELLED, reason)

    async def fail(self, user_id: str, intent_id: str, reason: str | None = None) -> Intent:
        return await self._transition(user_id, intent_id, IntentStatus.FAILED, reason)

    async def _transition(
        self,
        user_id: str,
        intent_id: str,
        target: IntentStatus,
        reason: str | None = None,
    ) -> Intent:
        """
        Move an intent to `target`.

        Raises:
            ValidationError: If the intent does not exist for this user
            IntentStateError: If the transition is not allowed
        """
        intent = await self.get(user_id, intent_id)
        if intent is None:
            raise ValidationError(f"Intent not found: {intent_id}")

        if not can_transition(intent.status, target):
            raise IntentStateError(
                f"Cannot move intent {intent_id} to {target.value}",
                intent_id=intent_id,
                current_status=intent.status.value,
                target_status=target.value,
            )

        previous = intent.status
        updated = replace(intent, status=target)

        if target.is_terminal:
            await self._storage.save(
                self.HISTORY_COLLECTION,
                intent_id,
                {
                    "user_id": user_id,
                    "intent": updated.to_dict(),
                    "reason": reason,
                    "finished_at": datetime.now().isoformat(),
                },
            )
            await self.clear_current(user_id)
        else:
            await self._save_current(user_id, updated)

        logger.info(f"Intent {intent_id}: {previous.value} -> {target.value}")
        await self._publish(user_id, updated, previous=previous, reason=reason)
        return updated

    async def _save_current(self, user_id: str, intent: Intent) -> None:
        await self._storage.save(
            self.CURRENT_COLLECTION,
            user_id,
            {"user_id": user_id, "intent": intent.to_dict()},
        )

    async def _publish(
        self,
        user_id: str,
        intent: Intent,
        previous: IntentStatus | None,
        reason: str | None = None,
    ) -> None:
        metadata = {"type": intent.type.value}
        if reason:
            metadata["reason"] = reason
        await self._dispatcher.publish(
            IntentEvent(
                intent_id=intent.id,
                user_id=user_id,
                status=intent.status.value,
                previous_status=previous.value if previous else None,
                metadata=metadata,
            )
        )
