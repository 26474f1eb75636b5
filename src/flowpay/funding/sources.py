"""
Funding source repository.

Keeps each user's wallets, bank accounts and cards in the
`funding_sources` collection.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from flowpay.core.logging import get_logger
from flowpay.core.types import FundingSource

if TYPE_CHECKING:
    from flowpay.storage.base import StorageBackend

logger = get_logger("funding")


class FundingSourceService:
    COLLECTION = "funding_sources"

    def __init__(self, storage: StorageBackend, default_currency: str = "USD") -> None:
        self._storage = storage
        self._default_currency = default_currency

    @staticmethod
    def _key(user_id: str, source_id: str) -> str:
        return f"{user_id}:{source_id}"

    async def list_sources(self, user_id: str) -> list[FundingSource]:
        """All of a user's sources, linked or not, in storage order."""
        records = await self._storage.query(self.COLLECTION, filters={"user_id": user_id})
        sources = []
        for record in records:
            record.pop("_key", None)
            record.pop("user_id", None)
            sources.append(FundingSource.from_dict(record, default_currency=self._default_currency))
        return sources

    async def get_source(self, user_id: str, source_id: str) -> FundingSource | None:
        data = await self._storage.get(self.COLLECTION, self._key(user_id, source_id))
        if not data:
            return None
        data.pop("user_id", None)
        return FundingSource.from_dict(data, default_currency=self._default_currency)

    async def save_source(
        self, user_id: str, source: FundingSource | dict[str, Any]
    ) -> FundingSource:
        """
        Add or replace a source.

        Accepts a FundingSource or an external record (camelCase or snake_case).
        """
        if isinstance(source, dict):
            source = FundingSource.from_dict(source, default_currency=self._default_currency)

        data = source.to_dict()
        data["user_id"] = user_id
        await self._storage.save(self.COLLECTION, self._key(user_id, source.id), data)
        logger.debug(f"Saved funding source {source.id} for {user_id}")
        return source

    async def set_sources(
        self, user_id: str, sources: list[FundingSource | dict[str, Any]]
    ) -> list[FundingSource]:
        """Replace all of a user's sources."""
        for existing in await self.list_sources(user_id):
            await self.remove_source(user_id, existing.id)
        return [await self.save_source(user_id, s) for s in sources]

    async def remove_source(self, user_id: str, source_id: str) -> bool:
        return await self._storage.delete(self.COLLECTION, self._key(user_id, source_id))
