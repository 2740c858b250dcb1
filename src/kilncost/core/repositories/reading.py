"""Repository for DryingReading model."""

from __future__ import annotations

from uuid import UUID

from kilncost.core.models import DryingReading
from kilncost.core.repositories.base import BaseRepository


class ReadingRepository(BaseRepository[DryingReading]):
    """DryingReading-specific repository operations."""

    def __init__(self) -> None:
        super().__init__(DryingReading)

    async def get_for_process(self, process_id: UUID) -> list[DryingReading]:
        """Get the readings of a batch in chronological order."""
        return await self.model.filter(process_id=process_id).order_by("reading_time")
