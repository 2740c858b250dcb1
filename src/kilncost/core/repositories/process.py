"""Repository for DryingProcess model."""

from __future__ import annotations

from decimal import Decimal

from kilncost.core.models import DryingProcess, ProcessStatus
from kilncost.core.repositories.base import BaseRepository


class ProcessRepository(BaseRepository[DryingProcess]):
    """DryingProcess-specific repository operations."""

    def __init__(self) -> None:
        super().__init__(DryingProcess)

    async def get_completed(self) -> list[DryingProcess]:
        """Completed batches, ordered by batch number."""
        return await self.model.filter(status=ProcessStatus.COMPLETED).order_by(
            "batch_number"
        )

    async def save_total_cost(self, process: DryingProcess, total_cost: Decimal) -> None:
        process.total_cost = total_cost
        await process.save(update_fields=["total_cost", "updated_at"])
