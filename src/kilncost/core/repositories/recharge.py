"""Repository for ElectricityRecharge model."""

from __future__ import annotations

from uuid import UUID

from kilncost.core.models import ElectricityRecharge
from kilncost.core.repositories.base import BaseRepository


class RechargeRepository(BaseRepository[ElectricityRecharge]):
    """ElectricityRecharge-specific repository operations."""

    def __init__(self) -> None:
        super().__init__(ElectricityRecharge)

    async def get_for_process(self, process_id: UUID) -> list[ElectricityRecharge]:
        """Get the recharges of a batch in chronological order."""
        return await self.model.filter(process_id=process_id).order_by("recharge_date")

    async def all_ordered(self) -> list[ElectricityRecharge]:
        """Every recharge, assigned or not, in chronological order."""
        return await self.model.all().order_by("recharge_date")
