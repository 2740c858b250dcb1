"""Repository for Setting model."""

from __future__ import annotations

from typing import Iterable

from kilncost.core.models import Setting
from kilncost.core.repositories.base import BaseRepository


class SettingRepository(BaseRepository[Setting]):
    """Setting-specific repository operations."""

    def __init__(self) -> None:
        super().__init__(Setting)

    async def get_values(self, keys: Iterable[str]) -> dict[str, str]:
        """Returns the stored values for ``keys``; missing keys are left out."""
        rows = await self.model.filter(key__in=list(keys))
        return {row.key: row.value for row in rows}

    async def set_value(self, key: str, value: str) -> Setting:
        setting, _ = await self.model.update_or_create(
            defaults={"value": value}, key=key
        )
        return setting
