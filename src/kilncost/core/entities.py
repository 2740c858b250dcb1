"""Value objects for batch consumption and cost calculations."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

ZERO = Decimal("0")


class RateSource(str, enum.Enum):
    """Where the electricity rate used for a calculation came from."""

    SETTINGS = "settings"
    LAST_RECHARGE = "last_recharge"
    DEFAULT = "default"


@dataclass(frozen=True)
class MeterReading:
    """Remaining prepaid balance observed at a given instant."""

    timestamp: datetime
    meter_value: Decimal
    id: Optional[UUID] = None


@dataclass(frozen=True)
class RechargeEvent:
    """A top-up transaction adding kWh to the prepaid balance.

    ``batch_id`` is ``None`` for recharges that were never assigned to a batch.
    """

    timestamp: datetime
    kwh_amount: Decimal
    total_paid: Decimal
    meter_value_after: Optional[Decimal] = None
    token: Optional[str] = None
    id: Optional[UUID] = None
    batch_id: Optional[UUID] = None

    @property
    def is_orphaned(self) -> bool:
        return self.batch_id is None


@dataclass(frozen=True)
class BatchWindow:
    """Boundaries of a drying batch."""

    start_time: datetime
    end_time: Optional[datetime] = None
    starting_meter_value: Optional[Decimal] = None
    id: Optional[UUID] = None
    label: str = ""


@dataclass(frozen=True)
class RateSettings:
    """Process-wide cost settings, resolved by the caller once per calculation."""

    asset_purchase_price: Decimal
    asset_lifespan_years: Decimal
    annual_maintenance_cost: Decimal
    labor_per_hour: Decimal
    electricity_rate: Optional[Decimal] = None


@dataclass(frozen=True)
class HourlyRates:
    """Time-based cost rates, per running hour."""

    depreciation: Decimal
    maintenance: Decimal
    labor: Decimal


@dataclass(frozen=True)
class ElectricityRate:
    value: Decimal
    source: RateSource


@dataclass(frozen=True)
class IntervalConsumption:
    """Consumption attributed to the span between two successive readings."""

    start: datetime
    end: datetime
    opening_value: Decimal
    closing_value: Decimal
    recharged_kwh: Decimal
    recharge_count: int
    consumed_kwh: Decimal

    @property
    def meter_delta(self) -> Decimal:
        """Raw change of the balance counter, positive when it went up."""
        return self.closing_value - self.opening_value


@dataclass(frozen=True)
class CostPerPiece:
    pieces: int
    electricity: Decimal
    depreciation: Decimal
    maintenance: Decimal
    labor: Decimal
    total: Decimal
    kwh: Decimal
    hours: Decimal


@dataclass(frozen=True)
class ReconciliationResult:
    """Reconciled consumption of a batch and its cost breakdown."""

    total_consumption_kwh: Decimal
    running_hours: Decimal
    electricity_rate: ElectricityRate
    electricity_cost: Decimal
    depreciation_cost: Decimal
    maintenance_cost: Decimal
    labor_cost: Decimal

    @property
    def total_cost(self) -> Decimal:
        return (
            self.electricity_cost
            + self.depreciation_cost
            + self.maintenance_cost
            + self.labor_cost
        )

    def cost_per_piece(self, pieces: int) -> CostPerPiece:
        """Splits every component evenly over the dried pieces."""
        if pieces <= 0:
            raise ValueError("Piece count must be positive.")
        count = Decimal(pieces)
        return CostPerPiece(
            pieces=pieces,
            electricity=self.electricity_cost / count,
            depreciation=self.depreciation_cost / count,
            maintenance=self.maintenance_cost / count,
            labor=self.labor_cost / count,
            total=self.total_cost / count,
            kwh=self.total_consumption_kwh / count,
            hours=self.running_hours / count,
        )
