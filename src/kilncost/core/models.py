"""Database models for drying batches, meter readings and recharges."""

from __future__ import annotations

import enum
import uuid

from tortoise import fields, models

from kilncost.core.entities import BatchWindow, MeterReading, RechargeEvent


class ProcessStatus(str, enum.Enum):
    """Lifecycle of a drying batch."""

    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class BaseModel(models.Model):
    """Abstract base model with common fields."""

    id = fields.UUIDField(pk=True, default=uuid.uuid4)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        abstract = True


class DryingProcess(BaseModel):
    """One kiln run, the unit being costed."""

    batch_number = fields.CharField(max_length=50, unique=True)  # e.g. "UD-DRY-00010"
    status = fields.CharEnumField(ProcessStatus, default=ProcessStatus.IN_PROGRESS)
    start_time = fields.DatetimeField()
    end_time = fields.DatetimeField(null=True)
    starting_electricity_units = fields.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        description="Prepaid balance in kWh when the batch started",
    )
    piece_count = fields.IntField(default=0)
    total_cost = fields.DecimalField(max_digits=14, decimal_places=2, null=True)

    readings: fields.ReverseRelation[DryingReading]
    recharges: fields.ReverseRelation[ElectricityRecharge]

    def as_batch(self) -> BatchWindow:
        return BatchWindow(
            start_time=self.start_time,
            end_time=self.end_time,
            starting_meter_value=self.starting_electricity_units,
            id=self.id,
            label=self.batch_number,
        )

    def __str__(self) -> str:
        return f"{self.batch_number} ({self.status.value})"


class DryingReading(BaseModel):
    """A reading of the prepaid meter taken during a batch."""

    reading_time = fields.DatetimeField()
    electricity_meter = fields.DecimalField(max_digits=12, decimal_places=2)
    humidity = fields.DecimalField(max_digits=5, decimal_places=2, null=True)
    process: fields.ForeignKeyRelation[DryingProcess] = fields.ForeignKeyField(
        "models.DryingProcess", related_name="readings"
    )

    def as_reading(self) -> MeterReading:
        return MeterReading(
            timestamp=self.reading_time, meter_value=self.electricity_meter, id=self.id
        )

    def __str__(self) -> str:
        return f"Reading {self.electricity_meter} kWh at {self.reading_time}"


class ElectricityRecharge(BaseModel):
    """A top-up of the prepaid meter. ``process`` is empty until assigned."""

    recharge_date = fields.DatetimeField()
    token = fields.CharField(max_length=64)
    kwh_amount = fields.DecimalField(max_digits=12, decimal_places=2)
    total_paid = fields.DecimalField(max_digits=14, decimal_places=2)
    meter_reading_after = fields.DecimalField(max_digits=12, decimal_places=2, null=True)
    base_cost = fields.DecimalField(max_digits=14, decimal_places=2, null=True)
    vat = fields.DecimalField(max_digits=14, decimal_places=2, null=True)
    ewura_fee = fields.DecimalField(max_digits=14, decimal_places=2, null=True)
    rea_fee = fields.DecimalField(max_digits=14, decimal_places=2, null=True)
    debt_collected = fields.DecimalField(max_digits=14, decimal_places=2, null=True)
    notes = fields.CharField(max_length=255, null=True)
    process: fields.ForeignKeyNullableRelation[DryingProcess] = fields.ForeignKeyField(
        "models.DryingProcess", related_name="recharges", null=True
    )

    def as_recharge(self) -> RechargeEvent:
        return RechargeEvent(
            timestamp=self.recharge_date,
            kwh_amount=self.kwh_amount,
            total_paid=self.total_paid,
            meter_value_after=self.meter_reading_after,
            token=self.token,
            id=self.id,
            batch_id=self.process_id,
        )

    def __str__(self) -> str:
        return f"Recharge {self.token}: {self.kwh_amount} kWh for {self.total_paid}"


class Setting(BaseModel):
    """Key/value store for business settings such as oven price and lifespan."""

    key = fields.CharField(max_length=100, unique=True)
    value = fields.CharField(max_length=255)

    def __str__(self) -> str:
        return f"{self.key}={self.value}"
