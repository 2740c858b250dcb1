"""Service responsible for costing drying batches."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional, Sequence
from uuid import UUID

from tortoise.exceptions import BaseORMException

from kilncost.config import settings
from kilncost.core import anomalies, calculations
from kilncost.core.anomalies import AnomalyReport
from kilncost.core.dates import format_running_hours
from kilncost.core.entities import (
    MeterReading,
    RateSettings,
    RechargeEvent,
    ReconciliationResult,
)
from kilncost.core.exceptions import ConfigurationError
from kilncost.core.models import DryingProcess, ElectricityRecharge
from kilncost.core.repositories.process import ProcessRepository
from kilncost.core.repositories.reading import ReadingRepository
from kilncost.core.repositories.recharge import RechargeRepository
from kilncost.core.repositories.setting import SettingRepository
from kilncost.core.sms import parse_recharge_sms

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

# Keys of the settings table, mapped to RateSettings fields.
REQUIRED_RATE_KEYS = {
    "ovenPurchasePrice": "asset_purchase_price",
    "ovenLifespanYears": "asset_lifespan_years",
}
OPTIONAL_RATE_KEYS = {
    "maintenanceCostPerYear": "annual_maintenance_cost",
    "laborCostPerHour": "labor_per_hour",
}
ELECTRICITY_RATE_KEY = "electricityRate"


class CostingError(Exception):
    """Custom exception for costing errors."""


@dataclass(frozen=True)
class BatchCosting:
    """Cost of one batch together with the issues found in its data."""

    process: DryingProcess
    result: ReconciliationResult
    anomalies: AnomalyReport


@dataclass(frozen=True)
class BatchRecalculation:
    batch_number: str
    old_cost: Decimal
    new_cost: Decimal
    consumption_kwh: Decimal
    running_hours: Decimal
    anomaly_count: int

    @property
    def difference(self) -> Decimal:
        return self.new_cost - self.old_cost

    @property
    def percent_change(self) -> Decimal:
        if self.old_cost <= 0:
            return Decimal("0")
        return self.difference / self.old_cost * 100


@dataclass(frozen=True)
class BatchFailure:
    batch_number: str
    error: str


@dataclass
class RecalculationStats:
    """Outcome of recalculating every completed batch."""

    total_processes: int = 0
    skipped: list[str] = field(default_factory=list)
    details: list[BatchRecalculation] = field(default_factory=list)
    errors: list[BatchFailure] = field(default_factory=list)

    @property
    def processes_updated(self) -> int:
        return len(self.details)

    @property
    def total_old_cost(self) -> Decimal:
        return sum((d.old_cost for d in self.details), Decimal("0"))

    @property
    def total_new_cost(self) -> Decimal:
        return sum((d.new_cost for d in self.details), Decimal("0"))


@dataclass(frozen=True)
class ElectricityStatistics:
    total_paid: Decimal
    total_kwh: Decimal
    average_price_per_kwh: Decimal
    recharge_count: int


def _to_cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _parse_setting(key: str, raw: str) -> Decimal:
    try:
        value = Decimal(raw)
    except InvalidOperation:
        raise ConfigurationError(f"Setting '{key}' is not a number: {raw!r}.") from None
    if not value.is_finite():
        raise ConfigurationError(f"Setting '{key}' is not a finite number: {raw!r}.")
    return value


class CostingService:
    """Orchestrates batch cost calculation, auditing and persistence."""

    def __init__(
        self,
        process_repo: ProcessRepository,
        reading_repo: ReadingRepository,
        recharge_repo: RechargeRepository,
        setting_repo: SettingRepository,
        default_rate: Optional[Decimal] = None,
        noise_threshold: Optional[Decimal] = None,
    ):
        self._process_repo = process_repo
        self._reading_repo = reading_repo
        self._recharge_repo = recharge_repo
        self._setting_repo = setting_repo
        self._default_rate = (
            settings.DEFAULT_ELECTRICITY_RATE if default_rate is None else default_rate
        )
        self._noise_threshold = (
            settings.NOISE_THRESHOLD_KWH if noise_threshold is None else noise_threshold
        )

    async def load_rate_settings(self) -> RateSettings:
        """
        Reads the rate settings from the settings table.

        Oven price and lifespan are required; maintenance and labor default
        to zero. ``electricityRate`` is optional, without it the rate is
        inferred from recharges.

        Raises:
            ConfigurationError: if a required key is missing or a value is not
                a number.
        """
        keys = [*REQUIRED_RATE_KEYS, *OPTIONAL_RATE_KEYS, ELECTRICITY_RATE_KEY]
        values = await self._setting_repo.get_values(keys)

        kwargs: dict[str, Decimal] = {}
        for key, name in REQUIRED_RATE_KEYS.items():
            if key not in values:
                raise ConfigurationError(f"Setting '{key}' is not configured.")
            kwargs[name] = _parse_setting(key, values[key])
        for key, name in OPTIONAL_RATE_KEYS.items():
            kwargs[name] = _parse_setting(key, values.get(key, "0"))

        electricity_rate = None
        if values.get(ELECTRICITY_RATE_KEY):
            electricity_rate = _parse_setting(
                ELECTRICITY_RATE_KEY, values[ELECTRICITY_RATE_KEY]
            )
        return RateSettings(electricity_rate=electricity_rate, **kwargs)

    async def cost_batch(self, process_id: UUID, persist: bool = True) -> BatchCosting:
        """
        Calculates the cost of a batch and stores it as the batch total.

        The rate settings are read once; when no electricity rate is
        configured, the latest paid recharge of any batch sets the rate.

        Raises:
            CostingError: if the batch does not exist.
            ConfigurationError: if the rate settings are unusable.
        """
        process = await self._process_repo.get(pk=process_id)
        if not process:
            raise CostingError(f"Drying process with id {process_id} not found.")

        rate_settings = await self.load_rate_settings()
        all_recharges = await self._all_recharges()
        readings = await self._readings(process)
        costing = self._cost_process(process, readings, rate_settings, all_recharges)

        if persist:
            await self._process_repo.save_total_cost(
                process, _to_cents(costing.result.total_cost)
            )
        return costing

    async def recalculate_completed(self) -> RecalculationStats:
        """
        Recalculates and stores the cost of every completed batch.

        Batches without readings are skipped. A batch whose cost cannot be
        stored is recorded in ``errors`` and the run goes on; configuration
        errors and invariant violations abort the whole run.
        """
        rate_settings = await self.load_rate_settings()
        all_recharges = await self._all_recharges()
        processes = await self._process_repo.get_completed()

        stats = RecalculationStats(total_processes=len(processes))
        logger.info(f"Recalculating costs of {len(processes)} completed batches.")

        for process in processes:
            readings = await self._readings(process)
            if not readings:
                logger.info(f"Skipping {process.batch_number}: no readings.")
                stats.skipped.append(process.batch_number)
                continue

            costing = self._cost_process(
                process, readings, rate_settings, all_recharges
            )

            old_cost = process.total_cost or Decimal("0")
            new_cost = _to_cents(costing.result.total_cost)
            try:
                await self._process_repo.save_total_cost(process, new_cost)
            except BaseORMException as e:
                logger.error(
                    f"Failed to store the cost of {process.batch_number}: {e}",
                    exc_info=True,
                )
                stats.errors.append(BatchFailure(process.batch_number, str(e)))
                continue

            detail = BatchRecalculation(
                batch_number=process.batch_number,
                old_cost=old_cost,
                new_cost=new_cost,
                consumption_kwh=costing.result.total_consumption_kwh,
                running_hours=costing.result.running_hours,
                anomaly_count=len(costing.anomalies),
            )
            stats.details.append(detail)
            logger.info(
                f"{process.batch_number}: {detail.consumption_kwh:.2f} kWh, "
                f"{format_running_hours(detail.running_hours)} -> {new_cost} "
                f"(was {old_cost}, change {detail.percent_change:+.1f}%)"
            )

        logger.info(
            f"Recalculation finished: {stats.processes_updated} updated, "
            f"{len(stats.skipped)} skipped, {len(stats.errors)} failed."
        )
        return stats

    async def audit_batch(self, process_id: UUID) -> AnomalyReport:
        """Returns the data-quality findings of a batch without changing anything."""
        process = await self._process_repo.get(pk=process_id)
        if not process:
            raise CostingError(f"Drying process with id {process_id} not found.")

        recharges = [
            r.as_recharge()
            for r in await self._recharge_repo.get_for_process(process.id)
        ]
        return anomalies.classify(
            process.as_batch(),
            await self._readings(process),
            recharges,
            all_recharges=await self._all_recharges(),
            noise_threshold=self._noise_threshold,
        )

    async def electricity_statistics(self) -> ElectricityStatistics:
        """Totals over every recharge ever recorded."""
        recharges = await self._recharge_repo.all()
        total_paid = sum((r.total_paid for r in recharges), Decimal("0"))
        total_kwh = sum((r.kwh_amount for r in recharges), Decimal("0"))
        average = total_paid / total_kwh if total_kwh > 0 else Decimal("0")
        return ElectricityStatistics(
            total_paid=total_paid,
            total_kwh=total_kwh,
            average_price_per_kwh=average,
            recharge_count=len(recharges),
        )

    async def register_recharge_sms(
        self,
        text: str,
        process_id: Optional[UUID] = None,
        received_at: Optional[datetime] = None,
    ) -> ElectricityRecharge:
        """
        Stores a recharge parsed from the token SMS.

        Raises:
            SmsParseError: if the message cannot be parsed.
            CostingError: if ``process_id`` does not match a batch.
        """
        parsed = parse_recharge_sms(text, received_at=received_at)

        process = None
        if process_id is not None:
            process = await self._process_repo.get(pk=process_id)
            if not process:
                raise CostingError(f"Drying process with id {process_id} not found.")

        recharge = await self._recharge_repo.create(
            recharge_date=parsed.recharged_at,
            token=parsed.token,
            kwh_amount=parsed.kwh_amount,
            total_paid=parsed.total_paid,
            base_cost=parsed.base_cost,
            vat=parsed.vat,
            ewura_fee=parsed.ewura_fee,
            rea_fee=parsed.rea_fee,
            debt_collected=parsed.debt_collected,
            notes="Parsed from SMS",
            process=process,
        )
        logger.info(f"Registered recharge {recharge.token} ({recharge.kwh_amount} kWh).")
        return recharge

    async def _all_recharges(self) -> list[RechargeEvent]:
        return [r.as_recharge() for r in await self._recharge_repo.all_ordered()]

    async def _readings(self, process: DryingProcess) -> list[MeterReading]:
        return [
            r.as_reading() for r in await self._reading_repo.get_for_process(process.id)
        ]

    def _cost_process(
        self,
        process: DryingProcess,
        readings: Sequence[MeterReading],
        rate_settings: RateSettings,
        all_recharges: Sequence[RechargeEvent],
    ) -> BatchCosting:
        """Costs and audits a single batch from already resolved settings."""
        batch = process.as_batch()
        recharges = [r for r in all_recharges if r.batch_id == process.id]

        result = calculations.cost_batch(
            batch,
            readings,
            recharges,
            rate_settings,
            self._default_rate,
            rate_recharges=all_recharges,
        )
        report = anomalies.classify(
            batch, readings, recharges, noise_threshold=self._noise_threshold
        )
        if report:
            logger.warning(
                f"{process.batch_number} has {len(report)} data issue(s); "
                f"cost is a best-effort figure."
            )
        return BatchCosting(process=process, result=result, anomalies=report)
