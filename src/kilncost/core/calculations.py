"""Core business logic for consumption and cost calculations."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from functools import reduce
from typing import Callable, Optional, Sequence

from kilncost.core.dates import HOURS_PER_YEAR, hours_between
from kilncost.core.entities import (
    ZERO,
    BatchWindow,
    ElectricityRate,
    HourlyRates,
    IntervalConsumption,
    MeterReading,
    RateSettings,
    RateSource,
    RechargeEvent,
    ReconciliationResult,
)
from kilncost.core.exceptions import ConfigurationError, InvariantViolation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _FoldState:
    total: Decimal
    previous_value: Decimal
    previous_time: datetime
    intervals: tuple[IntervalConsumption, ...]


def recharges_between(
    recharges: Sequence[RechargeEvent], after: datetime, until: datetime
) -> list[RechargeEvent]:
    """Returns recharges applied in the half-open span ``(after, until]``."""
    return [r for r in recharges if after < r.timestamp <= until]


def _consume_interval(
    recharges: Sequence[RechargeEvent],
) -> Callable[[_FoldState, MeterReading], _FoldState]:
    def step(state: _FoldState, reading: MeterReading) -> _FoldState:
        matched = recharges_between(recharges, state.previous_time, reading.timestamp)
        recharged = sum((r.kwh_amount for r in matched), ZERO)

        if matched:
            # balance_before + recharged - balance_after holds whether or not
            # the meter ran empty before the top-up.
            consumed = max(ZERO, state.previous_value + recharged - reading.meter_value)
        else:
            delta = state.previous_value - reading.meter_value
            # An unexplained rise is left to the anomaly classifier.
            consumed = delta if delta > 0 else ZERO

        interval = IntervalConsumption(
            start=state.previous_time,
            end=reading.timestamp,
            opening_value=state.previous_value,
            closing_value=reading.meter_value,
            recharged_kwh=recharged,
            recharge_count=len(matched),
            consumed_kwh=consumed,
        )
        return _FoldState(
            total=state.total + consumed,
            previous_value=reading.meter_value,
            previous_time=reading.timestamp,
            intervals=state.intervals + (interval,),
        )

    return step


def _fold(
    readings: Sequence[MeterReading],
    recharges: Sequence[RechargeEvent],
    start_time: datetime,
    starting_meter_value: Optional[Decimal],
) -> _FoldState:
    if not readings:
        return _FoldState(
            total=ZERO, previous_value=ZERO, previous_time=start_time, intervals=()
        )

    opening = (
        starting_meter_value
        if starting_meter_value is not None
        else readings[0].meter_value
    )
    initial = _FoldState(
        total=ZERO, previous_value=opening, previous_time=start_time, intervals=()
    )
    return reduce(_consume_interval(recharges), readings, initial)


def interval_consumptions(
    readings: Sequence[MeterReading],
    recharges: Sequence[RechargeEvent],
    start_time: datetime,
    starting_meter_value: Optional[Decimal] = None,
) -> tuple[IntervalConsumption, ...]:
    """
    Walks the readings of a batch and attributes consumption to each interval.

    The first interval opens at ``start_time`` with ``starting_meter_value``
    (or the first reading's value when the batch has none). Readings must be
    sorted by timestamp; inputs are never modified.

    Returns:
        One ``IntervalConsumption`` per reading, in reading order.
    """
    return _fold(readings, recharges, start_time, starting_meter_value).intervals


def reconcile_consumption(
    readings: Sequence[MeterReading],
    recharges: Sequence[RechargeEvent],
    start_time: datetime,
    starting_meter_value: Optional[Decimal] = None,
) -> Decimal:
    """
    Calculates the true consumption of a batch from a prepaid meter log.

    Args:
        readings: Meter readings of the batch, ascending by timestamp.
        recharges: Recharges that may fall between the readings.
        start_time: Start of the batch, opening the first interval.
        starting_meter_value: Balance at ``start_time``, if recorded.

    Returns:
        Total consumption in kWh, never negative. Returns 0 without readings.
    """
    return _fold(readings, recharges, start_time, starting_meter_value).total


def running_hours(start_time: datetime, readings: Sequence[MeterReading]) -> Decimal:
    """
    Hours of measured activity: from batch start to the last reading.

    The administrative end of a batch is ignored on purpose, it usually lags
    the last measurement. Without readings there is no measured activity.
    """
    if not readings:
        return ZERO
    return hours_between(start_time, readings[-1].timestamp)


def derive_hourly_rates(settings: RateSettings) -> HourlyRates:
    """Converts annual asset figures into per-hour depreciation and maintenance."""
    for name in (
        "asset_lifespan_years",
        "asset_purchase_price",
        "annual_maintenance_cost",
        "labor_per_hour",
    ):
        value = getattr(settings, name)
        if not value.is_finite():
            raise ConfigurationError(f"{name} must be a finite number, got {value}.")
        if value < 0:
            raise ConfigurationError(f"{name} must not be negative, got {value}.")
    if settings.asset_lifespan_years == 0:
        raise ConfigurationError("Asset lifespan must be positive, got 0.")

    annual_depreciation = settings.asset_purchase_price / settings.asset_lifespan_years
    return HourlyRates(
        depreciation=annual_depreciation / HOURS_PER_YEAR,
        maintenance=settings.annual_maintenance_cost / HOURS_PER_YEAR,
        labor=settings.labor_per_hour,
    )


def latest_paid_recharge(
    recharges: Sequence[RechargeEvent],
) -> Optional[RechargeEvent]:
    """The most recent recharge that carries an actual payment."""
    paid = [r for r in recharges if r.total_paid > 0]
    if not paid:
        return None
    return max(paid, key=lambda r: r.timestamp)


def resolve_electricity_rate(
    settings: RateSettings,
    recharges: Sequence[RechargeEvent],
    default_rate: Decimal,
) -> ElectricityRate:
    """
    Picks the electricity rate: configured, else implied by the latest paid
    recharge, else ``default_rate``.

    Raises:
        ConfigurationError: if the chosen rate is not a positive finite number,
            or the latest paid recharge has no kWh to divide by.
    """
    if settings.electricity_rate is not None:
        _check_rate(settings.electricity_rate, "Electricity rate")
        return ElectricityRate(settings.electricity_rate, RateSource.SETTINGS)

    recharge = latest_paid_recharge(recharges)
    if recharge is not None:
        if recharge.kwh_amount <= 0:
            raise ConfigurationError(
                f"Cannot infer electricity rate from recharge {recharge.token or recharge.id}"
                f" with {recharge.kwh_amount} kWh."
            )
        return ElectricityRate(
            recharge.total_paid / recharge.kwh_amount, RateSource.LAST_RECHARGE
        )

    _check_rate(default_rate, "Default electricity rate")
    return ElectricityRate(default_rate, RateSource.DEFAULT)


def _check_rate(value: Decimal, name: str) -> None:
    if not value.is_finite() or value <= 0:
        raise ConfigurationError(f"{name} must be positive and finite, got {value}.")


def calculate_cost(
    total_consumption_kwh: Decimal,
    running_hours: Decimal,
    electricity_rate: ElectricityRate,
    hourly_rates: HourlyRates,
) -> ReconciliationResult:
    """
    Accrues electricity and time-based costs for a batch.

    Raises:
        InvariantViolation: if consumption or running hours are negative.
    """
    if total_consumption_kwh < 0 or running_hours < 0:
        logger.error(
            f"Negative input reached cost accrual: consumption={total_consumption_kwh} kWh, "
            f"running_hours={running_hours}, rate={electricity_rate}, "
            f"hourly_rates={hourly_rates}"
        )
        raise InvariantViolation(
            f"Cost accrual received consumption {total_consumption_kwh} kWh "
            f"and {running_hours} running hours; both must be non-negative."
        )

    return ReconciliationResult(
        total_consumption_kwh=total_consumption_kwh,
        running_hours=running_hours,
        electricity_rate=electricity_rate,
        electricity_cost=total_consumption_kwh * electricity_rate.value,
        depreciation_cost=running_hours * hourly_rates.depreciation,
        maintenance_cost=running_hours * hourly_rates.maintenance,
        labor_cost=running_hours * hourly_rates.labor,
    )


def cost_batch(
    batch: BatchWindow,
    readings: Sequence[MeterReading],
    recharges: Sequence[RechargeEvent],
    settings: RateSettings,
    default_rate: Decimal,
    rate_recharges: Optional[Sequence[RechargeEvent]] = None,
) -> ReconciliationResult:
    """
    Reconciles consumption of a batch and prices it.

    Args:
        batch: The batch boundaries and starting balance.
        readings: Meter readings of the batch, ascending by timestamp.
        recharges: Recharges of the batch.
        settings: Rate settings resolved by the caller.
        default_rate: Electricity rate used when nothing better is known.
        rate_recharges: Recharges to infer the electricity rate from,
            defaults to ``recharges``.
    """
    consumption = reconcile_consumption(
        readings, recharges, batch.start_time, batch.starting_meter_value
    )
    if consumption < 0:
        logger.error(
            f"Reconciled consumption is negative for batch {batch.label or batch.id}: "
            f"{consumption} kWh from readings={readings!r} recharges={recharges!r}"
        )
        raise InvariantViolation(
            f"Reconciled consumption {consumption} kWh is negative."
        )

    rate = resolve_electricity_rate(
        settings,
        recharges if rate_recharges is None else rate_recharges,
        default_rate,
    )
    return calculate_cost(
        total_consumption_kwh=consumption,
        running_hours=running_hours(batch.start_time, readings),
        electricity_rate=rate,
        hourly_rates=derive_hourly_rates(settings),
    )
