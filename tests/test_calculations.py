"""Tests for core consumption and cost calculation functions."""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from kilncost.core.calculations import (
    calculate_cost,
    cost_batch,
    derive_hourly_rates,
    interval_consumptions,
    reconcile_consumption,
    resolve_electricity_rate,
    running_hours,
)
from kilncost.core.dates import hours_between
from kilncost.core.entities import (
    BatchWindow,
    ElectricityRate,
    HourlyRates,
    MeterReading,
    RateSettings,
    RateSource,
    RechargeEvent,
)
from kilncost.core.exceptions import ConfigurationError, InvariantViolation

T0 = datetime(2024, 3, 1, 8, 0)


def at(hours: float) -> datetime:
    return T0 + timedelta(hours=hours)


def reading(hours: float, value: str) -> MeterReading:
    return MeterReading(timestamp=at(hours), meter_value=Decimal(value))


def recharge(hours: float, kwh: str, paid: str = "0") -> RechargeEvent:
    return RechargeEvent(
        timestamp=at(hours), kwh_amount=Decimal(kwh), total_paid=Decimal(paid)
    )


def rate_settings(**overrides) -> RateSettings:
    values = dict(
        asset_purchase_price=Decimal("52560000"),
        asset_lifespan_years=Decimal("10"),
        annual_maintenance_cost=Decimal("876000"),
        labor_per_hour=Decimal("50"),
        electricity_rate=Decimal("356.25"),
    )
    values.update(overrides)
    return RateSettings(**values)


def test_simple_draw_down():
    readings = [reading(1, "450"), reading(2, "400")]
    assert reconcile_consumption(readings, [], T0, Decimal("500")) == Decimal("100")


def test_recharge_between_readings():
    readings = [reading(1, "1800")]
    recharges = [recharge(0.5, "2000")]
    assert reconcile_consumption(readings, recharges, T0, Decimal("100")) == Decimal(
        "300"
    )


def test_unrecorded_recharge_jump_is_ignored():
    readings = [reading(1, "50"), reading(2, "2000")]
    assert reconcile_consumption(readings, [], T0) == Decimal("0")


def test_empty_readings_give_zero():
    assert reconcile_consumption([], [recharge(1, "100")], T0, Decimal("10")) == 0
    assert interval_consumptions([], [], T0) == ()


def test_no_recharge_strictly_decreasing_equals_total_drop():
    readings = [reading(h, v) for h, v in [(1, "980.5"), (5, "900"), (9, "712.25")]]
    assert reconcile_consumption(readings, [], T0, Decimal("1000")) == Decimal(
        "287.75"
    )


def test_first_reading_used_when_starting_value_missing():
    readings = [reading(1, "900"), reading(2, "850")]
    assert reconcile_consumption(readings, [], T0) == Decimal("50")


@pytest.mark.parametrize(
    "before, recharged, after, expected",
    [
        ("100", "2000", "1800", "300"),
        ("0", "500", "500", "0"),
        ("100", "50", "300", "0"),
        ("12.5", "100", "80", "32.5"),
    ],
)
def test_recharge_identity(before, recharged, after, expected):
    readings = [reading(2, after)]
    recharges = [recharge(1, recharged)]
    total = reconcile_consumption(readings, recharges, T0, Decimal(before))
    assert total == Decimal(expected)
    assert total >= 0


def test_multiple_recharges_in_one_interval_are_summed():
    readings = [reading(3, "2500")]
    recharges = [recharge(1, "1000"), recharge(2, "1500")]
    intervals = interval_consumptions(readings, recharges, T0, Decimal("200"))
    assert intervals[0].recharge_count == 2
    assert intervals[0].recharged_kwh == Decimal("2500")
    assert intervals[0].consumed_kwh == Decimal("200")


def test_recharge_boundaries_are_half_open():
    readings = [reading(1, "90"), reading(2, "1080")]
    # At the batch start: outside the first interval.
    # At the second reading: inside the second interval.
    recharges = [recharge(0, "500"), recharge(2, "1000")]
    intervals = interval_consumptions(readings, recharges, T0, Decimal("100"))

    assert intervals[0].recharge_count == 0
    assert intervals[0].consumed_kwh == Decimal("10")
    assert intervals[1].recharge_count == 1
    assert intervals[1].consumed_kwh == Decimal("10")


def test_recharge_exactly_at_previous_reading_is_not_counted_twice():
    readings = [reading(1, "600"), reading(2, "550")]
    recharges = [recharge(1, "500")]
    intervals = interval_consumptions(readings, recharges, T0, Decimal("150"))
    assert [i.recharge_count for i in intervals] == [1, 0]
    assert sum(i.consumed_kwh for i in intervals) == Decimal("100")


def test_reconciliation_is_idempotent_and_leaves_inputs_untouched():
    readings = (reading(1, "450"), reading(2, "1400"), reading(3, "1300"))
    recharges = (recharge(1.5, "1000"),)
    first = reconcile_consumption(readings, recharges, T0, Decimal("500"))
    second = reconcile_consumption(readings, recharges, T0, Decimal("500"))
    assert first == second == Decimal("200")
    assert readings[1].meter_value == Decimal("1400")


def test_running_hours_use_last_reading_not_end_time():
    readings = [reading(4, "90"), reading(10, "80")]
    end_time = at(13)

    hours = running_hours(T0, readings)

    assert hours == Decimal("10")
    assert hours < hours_between(T0, end_time)


def test_running_hours_floor_and_empty():
    assert running_hours(T0, []) == 0
    assert running_hours(T0, [reading(-2, "10")]) == 0


def test_derive_hourly_rates():
    rates = derive_hourly_rates(rate_settings())
    assert rates == HourlyRates(
        depreciation=Decimal("600"), maintenance=Decimal("100"), labor=Decimal("50")
    )


@pytest.mark.parametrize("lifespan", ["0", "-1"])
def test_derive_hourly_rates_rejects_bad_lifespan(lifespan):
    with pytest.raises(ConfigurationError):
        derive_hourly_rates(rate_settings(asset_lifespan_years=Decimal(lifespan)))


@pytest.mark.parametrize(
    "field", ["asset_lifespan_years", "asset_purchase_price", "labor_per_hour"]
)
@pytest.mark.parametrize("value", ["NaN", "sNaN", "Infinity"])
def test_derive_hourly_rates_rejects_non_finite_values(field, value):
    with pytest.raises(ConfigurationError):
        derive_hourly_rates(rate_settings(**{field: Decimal(value)}))


@pytest.mark.parametrize("value", ["NaN", "Infinity"])
def test_non_finite_rates_are_rejected(value):
    with pytest.raises(ConfigurationError):
        resolve_electricity_rate(
            rate_settings(electricity_rate=Decimal(value)), [], Decimal("292")
        )
    with pytest.raises(ConfigurationError):
        resolve_electricity_rate(
            rate_settings(electricity_rate=None), [], Decimal(value)
        )


def test_infinite_rate_never_reaches_cost():
    batch = BatchWindow(start_time=T0, starting_meter_value=Decimal("100"))
    with pytest.raises(ConfigurationError):
        cost_batch(
            batch,
            [reading(2, "50")],
            [],
            rate_settings(electricity_rate=Decimal("Infinity")),
            Decimal("292"),
        )


def test_derive_hourly_rates_rejects_negative_labor():
    with pytest.raises(ConfigurationError):
        derive_hourly_rates(rate_settings(labor_per_hour=Decimal("-5")))


def test_cost_breakdown():
    hourly = HourlyRates(
        depreciation=Decimal("0.685"), maintenance=Decimal("1.5"), labor=Decimal("2")
    )
    rate = ElectricityRate(Decimal("356.25"), RateSource.SETTINGS)

    result = calculate_cost(Decimal("300"), Decimal("240"), rate, hourly)

    assert result.electricity_cost == Decimal("106875")
    assert result.depreciation_cost == Decimal("164.4")
    assert result.maintenance_cost == Decimal("360")
    assert result.labor_cost == Decimal("480")
    assert result.total_cost == Decimal("107879.4")


def test_more_running_hours_never_lower_cost():
    hourly = derive_hourly_rates(rate_settings())
    rate = ElectricityRate(Decimal("300"), RateSource.DEFAULT)
    shorter = calculate_cost(Decimal("50"), Decimal("10"), rate, hourly)
    longer = calculate_cost(Decimal("50"), Decimal("20"), rate, hourly)
    assert longer.total_cost >= shorter.total_cost


def test_negative_consumption_is_an_invariant_violation():
    hourly = derive_hourly_rates(rate_settings())
    rate = ElectricityRate(Decimal("300"), RateSource.DEFAULT)
    with pytest.raises(InvariantViolation):
        calculate_cost(Decimal("-1"), Decimal("10"), rate, hourly)


def test_rate_from_settings():
    rate = resolve_electricity_rate(rate_settings(), [recharge(1, "10", "5000")], Decimal("292"))
    assert rate == ElectricityRate(Decimal("356.25"), RateSource.SETTINGS)


def test_rate_inferred_from_latest_paid_recharge():
    recharges = [
        recharge(1, "1000", "300000"),
        recharge(2, "2000", "712500"),
        recharge(3, "500", "0"),
    ]
    rate = resolve_electricity_rate(
        rate_settings(electricity_rate=None), recharges, Decimal("292")
    )
    assert rate == ElectricityRate(Decimal("356.25"), RateSource.LAST_RECHARGE)


def test_rate_falls_back_to_default():
    rate = resolve_electricity_rate(
        rate_settings(electricity_rate=None), [recharge(1, "100")], Decimal("292")
    )
    assert rate == ElectricityRate(Decimal("292"), RateSource.DEFAULT)


def test_rate_inference_from_zero_kwh_recharge_fails():
    with pytest.raises(ConfigurationError):
        resolve_electricity_rate(
            rate_settings(electricity_rate=None),
            [recharge(1, "0", "1000")],
            Decimal("292"),
        )


def test_non_positive_configured_rate_fails():
    with pytest.raises(ConfigurationError):
        resolve_electricity_rate(
            rate_settings(electricity_rate=Decimal("0")), [], Decimal("292")
        )


def test_cost_batch_end_to_end():
    batch = BatchWindow(
        start_time=T0, end_time=at(13), starting_meter_value=Decimal("100")
    )
    readings = [reading(2, "1800"), reading(10, "1700")]
    recharges = [recharge(1, "2000", "712500")]

    result = cost_batch(batch, readings, recharges, rate_settings(), Decimal("292"))

    assert result.total_consumption_kwh == Decimal("400")
    assert result.running_hours == Decimal("10")
    assert result.electricity_cost == Decimal("142500")
    assert result.total_cost == Decimal("150000")
    assert result.electricity_rate.source == RateSource.SETTINGS


def test_cost_per_piece():
    batch = BatchWindow(start_time=T0, starting_meter_value=Decimal("500"))
    result = cost_batch(
        batch, [reading(10, "400")], [], rate_settings(), Decimal("292")
    )
    per_piece = result.cost_per_piece(100)
    assert per_piece.total == result.total_cost / 100
    assert per_piece.kwh == Decimal("1")
    assert per_piece.hours == Decimal("0.1")

    with pytest.raises(ValueError):
        result.cost_per_piece(0)
