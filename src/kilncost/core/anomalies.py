"""Data-quality checks over the meter and recharge log of a batch.

Every problem found here is reported as a ``Finding``; nothing is corrected
and nothing is raised for bad data. Correcting the records is left to an
operator.
"""

from __future__ import annotations

import enum
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Optional, Sequence
from uuid import UUID

from kilncost.core.calculations import interval_consumptions
from kilncost.core.entities import BatchWindow, MeterReading, RechargeEvent

DEFAULT_NOISE_THRESHOLD = Decimal("100")


class AnomalyKind(str, enum.Enum):
    ORPHANED_RECHARGE = "orphaned_recharge"
    RECHARGE_OUTSIDE_WINDOW = "recharge_outside_window"
    LIKELY_MISSING_RECHARGE = "likely_missing_recharge"
    ZERO_PAYMENT_RECHARGE = "zero_payment_recharge"
    DUPLICATE_TOKEN = "duplicate_token"
    NON_MONOTONIC_READING = "non_monotonic_reading"


@dataclass(frozen=True)
class Finding:
    """A single data-quality issue with enough context to locate the record.

    ``index`` is the position of the reading or recharge in the sequence that
    was checked; ``observed`` and ``compared`` are the two values that
    disagree (timestamps, meter values or amounts depending on ``kind``).
    """

    kind: AnomalyKind
    message: str
    batch_id: Optional[UUID] = None
    index: Optional[int] = None
    record_id: Optional[UUID] = None
    observed: object = None
    compared: object = None
    estimated_kwh: Optional[Decimal] = None


@dataclass
class AnomalyReport:
    batch_id: Optional[UUID] = None
    findings: list[Finding] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.findings)

    def __len__(self) -> int:
        return len(self.findings)

    def of_kind(self, kind: AnomalyKind) -> list[Finding]:
        return [f for f in self.findings if f.kind == kind]


def find_orphaned_recharges(recharges: Sequence[RechargeEvent]) -> list[Finding]:
    """Recharges that were never assigned to a batch."""
    return [
        Finding(
            kind=AnomalyKind.ORPHANED_RECHARGE,
            message=(
                f"Recharge {r.token or r.id} of {r.kwh_amount} kWh on "
                f"{r.timestamp:%Y-%m-%d %H:%M} is not assigned to any batch."
            ),
            index=i,
            record_id=r.id,
            observed=r.timestamp,
            compared=r.kwh_amount,
        )
        for i, r in enumerate(recharges)
        if r.is_orphaned
    ]


def find_duplicate_tokens(recharges: Sequence[RechargeEvent]) -> list[Finding]:
    """One finding per token used by more than one recharge."""
    by_token: dict[str, list[int]] = defaultdict(list)
    for i, recharge in enumerate(recharges):
        if recharge.token:
            by_token[recharge.token].append(i)

    findings = []
    for token, positions in by_token.items():
        if len(positions) < 2:
            continue
        first, *others = positions
        findings.append(
            Finding(
                kind=AnomalyKind.DUPLICATE_TOKEN,
                message=f"Token {token} is recorded {len(positions)} times.",
                batch_id=recharges[first].batch_id,
                index=first,
                record_id=recharges[first].id,
                observed=token,
                compared=[recharges[i].id or i for i in others],
            )
        )
    return findings


def find_recharges_outside_window(
    batch: BatchWindow, recharges: Sequence[RechargeEvent]
) -> list[Finding]:
    findings = []
    for i, recharge in enumerate(recharges):
        if recharge.timestamp < batch.start_time:
            bound, side = batch.start_time, "before the batch start"
        elif batch.end_time is not None and recharge.timestamp > batch.end_time:
            bound, side = batch.end_time, "after the batch end"
        else:
            continue
        findings.append(
            Finding(
                kind=AnomalyKind.RECHARGE_OUTSIDE_WINDOW,
                message=(
                    f"Recharge {recharge.token or i} at "
                    f"{recharge.timestamp:%Y-%m-%d %H:%M} is {side} "
                    f"({bound:%Y-%m-%d %H:%M})."
                ),
                batch_id=batch.id,
                index=i,
                record_id=recharge.id,
                observed=recharge.timestamp,
                compared=bound,
            )
        )
    return findings


def find_zero_payment_recharges(
    recharges: Sequence[RechargeEvent], batch_id: Optional[UUID] = None
) -> list[Finding]:
    return [
        Finding(
            kind=AnomalyKind.ZERO_PAYMENT_RECHARGE,
            message=f"Recharge {r.token or i} added {r.kwh_amount} kWh but paid 0.",
            batch_id=batch_id,
            index=i,
            record_id=r.id,
            observed=r.total_paid,
            compared=r.kwh_amount,
        )
        for i, r in enumerate(recharges)
        if r.total_paid == 0 and r.kwh_amount > 0
    ]


def find_non_monotonic_readings(
    readings: Sequence[MeterReading], batch_id: Optional[UUID] = None
) -> list[Finding]:
    findings = []
    for i in range(1, len(readings)):
        previous, current = readings[i - 1], readings[i]
        if current.timestamp > previous.timestamp:
            continue
        findings.append(
            Finding(
                kind=AnomalyKind.NON_MONOTONIC_READING,
                message=(
                    f"Reading #{i + 1} at {current.timestamp:%Y-%m-%d %H:%M} is not "
                    f"after reading #{i} at {previous.timestamp:%Y-%m-%d %H:%M}."
                ),
                batch_id=batch_id,
                index=i,
                record_id=current.id,
                observed=current.timestamp,
                compared=previous.timestamp,
            )
        )
    return findings


def find_missing_recharges(
    batch: BatchWindow,
    readings: Sequence[MeterReading],
    recharges: Sequence[RechargeEvent],
    noise_threshold: Decimal = DEFAULT_NOISE_THRESHOLD,
) -> list[Finding]:
    """Meter rises above ``noise_threshold`` with no recharge to explain them.

    The estimated magnitude is the observed rise; the true amount cannot be
    known since the kiln may also have consumed energy in the same gap.
    """
    intervals = interval_consumptions(
        readings, recharges, batch.start_time, batch.starting_meter_value
    )
    findings = []
    for i, interval in enumerate(intervals):
        if interval.recharge_count or interval.meter_delta <= noise_threshold:
            continue
        findings.append(
            Finding(
                kind=AnomalyKind.LIKELY_MISSING_RECHARGE,
                message=(
                    f"Meter rose from {interval.opening_value} to "
                    f"{interval.closing_value} kWh between "
                    f"{interval.start:%Y-%m-%d %H:%M} and "
                    f"{interval.end:%Y-%m-%d %H:%M} without a recorded recharge."
                ),
                batch_id=batch.id,
                index=i,
                record_id=readings[i].id,
                observed=interval.closing_value,
                compared=interval.opening_value,
                estimated_kwh=interval.meter_delta,
            )
        )
    return findings


def classify(
    batch: BatchWindow,
    readings: Sequence[MeterReading],
    recharges: Sequence[RechargeEvent],
    all_recharges: Optional[Iterable[RechargeEvent]] = None,
    noise_threshold: Decimal = DEFAULT_NOISE_THRESHOLD,
) -> AnomalyReport:
    """
    Audits the event log of one batch.

    Args:
        batch: The batch being audited.
        readings: Its meter readings, in the order they are stored.
        recharges: Recharges assigned to the batch.
        all_recharges: Every known recharge. When given, orphaned recharges
            are searched across all of them, and the batch's own tokens are
            checked for reuse anywhere else.
        noise_threshold: Smallest unexplained meter rise worth reporting.

    Returns:
        Findings grouped by check: readings order, missing recharges,
        window, zero payment, duplicate tokens, orphans.
    """
    if batch is None:
        raise ValueError("A batch is required for classification.")

    report = AnomalyReport(batch_id=batch.id)
    report.findings.extend(find_non_monotonic_readings(readings, batch.id))
    report.findings.extend(
        find_missing_recharges(batch, readings, recharges, noise_threshold)
    )
    report.findings.extend(find_recharges_outside_window(batch, recharges))
    report.findings.extend(find_zero_payment_recharges(recharges, batch.id))

    if all_recharges is None:
        report.findings.extend(find_duplicate_tokens(recharges))
        report.findings.extend(find_orphaned_recharges(recharges))
    else:
        pool = list(all_recharges)
        # Only duplicates involving this batch's own tokens belong to its report.
        own_tokens = {r.token for r in recharges if r.token}
        report.findings.extend(
            f for f in find_duplicate_tokens(pool) if f.observed in own_tokens
        )
        report.findings.extend(find_orphaned_recharges(pool))
    return report
