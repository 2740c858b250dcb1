"""Parser for the prepaid electricity token SMS sent after a recharge.

A typical message looks like::

    TOKEN 5375 8923 5938 7140 3552 1399.3KWH Cost 408606.56 VAT 18% 73549.18
    EWURA 1% 4086.07 REA 3% 12258.19 Debt Collected 1500.00 TOTAL TZS 500000.00
    2025-10-03 18:08
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from dateutil import parser as date_parser

TOKEN_RE = re.compile(r"TOKEN\s+([\d\s]+?)\s*(?=[\d.]+KWH)")
KWH_RE = re.compile(r"([\d.]+)KWH")
COST_RE = re.compile(r"Cost\s+([\d.]+)")
VAT_RE = re.compile(r"VAT\s+\d+%\s+([\d.]+)")
EWURA_RE = re.compile(r"EWURA\s+\d+%\s+([\d.]+)")
REA_RE = re.compile(r"REA\s+\d+%\s+([\d.]+)")
DEBT_RE = re.compile(r"Debt Collected\s+([\d.]+)")
TOTAL_RE = re.compile(r"TOTAL\s+TZS\s+([\d.]+)")
DATE_RE = re.compile(r"(\d{4}-\d{2}-\d{2}\s+\d{2}:\d{2})")


class SmsParseError(ValueError):
    """Raised when a message lacks the token, kWh amount or total."""


@dataclass(frozen=True)
class ParsedRecharge:
    token: str
    kwh_amount: Decimal
    total_paid: Decimal
    recharged_at: datetime
    base_cost: Optional[Decimal] = None
    vat: Optional[Decimal] = None
    ewura_fee: Optional[Decimal] = None
    rea_fee: Optional[Decimal] = None
    debt_collected: Optional[Decimal] = None


def _amount(pattern: re.Pattern, text: str) -> Optional[Decimal]:
    match = pattern.search(text)
    return Decimal(match.group(1)) if match else None


def parse_recharge_sms(
    text: str, received_at: Optional[datetime] = None
) -> ParsedRecharge:
    """
    Extracts a recharge from the token SMS.

    Args:
        text: The raw message.
        received_at: Used as the recharge time when the message has no
            timestamp of its own. Defaults to now.

    Raises:
        SmsParseError: if the token, kWh amount or total is missing.
    """
    token_match = TOKEN_RE.search(text)
    kwh = _amount(KWH_RE, text)
    total = _amount(TOTAL_RE, text)
    if not token_match or kwh is None or total is None:
        raise SmsParseError("Invalid SMS format. Could not parse required fields.")

    date_match = DATE_RE.search(text)
    if date_match:
        recharged_at = date_parser.parse(date_match.group(1), yearfirst=True)
    else:
        recharged_at = received_at or datetime.now()

    return ParsedRecharge(
        token=re.sub(r"\s+", "", token_match.group(1)),
        kwh_amount=kwh,
        total_paid=total,
        recharged_at=recharged_at,
        base_cost=_amount(COST_RE, text),
        vat=_amount(VAT_RE, text),
        ewura_fee=_amount(EWURA_RE, text),
        rea_fee=_amount(REA_RE, text),
        debt_collected=_amount(DEBT_RE, text),
    )
