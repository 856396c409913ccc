"""Earnings read-model schemas."""

from __future__ import annotations

from ._strict_base import StrictModel


class MonthlyEarnings(StrictModel):
    business_id: str
    month: str  # YYYY-MM
    gross_cents: int
    platform_fee_cents: int
    net_cents: int
    total_bookings: int
    counted_bookings: int
