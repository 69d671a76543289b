"""Date manipulation utilities"""

from datetime import date, timedelta
from typing import List


def shift_days(from_date: date, days: int) -> date:
    """Calendar-day offset (no business-day or month-end adjustment)"""
    return from_date + timedelta(days=days)


def generate_charge_dates(deal_date: date, count: int, interval_days: int) -> List[date]:
    """Charge dates for payments 1..count, payment 1 falling on the deal date"""
    return [shift_days(deal_date, i * interval_days) for i in range(count)]
