"""
utils.py
Dates, money, ranking and CSV export helpers shared by the core modules.
"""

from __future__ import annotations

import csv
from datetime import date, timedelta
from typing import Iterable, Sequence, TypeVar

import pandas as pd

from models import TOP_N, DateRange

K = TypeVar("K")


def parse_iso(d: str) -> date:
    return date.fromisoformat(d[:10])


def add_months(start: date, months: int) -> date:
    """
    Add months while keeping day in valid range (e.g., Jan 31 + 1 month => Feb 28/29).
    """
    y = start.year + (start.month - 1 + months) // 12
    m = (start.month - 1 + months) % 12 + 1
    # last day of target month
    if m == 12:
        next_month = date(y + 1, 1, 1)
    else:
        next_month = date(y, m + 1, 1)
    last_day = next_month - timedelta(days=1)
    day = min(start.day, last_day.day)
    return date(y, m, day)


def calc_expiration_date(start_date_iso: str, duration_months: int) -> str | None:
    if duration_months <= 0:
        return None
    return add_months(parse_iso(start_date_iso), duration_months).isoformat()


def month_bounds(day: date) -> DateRange:
    first = day.replace(day=1)
    last = add_months(first, 1) - timedelta(days=1)
    return DateRange(first.isoformat(), last.isoformat())


def age_in_months(birth_date_iso: str, today: date | None = None) -> int:
    today = today or date.today()
    born = parse_iso(birth_date_iso)
    months = (today.year - born.year) * 12 + (today.month - born.month)
    if today.day < born.day:
        months -= 1
    return max(0, months)


def format_age(birth_date_iso: str | None, today: date | None = None) -> str:
    if not birth_date_iso:
        return "N/D"
    months = age_in_months(birth_date_iso, today)
    years = months // 12
    if years > 0:
        return f"{years} {'anno' if years == 1 else 'anni'}"
    months = months % 12
    return f"{months} {'mese' if months == 1 else 'mesi'}"


def round_money(value: float) -> float:
    # + 0.0 turns -0.0 into 0.0
    return round(float(value), 2) + 0.0


def format_eur(value: float) -> str:
    return f"€{float(value):.2f}"


def fuel_cost(distance_km: float, cost_per_km: float) -> float:
    # distance is one way, the trip is always a round trip
    return round_money(distance_km * 2 * cost_per_km)


def in_range(iso: str | None, date_range: DateRange | None) -> bool:
    if date_range is None:
        return True
    return date_range.contains(iso)


def top_n(pairs: Iterable[tuple[K, float]], n: int = TOP_N) -> list[tuple[K, float]]:
    """
    Highest values first. sorted() is stable with reverse=True, so ties keep
    their order of first appearance.
    """
    return sorted(pairs, key=lambda kv: kv[1], reverse=True)[:n]


def rows_to_csv_bytes(headers: Sequence[str], rows: Sequence[dict], sep: str = ",") -> bytes:
    """
    Every cell is stringified and quoted; embedded quotes are doubled.
    """
    df = pd.DataFrame([[_cell(r.get(h)) for h in headers] for r in rows], columns=list(headers))
    return df.to_csv(index=False, sep=sep, quoting=csv.QUOTE_ALL).encode("utf-8")


def _cell(value) -> str:
    if value is None:
        return ""
    if isinstance(value, float):
        return f"{value:.2f}"
    return str(value)
