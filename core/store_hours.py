"""
Opening hours and menu day-periods.

Opening hours are stored on the company as JSON keyed by lowercase English
weekday (``sunday`` .. ``saturday``). Each day has ``enabled`` plus either a
``periods`` list of ``{"open": "HH:MM", "close": "HH:MM"}`` or the legacy
single ``open``/``close`` pair. A period whose close is earlier than its
open runs past midnight.

All functions take ``now`` in the store's local time.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

# Index 0 is Sunday, matching the stored JSON's week start
DAY_KEYS = ("sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday")
DAY_NAMES_PT = ("Domingo", "Segunda", "Terça", "Quarta", "Quinta", "Sexta", "Sábado")

REASON_MANUAL_CLOSED = "manual_closed"
REASON_DAY_CLOSED = "day_closed"
REASON_OUTSIDE_HOURS = "outside_hours"
REASON_OPEN = "open"


@dataclass
class StoreOpenStatus:
    is_open: bool
    reason: str
    current_day_hours: Optional[Dict[str, Any]] = None
    next_open_time: Optional[str] = None
    current_period: Optional[Dict[str, str]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_open": self.is_open,
            "reason": self.reason,
            "current_day_hours": self.current_day_hours,
            "next_open_time": self.next_open_time,
            "current_period": self.current_period,
        }


def _hhmm(value: Optional[str]) -> str:
    return (value or "")[:5]


def _day_index(now: datetime) -> int:
    # weekday(): Monday=0 .. Sunday=6
    return (now.weekday() + 1) % 7


def is_within(current: str, start: str, end: str) -> bool:
    """``start <= current < end`` on a 24h clock, wrapping midnight."""
    start, end, current = _hhmm(start), _hhmm(end), _hhmm(current)
    if end < start:
        return current >= start or current < end
    return start <= current < end


def day_periods(day_hours: Dict[str, Any]) -> List[Dict[str, str]]:
    periods = day_hours.get("periods")
    if periods:
        return periods
    return [{"open": day_hours.get("open", ""), "close": day_hours.get("close", "")}]


def _next_open_day(opening_hours: Dict[str, Any], today_index: int) -> Optional[str]:
    for offset in range(1, 8):
        index = (today_index + offset) % 7
        hours = opening_hours.get(DAY_KEYS[index])
        if hours and hours.get("enabled"):
            first_open = _hhmm(day_periods(hours)[0].get("open"))
            if offset == 1:
                return f"Abre amanhã às {first_open}"
            return f"Abre {DAY_NAMES_PT[index]} às {first_open}"
    return None


def check_store_open(
    is_manually_open: bool,
    opening_hours: Optional[Dict[str, Any]],
    now: datetime,
) -> StoreOpenStatus:
    """
    Decide whether the store accepts orders right now.

    The manual switch wins; with no hours configured the switch alone
    decides.
    """
    if not is_manually_open:
        return StoreOpenStatus(False, REASON_MANUAL_CLOSED)

    if opening_hours is None:
        return StoreOpenStatus(True, REASON_OPEN)

    today_index = _day_index(now)
    today = opening_hours.get(DAY_KEYS[today_index])

    if not today or not today.get("enabled"):
        return StoreOpenStatus(
            False,
            REASON_DAY_CLOSED,
            current_day_hours=today,
            next_open_time=_next_open_day(opening_hours, today_index),
        )

    current = now.strftime("%H:%M")
    periods = day_periods(today)

    for period in periods:
        if is_within(current, period.get("open"), period.get("close")):
            return StoreOpenStatus(True, REASON_OPEN, current_day_hours=today, current_period=period)

    later_today = sorted(
        _hhmm(p.get("open")) for p in periods if _hhmm(p.get("open")) > current
    )
    if later_today:
        next_open = f"Abre às {later_today[0]}"
    else:
        next_open = _next_open_day(opening_hours, today_index) or "Abre amanhã"

    return StoreOpenStatus(
        False,
        REASON_OUTSIDE_HOURS,
        current_day_hours=today,
        next_open_time=next_open,
    )


def format_today_hours(opening_hours: Optional[Dict[str, Any]], now: datetime) -> Optional[str]:
    if opening_hours is None:
        return None

    today = opening_hours.get(DAY_KEYS[_day_index(now)])
    if not today or not today.get("enabled"):
        return "Fechado hoje"

    periods = day_periods(today)
    if len(periods) == 1:
        return f"{_hhmm(periods[0].get('open'))} - {_hhmm(periods[0].get('close'))}"
    return " | ".join(f"{_hhmm(p.get('open'))}-{_hhmm(p.get('close'))}" for p in periods)


# ═══════════════════════════════════════════════════════════════════════════════
# MENU DAY PERIODS (breakfast / lunch / dinner categories)
# ═══════════════════════════════════════════════════════════════════════════════

def filter_categories_by_day_period(
    category_ids: List[str],
    periods: Iterable[Dict[str, Any]],
    links: Iterable[Dict[str, Any]],
    now: datetime,
) -> List[str]:
    """
    Categories visible at ``now``.

    No periods configured means everything is visible; a category linked
    to no period is always visible; a linked category is visible while
    any of its periods is active and covers ``now``.
    """
    periods = list(periods)
    if not periods:
        return list(category_ids)

    current = now.strftime("%H:%M")
    active_now = {
        p["id"] for p in periods
        if p.get("is_active") and is_within(current, p.get("start_time"), p.get("end_time"))
    }

    linked: Dict[str, List[str]] = {}
    for link in links:
        linked.setdefault(link["category_id"], []).append(link["day_period_id"])

    return [
        category_id for category_id in category_ids
        if category_id not in linked
        or any(period_id in active_now for period_id in linked[category_id])
    ]
