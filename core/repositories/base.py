"""Shared helpers for the DuckDB repository mixins."""
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from core.models import parse_datetime


def to_utc_naive(value: Any) -> Optional[datetime]:
    """Backend timestamp (ISO string or datetime) -> naive UTC for storage."""
    moment = parse_datetime(value)
    if moment is None:
        return None
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment


def from_utc_naive(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or not isinstance(value, datetime):
        return value
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def dedupe(rows: Iterable[Dict[str, Any]], *keys: str) -> List[Dict[str, Any]]:
    """Last row wins per key; one transaction must not replace the same key twice."""
    unique: Dict[tuple, Dict[str, Any]] = {}
    for row in rows:
        unique[tuple(row.get(k) for k in keys)] = row
    return list(unique.values())


def placeholders(values: List[Any]) -> str:
    return ", ".join("?" for _ in values)
