# ============================================================
# schedule.py - Calendrier hebdomadaire
# ------------------------------------------------------------
# Clés de créneaux, début de semaine (lundi 00:00 dans le
# fuseau de référence) et occurrences d'un créneau dans la
# semaine courante. Tout ce qui est stocké est en UTC.
# ============================================================
from datetime import datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from courtbook.config import EMAIL_DOMAIN

DAY_INDEX = {
    "Monday": 0, "Tuesday": 1, "Wednesday": 2, "Thursday": 3,
    "Friday": 4, "Saturday": 5, "Sunday": 6,
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: datetime) -> datetime:
    # si naïf, on suppose UTC (stockage)
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def slot_key(day: str, time_label: str) -> str:
    return f"{day}:{time_label}"


def parse_slot_key(key: str):
    day, _, time_label = key.partition(":")
    return day, time_label


def week_start(dt: datetime, tz: ZoneInfo) -> datetime:
    """Monday 00:00 in ``tz`` of the week containing ``dt``, as UTC."""
    local = as_utc(dt).astimezone(tz)
    monday = local.date() - timedelta(days=local.weekday())
    return datetime.combine(monday, time(0), tzinfo=tz).astimezone(timezone.utc)


def occurrence_in_week(day: str, hour: int, now: datetime, tz: ZoneInfo) -> datetime:
    monday = week_start(now, tz).astimezone(tz).date()
    d = monday + timedelta(days=DAY_INDEX[day])
    return datetime.combine(d, time(hour), tzinfo=tz).astimezone(timezone.utc)


def shift_weeks(dt: datetime, weeks: int, tz: ZoneInfo) -> datetime:
    # même heure locale, même si un changement d'heure tombe entre les deux
    local = as_utc(dt).astimezone(tz)
    moved = datetime.combine(local.date() + timedelta(weeks=weeks), local.time(), tzinfo=tz)
    return moved.astimezone(timezone.utc)


def requester_email(requester_id: str, domain: str = EMAIL_DOMAIN) -> str:
    if "@" in requester_id:
        return requester_id
    return f"{requester_id}@{domain}"
