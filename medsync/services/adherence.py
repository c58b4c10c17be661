# medsync/services/adherence.py
"""
Adherence arithmetic over an already-fetched snapshot of dose logs.

Nothing here touches the database or mutates its inputs; callers fetch a
snapshot from the log store and re-run these functions after every write.
"""
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable, NamedTuple

from medsync.utils.timeutils import (
    as_local_date,
    date_range,
    local_today,
    month_bounds,
    to_date_key,
    window_start,
)

TAKEN = "taken"
MISSED = "missed"
PENDING = "pending"
STATUSES = (TAKEN, MISSED, PENDING)

DEFAULT_WINDOW_DAYS = 30
# Upper bound accepted from API callers (about ten years).
MAX_WINDOW_DAYS = 3650


class DoseRecord(NamedTuple):
    date: str
    taken: bool


class LogEntry(NamedTuple):
    medication_id: int
    date: str
    status: str


@dataclass(frozen=True)
class AdherenceSnapshot:
    adherence_rate_percent: int = 0
    current_streak_days: int = 0
    missed_count: int = 0
    has_taken_today: bool = False
    taken_dates: frozenset = field(default_factory=frozenset)

    def as_dict(self) -> dict:
        return {
            "adherence_rate_percent": self.adherence_rate_percent,
            "current_streak_days": self.current_streak_days,
            "missed_count": self.missed_count,
            "has_taken_today": self.has_taken_today,
            "taken_dates": sorted(self.taken_dates),
        }


@dataclass(frozen=True)
class MonthCalendar:
    month: str
    days: dict
    taken_days: int
    missed_days: int
    pending_days: int
    remaining_days: int

    def as_dict(self) -> dict:
        return {
            "month": self.month,
            "days": dict(self.days),
            "taken_days": self.taken_days,
            "missed_days": self.missed_days,
            "pending_days": self.pending_days,
            "remaining_days": self.remaining_days,
        }


def rate_percent(taken: int, expected: int) -> int:
    """round_half_up(100 * taken / expected), 0 for an empty denominator."""
    if expected <= 0:
        return 0
    taken = max(0, min(taken, expected))
    return (200 * taken + expected) // (2 * expected)


def _latest_by_date(records: Iterable) -> dict:
    # Same policy as the store's upsert: a later entry for a date replaces the earlier one.
    by_date = {}
    for rec in records:
        by_date[rec.date] = bool(rec.taken)
    return by_date


def compute_adherence(records, window_days: int = DEFAULT_WINDOW_DAYS, reference_date=None) -> AdherenceSnapshot:
    ref = local_today() if reference_date is None else as_local_date(reference_date)
    by_date = _latest_by_date(records)
    ref_key = to_date_key(ref)

    # The window cannot reach back past date.min; no record is dated earlier anyway.
    walk_days = min(max(window_days, 0), (ref - date.min).days + 1)

    taken_in_window = 0
    if walk_days:
        start_key = to_date_key(ref - timedelta(days=walk_days - 1))
        taken_in_window = sum(1 for key, taken in by_date.items() if taken and start_key <= key <= ref_key)

    streak = 0
    day = ref
    while streak < walk_days and by_date.get(to_date_key(day)):
        streak += 1
        if streak < walk_days:
            day -= timedelta(days=1)

    # Canonical keys sort chronologically, so string comparison is a date comparison.
    missed = sum(1 for key, taken in by_date.items() if not taken and key < ref_key)

    return AdherenceSnapshot(
        adherence_rate_percent=rate_percent(taken_in_window, window_days),
        current_streak_days=streak,
        missed_count=missed,
        has_taken_today=by_date.get(ref_key) is True,
        taken_dates=frozenset(key for key, taken in by_date.items() if taken),
    )


def classify_day(logs_for_day, active_medication_ids, day, today=None) -> str:
    """
    Status of one day for a user on several medications.

    taken   -> every active medication has a `taken` log for the day
    missed  -> otherwise, and the day is strictly before today
    pending -> otherwise (today or later)

    With no active medications nothing is expected, so the day stays pending.
    """
    active = set(active_medication_ids)
    if not active:
        return PENDING

    taken_ids = {entry.medication_id for entry in logs_for_day if entry.status == TAKEN}
    if active <= taken_ids:
        return TAKEN

    day_key = to_date_key(day)
    today_key = to_date_key(local_today() if today is None else today)
    return MISSED if day_key < today_key else PENDING


def _group_by_date(logs) -> dict:
    grouped = {}
    for entry in logs:
        grouped.setdefault(entry.date, []).append(entry)
    return grouped


def daily_status_map(logs, active_medication_ids, start, end, today=None) -> dict:
    today = local_today() if today is None else as_local_date(today)
    grouped = _group_by_date(logs)
    ids = list(active_medication_ids)
    statuses = {}
    for day in date_range(as_local_date(start), as_local_date(end)):
        key = to_date_key(day)
        statuses[key] = classify_day(grouped.get(key, ()), ids, day, today)
    return statuses


def records_from_status_map(status_map: dict) -> list:
    """Day-level records: taken -> True, missed -> False, pending days are left out."""
    return [
        DoseRecord(key, status == TAKEN)
        for key, status in sorted(status_map.items())
        if status != PENDING
    ]


def compute_group_adherence(logs, active_medication_ids, window_days: int = DEFAULT_WINDOW_DAYS,
                            reference_date=None) -> AdherenceSnapshot:
    # A day counts once when all active medications were taken; the denominator is window_days.
    ref = local_today() if reference_date is None else as_local_date(reference_date)
    if window_days <= 0:
        return AdherenceSnapshot()
    status_map = daily_status_map(logs, active_medication_ids, window_start(ref, window_days), ref, today=ref)
    return compute_adherence(records_from_status_map(status_map), window_days, ref)


def statuses_for_date(medication_ids, logs, day, today=None) -> dict:
    """Per-medication status for one day: the stored status, else derived from the clock."""
    day_key = to_date_key(day)
    today_key = to_date_key(local_today() if today is None else today)
    stored = {entry.medication_id: entry.status for entry in logs if entry.date == day_key}
    fallback = MISSED if day_key < today_key else PENDING
    return {mid: stored.get(mid, fallback) for mid in medication_ids}


def month_calendar(logs, active_medication_ids, month_of, today=None) -> MonthCalendar:
    today = local_today() if today is None else as_local_date(today)
    first, last = month_bounds(as_local_date(month_of))
    days = daily_status_map(logs, active_medication_ids, first, last, today)

    if today < first:
        remaining = (last - first).days + 1
    elif today > last:
        remaining = 0
    else:
        remaining = (last - today).days + 1

    counts = {status: 0 for status in STATUSES}
    for status in days.values():
        counts[status] += 1

    return MonthCalendar(
        month=first.strftime("%Y-%m"),
        days=days,
        taken_days=counts[TAKEN],
        missed_days=counts[MISSED],
        pending_days=counts[PENDING],
        remaining_days=remaining,
    )
