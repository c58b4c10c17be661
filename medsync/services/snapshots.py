# medsync/services/snapshots.py
"""
Fetch a full snapshot from the log store and run the adherence calculator on it.

Every snapshot is stamped with a per-user sequence number so a consumer can
drop a response that finished after a newer one was requested.
"""
import logging
import threading
from datetime import date

from flask import current_app
from sqlalchemy import select, update

from medsync import db
from medsync.errors import StaleSnapshot
from medsync.models import User
from medsync.services import log_store
from medsync.services.adherence import (
    DEFAULT_WINDOW_DAYS,
    classify_day,
    compute_adherence,
    compute_group_adherence,
    month_calendar,
    statuses_for_date,
    DoseRecord,
    TAKEN,
)
from medsync.signals import dose_logged, medications_changed
from medsync.utils.timeutils import local_today, month_bounds, to_date_key, window_start

logger = logging.getLogger(__name__)


class RequestSequencer:
    """Monotonic sequence numbers per key; only the latest issued number is current."""

    def __init__(self):
        self._lock = threading.Lock()
        self._latest = {}

    def issue(self, key) -> int:
        with self._lock:
            seq = self._latest.get(key, 0) + 1
            self._latest[key] = seq
            return seq

    def latest(self, key) -> int:
        with self._lock:
            return self._latest.get(key, 0)

    def is_latest(self, key, seq: int) -> bool:
        return seq == self.latest(key)

    def check(self, key, seq: int) -> None:
        latest = self.latest(key)
        if seq != latest:
            raise StaleSnapshot(key, seq, latest)


class StoredSequencer(RequestSequencer):
    """
    Sequence numbers kept on the user row, so every worker process draws from
    the same per-user counter. The UPDATE holds the row lock until commit.
    """

    def issue(self, key) -> int:
        db.session.execute(
            update(User)
            .where(User.id == key)
            .values(snapshot_seq=User.snapshot_seq + 1)
            .execution_options(synchronize_session=False)
        )
        seq = db.session.execute(select(User.snapshot_seq).where(User.id == key)).scalar_one()
        db.session.commit()
        return seq

    def latest(self, key) -> int:
        seq = db.session.execute(select(User.snapshot_seq).where(User.id == key)).scalar_one_or_none()
        return seq or 0


sequencer = StoredSequencer()


def default_window_days() -> int:
    return int(current_app.config.get("ADHERENCE_WINDOW_DAYS", DEFAULT_WINDOW_DAYS))


def build_dashboard(user_id: int, today: date | None = None, window_days: int | None = None) -> dict:
    """Multi-medication snapshot: rate/streak/missed over the window plus today's per-medication status."""
    today = today or local_today()
    window_days = window_days or default_window_days()
    meds = log_store.list_medications(user_id)
    active_ids = [m.id for m in meds]
    today_key = to_date_key(today)

    logs = log_store.list_logs(user_id, to_date_key(window_start(today, window_days)), today_key)
    snapshot = compute_group_adherence(logs, active_ids, window_days, today)
    todays_logs = [entry for entry in logs if entry.date == today_key]
    per_med = statuses_for_date(active_ids, todays_logs, today, today)

    return {
        **snapshot.as_dict(),
        "window_days": window_days,
        "date": today_key,
        "today_status": classify_day(todays_logs, active_ids, today, today),
        "medications": [dict(m.to_dict(), status=per_med[m.id]) for m in meds],
    }


def build_day_detail(user_id: int, day: date, today: date | None = None) -> dict:
    today = today or local_today()
    key = to_date_key(day)
    meds = log_store.list_medications(user_id)
    active_ids = [m.id for m in meds]
    logs = log_store.list_logs(user_id, key, key)
    per_med = statuses_for_date(active_ids, logs, day, today)
    return {
        "date": key,
        "is_today": key == to_date_key(today),
        "status": classify_day(logs, active_ids, day, today),
        "medications": [dict(m.to_dict(), status=per_med[m.id]) for m in meds],
    }


def build_calendar(user_id: int, month_of: date, today: date | None = None) -> dict:
    today = today or local_today()
    first, last = month_bounds(month_of)
    active_ids = [m.id for m in log_store.list_medications(user_id)]
    logs = log_store.list_logs(user_id, to_date_key(first), to_date_key(last))
    return month_calendar(logs, active_ids, first, today).as_dict()


def build_medication_snapshot(user_id: int, medication_id: int, today: date | None = None,
                              window_days: int | None = None) -> dict:
    """Single-medication view: one expected dose per day, full log history."""
    today = today or local_today()
    window_days = window_days or default_window_days()
    records = [
        DoseRecord(entry.date, entry.status == TAKEN)
        for entry in log_store.list_logs(user_id)
        if entry.medication_id == medication_id
    ]
    snapshot = compute_adherence(records, window_days, today)
    return {**snapshot.as_dict(), "medication_id": medication_id, "window_days": window_days}


def stamped(user_id: int, payload: dict) -> dict:
    payload["seq"] = sequencer.issue(user_id)
    return payload


class SnapshotWatcher:
    """
    Recomputes a user's dashboard whenever a write for that user is signalled.

    Use as a context manager, or call subscribe()/close() explicitly.
    Results that were overtaken by a newer refresh are discarded.
    """

    def __init__(self, user_id: int, on_refresh, window_days: int | None = None, today: date | None = None,
                 sequencer_: RequestSequencer | None = None):
        self.user_id = user_id
        self.on_refresh = on_refresh
        self.window_days = window_days
        self.today = today
        self.sequencer = sequencer_ or RequestSequencer()
        self._subscribed = False

    def subscribe(self):
        if not self._subscribed:
            dose_logged.connect(self._handle)
            medications_changed.connect(self._handle)
            self._subscribed = True
        return self

    def close(self):
        if self._subscribed:
            dose_logged.disconnect(self._handle)
            medications_changed.disconnect(self._handle)
            self._subscribed = False

    def __enter__(self):
        return self.subscribe()

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _handle(self, sender, user_id=None, **extra):
        if user_id != self.user_id:
            return
        seq = self.sequencer.issue(self.user_id)
        snapshot = build_dashboard(self.user_id, self.today, self.window_days)
        try:
            self.sequencer.check(self.user_id, seq)
        except StaleSnapshot as exc:
            logger.debug("discarding %s", exc)
            return
        self.on_refresh(seq, snapshot)
