# tests/test_log_store.py
import logging

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from medsync import db
from medsync.errors import MalformedDateKey, StaleSnapshot
from medsync.models import MedicationLog, User
from medsync.services import log_store
from medsync.services.adherence import LogEntry, MISSED, TAKEN
from medsync.services.snapshots import RequestSequencer, SnapshotWatcher, StoredSequencer
from medsync.signals import dose_logged
from medsync.utils.timeutils import local_today, to_date_key

logger = logging.getLogger(__name__)


@pytest.fixture()
def ctx(app):
    with app.app_context():
        yield


@pytest.fixture()
def user(ctx):
    u = User(email="store@mail.com", role="patient")
    u.set_password("whatever-password")
    db.session.add(u)
    db.session.commit()
    return u


def _count_logs():
    return db.session.execute(select(func.count(MedicationLog.id))).scalar()


def test_upsert_same_key_overwrites(user):
    med = log_store.add_medication(user.id, "Metformin", 500, "Twice daily")
    log_store.upsert_log(user.id, med.id, "2024-06-10", MISSED)
    log_store.mark_taken(user.id, med.id, "2024-06-10")
    logger.info("two writes for one (medication, user, date) -> expect a single taken row")
    assert _count_logs() == 1
    assert log_store.list_logs(user.id) == [LogEntry(med.id, "2024-06-10", TAKEN)]


def test_upsert_rejects_malformed_key_and_status(user):
    med = log_store.add_medication(user.id, "Metformin", 500, "Twice daily")
    with pytest.raises(MalformedDateKey):
        log_store.mark_taken(user.id, med.id, "10/06/2024")
    with pytest.raises(ValueError):
        log_store.upsert_log(user.id, med.id, "2024-06-10", "skipped")
    assert _count_logs() == 0


def test_list_logs_range_is_inclusive(user):
    med = log_store.add_medication(user.id, "Lisinopril", 10, "Once daily")
    for day in ("2024-06-01", "2024-06-05", "2024-06-10", "2024-06-11"):
        log_store.mark_taken(user.id, med.id, day)
    dates = [e.date for e in log_store.list_logs(user.id, "2024-06-05", "2024-06-10")]
    assert dates == ["2024-06-05", "2024-06-10"]
    with pytest.raises(MalformedDateKey):
        log_store.list_logs(user.id, "2024-6-5")


def test_delete_is_soft_and_keeps_history(user):
    med = log_store.add_medication(user.id, "Lisinopril", 10, "Once daily")
    log_store.mark_taken(user.id, med.id, "2024-06-01")
    log_store.delete_medication(med)
    assert log_store.list_medications(user.id) == []
    assert [m.id for m in log_store.list_medications(user.id, include_deleted=True)] == [med.id]
    assert len(log_store.list_logs(user.id)) == 1


def test_dosage_is_stored_in_mg(user):
    med = log_store.add_medication(user.id, "  Aspirin ", 81, "Once daily")
    assert (med.name, med.dosage) == ("Aspirin", "81 mg")
    log_store.update_medication(med, "Aspirin", 100, "Before sleep")
    assert (med.dosage, med.schedule) == ("100 mg", "Before sleep")


def test_write_sends_dose_logged_signal(user):
    med = log_store.add_medication(user.id, "Lisinopril", 10, "Once daily")
    received = []

    def receiver(sender, **extra):
        received.append(extra)

    with dose_logged.connected_to(receiver):
        log_store.mark_taken(user.id, med.id, "2024-06-10")
    assert received == [{"user_id": user.id, "medication_id": med.id, "date": "2024-06-10", "status": TAKEN}]


def test_sequencer_is_monotonic_per_key():
    seq = RequestSequencer()
    assert [seq.issue("a"), seq.issue("a"), seq.issue("b")] == [1, 2, 1]
    assert seq.is_latest("a", 2)
    assert not seq.is_latest("a", 1)
    with pytest.raises(StaleSnapshot):
        seq.check("a", 1)
    seq.check("b", 1)


def test_non_duplicate_integrity_error_is_reraised(user, monkeypatch):
    def failing_commit():
        raise IntegrityError("INSERT INTO medication_log", {}, Exception("FOREIGN KEY constraint failed"))

    monkeypatch.setattr(db.session, "commit", failing_commit)
    with pytest.raises(IntegrityError):
        log_store.mark_taken(user.id, 9999, "2024-06-10")
    monkeypatch.undo()
    assert _count_logs() == 0


def test_stored_sequencer_is_shared_between_workers(user):
    worker_a, worker_b = StoredSequencer(), StoredSequencer()
    issued = [worker_a.issue(user.id), worker_b.issue(user.id), worker_a.issue(user.id)]
    logger.info("interleaved issues across two sequencers -> %s", issued)
    assert issued == [1, 2, 3]
    assert worker_b.latest(user.id) == 3
    assert worker_a.is_latest(user.id, 3)
    with pytest.raises(StaleSnapshot):
        worker_b.check(user.id, 2)


def test_watcher_refreshes_after_writes_until_closed(user):
    med = log_store.add_medication(user.id, "Lisinopril", 10, "Once daily")
    refreshes = []
    watcher = SnapshotWatcher(user.id, lambda seq, snap: refreshes.append((seq, snap)), window_days=7)

    with watcher:
        log_store.mark_taken(user.id, med.id, to_date_key(local_today()))
    logger.info("watcher saw %d refresh(es)", len(refreshes))
    assert len(refreshes) == 1
    seq, snap = refreshes[0]
    assert seq == 1
    assert snap["has_taken_today"] is True
    assert snap["today_status"] == TAKEN
    assert snap["window_days"] == 7

    # after close() further writes are not observed
    log_store.add_medication(user.id, "Metformin", 500, "Twice daily")
    assert len(refreshes) == 1


def test_watcher_ignores_other_users(user):
    other = User(email="other@mail.com", role="patient")
    other.set_password("whatever-password")
    db.session.add(other)
    db.session.commit()
    refreshes = []
    with SnapshotWatcher(user.id, lambda seq, snap: refreshes.append(seq)):
        log_store.add_medication(other.id, "Metformin", 500, "Twice daily")
    assert refreshes == []


def test_watcher_discards_overtaken_refresh(user):
    med = log_store.add_medication(user.id, "Lisinopril", 10, "Once daily")
    shared = RequestSequencer()
    delivered = []

    def on_refresh(seq, snap):
        delivered.append(seq)

    # A newer request is issued while the first refresh is in flight.
    class RacingSequencer(RequestSequencer):
        def check(self, key, seq):
            shared_seq = shared.issue(key)
            if shared_seq == 1:
                raise StaleSnapshot(key, seq, seq + 1)

    with SnapshotWatcher(user.id, on_refresh, sequencer_=RacingSequencer()):
        log_store.mark_taken(user.id, med.id, to_date_key(local_today()))
        log_store.upsert_log(user.id, med.id, to_date_key(local_today()), TAKEN)
    assert delivered == [2]
