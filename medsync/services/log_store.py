# medsync/services/log_store.py
import logging
from datetime import datetime

from flask import abort, current_app
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from medsync import db
from medsync.models import Medication, MedicationLog
from medsync.services.adherence import STATUSES, TAKEN, LogEntry
from medsync.signals import dose_logged, medications_changed
from medsync.utils.timeutils import parse_date_key

logger = logging.getLogger(__name__)


def list_medications(user_id: int, include_deleted: bool = False) -> list[Medication]:
    stmt = select(Medication).where(Medication.user_id == user_id)
    if not include_deleted:
        stmt = stmt.where(Medication.deleted_at.is_(None))
    stmt = stmt.order_by(Medication.created_at.desc(), Medication.id.desc())
    return list(db.session.execute(stmt).scalars())


def get_medication(user_id: int, medication_id: int) -> Medication:
    med = db.session.get(Medication, medication_id)
    if med is None or med.user_id != user_id or not med.is_active:
        abort(404)
    return med


def add_medication(user_id: int, name: str, dosage_mg: int, schedule: str) -> Medication:
    med = Medication(user_id=user_id, name=name.strip(), dosage=f"{dosage_mg} mg", schedule=schedule)
    db.session.add(med)
    db.session.commit()
    logger.info("medication %s created for user %s", med.id, user_id)
    medications_changed.send(current_app._get_current_object(), user_id=user_id, medication_id=med.id, action="created")
    return med


def update_medication(medication: Medication, name: str, dosage_mg: int, schedule: str) -> Medication:
    medication.name = name.strip()
    medication.dosage = f"{dosage_mg} mg"
    medication.schedule = schedule
    db.session.commit()
    medications_changed.send(
        current_app._get_current_object(), user_id=medication.user_id, medication_id=medication.id, action="updated"
    )
    return medication


def delete_medication(medication: Medication) -> None:
    medication.deleted_at = datetime.utcnow()
    db.session.commit()
    logger.info("medication %s deleted (logs kept)", medication.id)
    medications_changed.send(
        current_app._get_current_object(), user_id=medication.user_id, medication_id=medication.id, action="deleted"
    )


def list_logs(user_id: int, start: str | None = None, end: str | None = None) -> list[LogEntry]:
    """Dose logs for a user, optionally bounded by an inclusive [start, end] key range."""
    stmt = select(MedicationLog.medication_id, MedicationLog.date, MedicationLog.status).where(
        MedicationLog.user_id == user_id
    )
    if start is not None:
        parse_date_key(start)
        stmt = stmt.where(MedicationLog.date >= start)
    if end is not None:
        parse_date_key(end)
        stmt = stmt.where(MedicationLog.date <= end)
    stmt = stmt.order_by(MedicationLog.date.asc(), MedicationLog.id.asc())
    return [LogEntry(mid, day, status) for mid, day, status in db.session.execute(stmt)]


def _find_log(user_id: int, medication_id: int, date_key: str):
    stmt = select(MedicationLog).where(
        MedicationLog.medication_id == medication_id,
        MedicationLog.user_id == user_id,
        MedicationLog.date == date_key,
    )
    return db.session.execute(stmt).scalar_one_or_none()


def upsert_log(user_id: int, medication_id: int, date_key: str, status: str) -> MedicationLog:
    """
    Insert or overwrite the log keyed by (medication_id, user_id, date).
    Last write wins; a concurrent insert of the same key is retried as an update.
    """
    parse_date_key(date_key)
    if status not in STATUSES:
        raise ValueError(f"Unknown dose status {status!r}")

    log = _find_log(user_id, medication_id, date_key)
    if log is None:
        log = MedicationLog(medication_id=medication_id, user_id=user_id, date=date_key, status=status)
        db.session.add(log)
    else:
        log.status = status
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        log = _find_log(user_id, medication_id, date_key)
        if log is None:
            # Not a duplicate key (e.g. an unknown medication); surface the original error.
            raise
        logger.info("concurrent log insert for medication %s on %s; overwriting", medication_id, date_key)
        log.status = status
        db.session.commit()

    dose_logged.send(
        current_app._get_current_object(),
        user_id=user_id,
        medication_id=medication_id,
        date=date_key,
        status=status,
    )
    return log


def mark_taken(user_id: int, medication_id: int, date_key: str) -> MedicationLog:
    return upsert_log(user_id, medication_id, date_key, TAKEN)
