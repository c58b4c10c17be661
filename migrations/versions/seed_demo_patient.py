"""seed a demo patient, caretaker, medications and two weeks of dose logs

Revision ID: seed_demo_patient
Revises: initial_schema
Create Date: 2025-10-20
"""

from alembic import op
from datetime import date, datetime, timedelta
from werkzeug.security import generate_password_hash

# revision identifiers, used by Alembic.
revision = 'seed_demo_patient'
down_revision = 'initial_schema'
branch_labels = None
depends_on = None

PATIENT_EMAIL = 'eleanor.thompson@medsync.io'
CARETAKER_EMAIL = 'caretaker@medsync.io'


def upgrade():
    conn = op.get_bind()
    now = datetime.utcnow()

    # Users (idempotent)
    for email, name, role in (
        (PATIENT_EMAIL, 'Eleanor Thompson', 'patient'),
        (CARETAKER_EMAIL, 'Demo Caretaker', 'caretaker'),
    ):
        conn.exec_driver_sql(
            """INSERT INTO user (email, display_name, role, password_hash, created_at)
                 SELECT :email, :name, :role, :pw, :now
                 WHERE NOT EXISTS (SELECT 1 FROM user WHERE email = :email)""",
            dict(email=email, name=name, role=role, pw=generate_password_hash('demo-password', method='scrypt'), now=now)
        )

    pid = conn.exec_driver_sql("SELECT id FROM user WHERE email = :e", dict(e=PATIENT_EMAIL)).scalar()
    cid = conn.exec_driver_sql("SELECT id FROM user WHERE email = :e", dict(e=CARETAKER_EMAIL)).scalar()
    if not pid or not cid:
        return

    conn.exec_driver_sql(
        """INSERT INTO care_link (caretaker_id, patient_id, created_at)
             SELECT :cid, :pid, :now
             WHERE NOT EXISTS (SELECT 1 FROM care_link WHERE caretaker_id = :cid AND patient_id = :pid)""",
        dict(cid=cid, pid=pid, now=now)
    )

    meds = [
        ('Lisinopril', '10 mg', 'Once daily'),
        ('Metformin', '500 mg', 'Twice daily'),
    ]
    for name, dosage, schedule in meds:
        conn.exec_driver_sql(
            """INSERT INTO medication (user_id, name, dosage, schedule, created_at)
                 SELECT :pid, :n, :d, :s, :now
                 WHERE NOT EXISTS (SELECT 1 FROM medication WHERE user_id = :pid AND name = :n)""",
            dict(pid=pid, n=name, d=dosage, s=schedule, now=now)
        )

    med_ids = [r[0] for r in conn.exec_driver_sql(
        "SELECT id FROM medication WHERE user_id = :pid", dict(pid=pid)).fetchall()]

    # Two weeks of history with a gap four days ago so the demo shows a streak and a miss
    today = date.today()
    for offset in range(1, 15):
        if offset == 4:
            continue
        day = (today - timedelta(days=offset)).isoformat()
        for mid in med_ids:
            conn.exec_driver_sql(
                """INSERT INTO medication_log (medication_id, user_id, date, status, created_at, updated_at)
                     SELECT :mid, :pid, :day, 'taken', :now, :now
                     WHERE NOT EXISTS (
                       SELECT 1 FROM medication_log WHERE medication_id = :mid AND user_id = :pid AND date = :day
                     )""",
                dict(mid=mid, pid=pid, day=day, now=now)
            )


def downgrade():
    conn = op.get_bind()
    pid = conn.exec_driver_sql("SELECT id FROM user WHERE email = :e", dict(e=PATIENT_EMAIL)).scalar()
    if pid:
        conn.exec_driver_sql("DELETE FROM medication_log WHERE user_id = :pid", dict(pid=pid))
        conn.exec_driver_sql("DELETE FROM medication WHERE user_id = :pid", dict(pid=pid))
        conn.exec_driver_sql("DELETE FROM care_link WHERE patient_id = :pid", dict(pid=pid))
    conn.exec_driver_sql(
        "DELETE FROM user WHERE email IN (:p, :c)", dict(p=PATIENT_EMAIL, c=CARETAKER_EMAIL))
