from datetime import datetime
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash
from . import db, login_manager

ROLE_PATIENT = "patient"
ROLE_CARETAKER = "caretaker"
ROLES = (ROLE_PATIENT, ROLE_CARETAKER)

SCHEDULE_OPTIONS = (
    "Once daily",
    "Twice daily",
    "Thrice daily",
    "Every 6 hours",
    "Every 8 hours",
    "Before sleep",
    "As needed",
)

class User(UserMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False)
    display_name = db.Column(db.String(120), nullable=True)
    role = db.Column(db.String(20), nullable=False, default=ROLE_PATIENT)
    password_hash = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    # Last snapshot sequence number issued for this user, shared by every worker.
    snapshot_seq = db.Column(db.Integer, nullable=False, default=0, server_default="0")

    def set_password(self, password):
        self.password_hash = generate_password_hash(password, method="scrypt")

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    @property
    def is_caretaker(self):
        return self.role == ROLE_CARETAKER

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "display_name": self.display_name,
            "role": self.role,
        }

@login_manager.user_loader
def load_user(user_id):
    return db.session.get(User, int(user_id))

class CareLink(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    caretaker_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    patient_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    reminder_last_sent_date = db.Column(db.Date, nullable=True)
    caretaker = db.relationship("User", foreign_keys=[caretaker_id], lazy=True)
    patient = db.relationship("User", foreign_keys=[patient_id], lazy=True)

    __table_args__ = (db.UniqueConstraint("caretaker_id", "patient_id", name="uq_care_link_pair"),)

class Medication(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    name = db.Column(db.String(150), nullable=False)
    dosage = db.Column(db.String(80), nullable=False) # e.g., "500 mg"
    schedule = db.Column(db.String(40), nullable=False) # one of SCHEDULE_OPTIONS
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    # Soft delete: historical logs outlive the medication.
    deleted_at = db.Column(db.DateTime, nullable=True)

    @property
    def is_active(self):
        return self.deleted_at is None

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "dosage": self.dosage,
            "schedule": self.schedule,
        }


class MedicationLog(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    medication_id = db.Column(db.Integer, db.ForeignKey("medication.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    date = db.Column(db.String(10), nullable=False, index=True) # YYYY-MM-DD
    status = db.Column(db.String(10), nullable=False, default="taken")
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    medication = db.relationship("Medication", backref="logs", lazy=True)

    __table_args__ = (
        db.UniqueConstraint("medication_id", "user_id", "date", name="uq_medication_log_day"),
    )

    def to_dict(self):
        return {
            "medication_id": self.medication_id,
            "date": self.date,
            "status": self.status,
        }
