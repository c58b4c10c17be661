import logging

from flask import Blueprint, abort, jsonify, request
from flask_login import login_user, logout_user, login_required, current_user
from flask_wtf.csrf import generate_csrf
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from . import db, limiter
from .forms import LoginForm, SignupForm, MedicationForm, MarkTakenForm, CareLinkForm
from .models import User, CareLink, ROLE_PATIENT
from .services import log_store, snapshots
from .services.adherence import MAX_WINDOW_DAYS
from .utils.timeutils import local_today, parse_date_key, parse_month_key, to_date_key

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")
api_bp = Blueprint("api", __name__, url_prefix="/api")


def _form_errors(form):
    return jsonify({"error": "validation_failed", "errors": form.errors}), 422


def _window_arg():
    window = request.args.get("window", type=int)
    if window is not None and not 1 <= window <= MAX_WINDOW_DAYS:
        abort(400, description=f"window must be between 1 and {MAX_WINDOW_DAYS} days")
    return window


# ---------- Auth ----------
@auth_bp.get("/csrf")
def csrf_token():
    return {"csrf_token": generate_csrf()}


@auth_bp.post("/signup")
def signup():
    form = SignupForm()
    if not form.validate_on_submit():
        return _form_errors(form)
    u = User(
        email=form.email.data.strip().lower(),
        display_name=(form.display_name.data or "").strip() or None,
        role=form.role.data,
    )
    u.set_password(form.password.data)
    db.session.add(u)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({"error": "email_taken", "message": "An account with this email already exists."}), 409
    login_user(u)
    logger.info("user %s signed up as %s", u.id, u.role)
    return jsonify(u.to_dict()), 201


@auth_bp.post("/login")
@limiter.limit("10/minute")
def login():
    form = LoginForm()
    if not form.validate_on_submit():
        return _form_errors(form)
    user = db.session.execute(
        select(User).where(User.email == form.email.data.strip().lower())
    ).scalar_one_or_none()
    if user and user.check_password(form.password.data):
        login_user(user, remember=form.remember.data)
        return jsonify(user.to_dict())
    logger.info("failed login for %s", form.email.data)
    return jsonify({"error": "invalid_credentials", "message": "Invalid credentials"}), 401


@auth_bp.post("/logout")
def logout():
    if current_user.is_authenticated:
        logout_user()
    return {"status": "signed_out"}


@auth_bp.get("/me")
@login_required
def me():
    return jsonify(current_user.to_dict())


# ---------- Medications ----------
@api_bp.get("/medications")
@login_required
def medications():
    meds = log_store.list_medications(current_user.id)
    return jsonify([m.to_dict() for m in meds])


@api_bp.post("/medications")
@login_required
def medication_new():
    form = MedicationForm()
    if not form.validate_on_submit():
        return _form_errors(form)
    med = log_store.add_medication(current_user.id, form.name.data, form.dosage.data, form.schedule.data)
    return jsonify(med.to_dict()), 201


@api_bp.put("/medications/<int:med_id>")
@login_required
def medication_edit(med_id):
    med = log_store.get_medication(current_user.id, med_id)
    form = MedicationForm()
    if not form.validate_on_submit():
        return _form_errors(form)
    log_store.update_medication(med, form.name.data, form.dosage.data, form.schedule.data)
    return jsonify(med.to_dict())


@api_bp.delete("/medications/<int:med_id>")
@login_required
def medication_delete(med_id):
    med = log_store.get_medication(current_user.id, med_id)
    log_store.delete_medication(med)
    return "", 204


@api_bp.get("/medications/<int:med_id>/adherence")
@login_required
def medication_adherence(med_id):
    log_store.get_medication(current_user.id, med_id)
    payload = snapshots.build_medication_snapshot(current_user.id, med_id, window_days=_window_arg())
    return jsonify(snapshots.stamped(current_user.id, payload))


# ---------- Dose logs ----------
@api_bp.get("/logs")
@login_required
def logs():
    entries = log_store.list_logs(current_user.id, request.args.get("start"), request.args.get("end"))
    return jsonify([entry._asdict() for entry in entries])


@api_bp.post("/logs/taken")
@login_required
def mark_taken():
    form = MarkTakenForm()
    if not form.validate_on_submit():
        return _form_errors(form)

    today = local_today()
    day = parse_date_key(form.date.data) if form.date.data else today
    if day != today:
        # Past days are derived as missed and the future cannot be pre-logged.
        return jsonify({
            "error": "not_today",
            "message": f"Only today's dose ({to_date_key(today)}) can be marked as taken.",
        }), 422

    med = log_store.get_medication(current_user.id, form.medication_id.data)
    log = log_store.mark_taken(current_user.id, med.id, to_date_key(day))

    # Re-derive the snapshot after every write.
    dashboard = snapshots.stamped(current_user.id, snapshots.build_dashboard(current_user.id, today))
    return jsonify({"log": log.to_dict(), "dashboard": dashboard})


# ---------- Patient views ----------
@api_bp.get("/dashboard")
@login_required
def dashboard():
    payload = snapshots.build_dashboard(current_user.id, window_days=_window_arg())
    return jsonify(snapshots.stamped(current_user.id, payload))


@api_bp.get("/days/<date_key>")
@login_required
def day_detail(date_key):
    day = parse_date_key(date_key)
    return jsonify(snapshots.build_day_detail(current_user.id, day))


@api_bp.get("/calendar")
@login_required
def calendar():
    month = request.args.get("month")
    month_of = parse_month_key(month) if month else local_today()
    return jsonify(snapshots.build_calendar(current_user.id, month_of))


# ---------- Caretaker ----------
def _require_caretaker():
    if not current_user.is_caretaker:
        abort(403, description="Caretaker account required.")


def _linked_patient_or_403(patient_id) -> CareLink:
    _require_caretaker()
    link = db.session.execute(
        select(CareLink).where(CareLink.caretaker_id == current_user.id, CareLink.patient_id == patient_id)
    ).scalar_one_or_none()
    if link is None:
        abort(403, description="You are not linked to this patient.")
    return link


@api_bp.post("/care-links")
@login_required
def care_link_new():
    _require_caretaker()
    form = CareLinkForm()
    if not form.validate_on_submit():
        return _form_errors(form)
    patient = db.session.execute(
        select(User).where(User.email == form.patient_email.data.strip().lower(), User.role == ROLE_PATIENT)
    ).scalar_one_or_none()
    if patient is None:
        abort(404, description="No patient with that email.")
    link = CareLink(caretaker_id=current_user.id, patient_id=patient.id)
    db.session.add(link)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({"error": "already_linked", "message": "Already monitoring this patient."}), 409
    return jsonify({"patient": patient.to_dict()}), 201


@api_bp.get("/caretaker/patients")
@login_required
def caretaker_patients():
    _require_caretaker()
    links = db.session.execute(
        select(CareLink).where(CareLink.caretaker_id == current_user.id).order_by(CareLink.id.asc())
    ).scalars()
    return jsonify([
        dict(link.patient.to_dict(), reminder_last_sent_date=(
            link.reminder_last_sent_date.isoformat() if link.reminder_last_sent_date else None
        ))
        for link in links
    ])


@api_bp.get("/caretaker/patients/<int:patient_id>/overview")
@login_required
def caretaker_overview(patient_id):
    link = _linked_patient_or_403(patient_id)
    today = local_today()
    payload = snapshots.build_dashboard(patient_id, today, window_days=_window_arg())
    payload["calendar"] = snapshots.build_calendar(patient_id, today, today)
    payload["remaining_days"] = payload["calendar"]["remaining_days"]
    payload["patient"] = link.patient.to_dict()
    return jsonify(snapshots.stamped(patient_id, payload))


@api_bp.post("/caretaker/patients/<int:patient_id>/reminder")
@login_required
def caretaker_send_reminder(patient_id):
    link = _linked_patient_or_403(patient_id)
    link.reminder_last_sent_date = local_today()
    db.session.commit()
    logger.info("caretaker %s sent a reminder to patient %s", current_user.id, patient_id)
    return jsonify({
        "status": "sent",
        "message": f"Reminder sent to {link.patient.display_name or link.patient.email}.",
        "reminder_last_sent_date": link.reminder_last_sent_date.isoformat(),
    })
