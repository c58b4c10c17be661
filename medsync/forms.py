from flask_wtf import FlaskForm
from wtforms import StringField, PasswordField, BooleanField, IntegerField, SelectField
from wtforms.validators import DataRequired, Email, Length, Optional, NumberRange, EqualTo
from .models import ROLES, ROLE_PATIENT, SCHEDULE_OPTIONS

# JSON API forms: CSRF is checked globally from the X-CSRFToken header by CSRFProtect,
# so the per-form hidden field is switched off.
class ApiForm(FlaskForm):
    class Meta:
        csrf = False

class LoginForm(ApiForm):
    email = StringField("Email", validators=[DataRequired(), Email(), Length(max=120)])
    password = PasswordField("Password", validators=[DataRequired()])
    remember = BooleanField("Remember me")

class SignupForm(ApiForm):
    email = StringField("Email", validators=[DataRequired(), Email(), Length(max=120)])
    display_name = StringField("Name", validators=[Optional(), Length(max=120)])
    password = PasswordField("Password", validators=[DataRequired(), Length(min=8, max=128)])
    confirm = PasswordField("Confirm Password", validators=[DataRequired(), EqualTo("password", message="Passwords must match")])
    role = SelectField("Role", choices=[(r, r.title()) for r in ROLES], default=ROLE_PATIENT)

class MedicationForm(ApiForm):
    name = StringField("Medication Name", validators=[DataRequired(), Length(max=150)])
    dosage = IntegerField("Dosage (mg)", validators=[DataRequired(), NumberRange(min=1, max=100000)])
    schedule = SelectField("Schedule", choices=[(s, s) for s in SCHEDULE_OPTIONS], validators=[DataRequired()])

class MarkTakenForm(ApiForm):
    medication_id = IntegerField("Medication", validators=[DataRequired()])
    # Parsed strictly by the route so a malformed key is rejected the same way everywhere.
    date = StringField("Date", validators=[Optional()])

class CareLinkForm(ApiForm):
    patient_email = StringField("Patient Email", validators=[DataRequired(), Email(), Length(max=120)])
