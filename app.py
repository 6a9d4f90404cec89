from datetime import datetime, timezone
from zoneinfo import ZoneInfo
import time

import click
from flask import Flask, request, session, jsonify, g
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from flask_wtf import FlaskForm
from flask_wtf.csrf import CSRFProtect, CSRFError, generate_csrf
from wtforms import StringField, PasswordField
from wtforms.validators import DataRequired, Optional, Email, Length, URL
from werkzeug.security import generate_password_hash, check_password_hash
from dotenv import load_dotenv

# Load environment variables from .env file BEFORE importing Config so it can read envs
load_dotenv()

from config import Config
import weeks
from eligibility import (
    Actor, WeekState, SignupSheetError, NotAuthenticated, NotAuthorized, NotFound,
    InvalidState, ValidationError, normalize_email, clean_title, require_identity,
    check_can_sign_up, check_can_mutate_presentation, check_is_admin,
    check_can_remove_admin, can_sign_up, can_mutate_presentation,
    can_toggle_inactive, can_manage_recording, can_manage_admins, can_remove_admin,
)
from utils import presenter_display_name

app = Flask(__name__)
app.config.from_object(Config)
db = SQLAlchemy(app)
csrf = CSRFProtect(app)


# Performance monitoring
@app.before_request
def before_request():
    g.start_time = time.time()


@app.after_request
def after_request(response):
    if hasattr(g, 'start_time'):
        response_time = time.time() - g.start_time
        response.headers['X-Response-Time'] = f"{response_time:.3f}s"

    # Security headers
    response.headers['X-Content-Type-Options'] = 'nosniff'
    response.headers['X-Frame-Options'] = 'DENY'
    # Week views change as soon as anyone signs up
    response.headers['Cache-Control'] = 'no-cache, no-store, must-revalidate, private'
    return response


# Timezone helpers
# The sign-up sheet rolls over on the meeting's local clock, not the server's.
def get_meeting_now():
    """Current datetime in the meeting timezone."""
    return datetime.now(ZoneInfo(app.config["MEETING_TIMEZONE"]))


def utcnow():
    return datetime.now(timezone.utc)


def _isoformat(value):
    return value.isoformat() if value else None


# ==========================
# MODELS
# ==========================

class User(db.Model):
    """
    Anyone who has signed in.
    - Password accounts carry an email and may present.
    - Anonymous accounts (is_anonymous = True) have no email and can only browse.
    """
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=True, index=True)  # Index for login lookups
    name = db.Column(db.String(120), nullable=True)
    password_hash = db.Column(db.String(255), nullable=True)
    is_anonymous = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "is_anonymous": self.is_anonymous,
        }


class Presentation(db.Model):
    """
    A talk someone has signed up to give at one meeting.
    Example: 'Intro to Property Testing', Jane Doe, 2024-01-04.
    """
    __tablename__ = "presentations"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(500), nullable=False)
    presenter_name = db.Column(db.String(255), nullable=False)
    presenter_email = db.Column(db.String(255), nullable=False, index=True)
    meeting_date = db.Column(db.String(10), nullable=False, index=True)  # YYYY-MM-DD
    signup_time = db.Column(db.DateTime, default=utcnow, nullable=False)

    # One entry per presenter per meeting; backs the pre-insert duplicate check
    __table_args__ = (db.UniqueConstraint('meeting_date', 'presenter_email', name='uq_presenter_meeting_date'),)

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "presenter_name": self.presenter_name,
            "presenter_email": self.presenter_email,
            "meeting_date": self.meeting_date,
            "signup_time": _isoformat(self.signup_time),
        }


class Recording(db.Model):
    """Link to the recording of one meeting. At most one per date."""
    __tablename__ = "recordings"

    id = db.Column(db.Integer, primary_key=True)
    meeting_date = db.Column(db.String(10), unique=True, nullable=False)
    recording_url = db.Column(db.String(2000), nullable=False)
    added_by = db.Column(db.String(255), nullable=False)
    added_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    def to_dict(self):
        return {
            "meeting_date": self.meeting_date,
            "recording_url": self.recording_url,
            "added_by": self.added_by,
            "added_at": _isoformat(self.added_at),
        }


class InactiveWeek(db.Model):
    """
    Marks a meeting date as not happening. The row existing is the flag;
    deleting it makes the week active again.
    """
    __tablename__ = "inactive_weeks"

    id = db.Column(db.Integer, primary_key=True)
    meeting_date = db.Column(db.String(10), unique=True, nullable=False)
    reason = db.Column(db.Text, nullable=True)
    marked_by = db.Column(db.String(255), nullable=False)
    marked_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    def to_dict(self):
        return {
            "meeting_date": self.meeting_date,
            "reason": self.reason,
            "marked_by": self.marked_by,
            "marked_at": _isoformat(self.marked_at),
        }


class Admin(db.Model):
    """Admin roster. Emails are stored lower-cased."""
    __tablename__ = "admins"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    added_by = db.Column(db.String(255), nullable=False)
    added_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    def to_dict(self):
        return {
            "email": self.email,
            "added_by": self.added_by,
            "added_at": _isoformat(self.added_at),
        }


# ==========================
# RECORD STORE
# ==========================

class RecordStore:
    """
    Single-record reads and writes over presentations, recordings,
    inactive-week markers and the admin roster.

    Every write commits on its own; there is no transaction spanning a
    check and the write that follows it. Unique constraints on the keyed
    tables catch the concurrent cases the checks miss.
    """

    def _commit(self):
        try:
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            if not isinstance(e, IntegrityError):
                app.logger.error(f"Database error during commit: {e}")
            raise

    # -- Presentations --

    def find_presentations_for_date(self, meeting_date):
        return (
            Presentation.query
            .filter_by(meeting_date=meeting_date)
            .order_by(Presentation.signup_time.asc(), Presentation.id.asc())
            .all()
        )

    def find_presentation(self, presentation_id):
        return db.session.get(Presentation, presentation_id)

    def find_presentation_by_owner(self, meeting_date, email):
        return Presentation.query.filter_by(meeting_date=meeting_date, presenter_email=email).first()

    def all_presentation_dates(self):
        return [row[0] for row in db.session.query(Presentation.meeting_date).all()]

    def add_presentation(self, title, presenter_name, presenter_email, meeting_date):
        presentation = Presentation(
            title=title,
            presenter_name=presenter_name,
            presenter_email=presenter_email,
            meeting_date=meeting_date,
            signup_time=utcnow(),
        )
        db.session.add(presentation)
        self._commit()
        return presentation

    def update_presentation_title(self, presentation, title):
        presentation.title = title
        self._commit()
        return presentation

    def delete_presentation(self, presentation):
        db.session.delete(presentation)
        self._commit()

    # -- Keyed-by-date markers --

    def _upsert_by_date(self, model, meeting_date, **fields):
        row = model.query.filter_by(meeting_date=meeting_date).first()
        if row is None:
            row = model(meeting_date=meeting_date, **fields)
            db.session.add(row)
            try:
                self._commit()
                return row
            except IntegrityError:
                # Lost a race with a concurrent insert; patch the row that won
                row = model.query.filter_by(meeting_date=meeting_date).one()
        for key, value in fields.items():
            setattr(row, key, value)
        self._commit()
        return row

    def _delete_by_date(self, model, meeting_date) -> bool:
        row = model.query.filter_by(meeting_date=meeting_date).first()
        if row is None:
            return False
        db.session.delete(row)
        self._commit()
        return True

    def find_recording(self, meeting_date):
        return Recording.query.filter_by(meeting_date=meeting_date).first()

    def upsert_recording(self, meeting_date, recording_url, actor_email):
        return self._upsert_by_date(
            Recording, meeting_date,
            recording_url=recording_url, added_by=actor_email, added_at=utcnow(),
        )

    def delete_recording(self, meeting_date) -> bool:
        return self._delete_by_date(Recording, meeting_date)

    def find_inactive_marker(self, meeting_date):
        return InactiveWeek.query.filter_by(meeting_date=meeting_date).first()

    def all_inactive_weeks(self):
        return {w.meeting_date: w.reason for w in InactiveWeek.query.all()}

    def upsert_inactive_marker(self, meeting_date, reason, actor_email):
        return self._upsert_by_date(
            InactiveWeek, meeting_date,
            reason=reason, marked_by=actor_email, marked_at=utcnow(),
        )

    def delete_inactive_marker(self, meeting_date) -> bool:
        return self._delete_by_date(InactiveWeek, meeting_date)

    # -- Admin roster --

    def is_admin(self, email) -> bool:
        email = normalize_email(email)
        if not email:
            return False
        return Admin.query.filter_by(email=email).first() is not None

    def list_admins(self):
        return Admin.query.order_by(Admin.added_at.asc(), Admin.id.asc()).all()

    def add_admin(self, email, actor_email):
        admin = Admin(email=normalize_email(email), added_by=actor_email, added_at=utcnow())
        db.session.add(admin)
        self._commit()
        return admin

    def remove_admin(self, email) -> bool:
        admin = Admin.query.filter_by(email=normalize_email(email)).first()
        if admin is None:
            return False
        db.session.delete(admin)
        self._commit()
        return True


store = RecordStore()


# ==========================
# AUTH HELPERS
# ==========================

def get_current_user():
    user_id = session.get("user_id")
    if not user_id:
        return None
    try:
        return db.session.get(User, user_id)
    except SQLAlchemyError as e:
        # If database is unavailable, user is not logged in
        app.logger.error(f"Failed to load session user {user_id}: {e}")
        return None


def resolve_actor(user):
    """Build the Actor for a user, looking admin status up now."""
    if user is None:
        return None
    return Actor(
        email=user.email,
        is_anonymous=bool(user.is_anonymous),
        is_admin=(not user.is_anonymous) and store.is_admin(user.email),
        name=user.name,
        user_id=user.id,
    )


def current_actor():
    return resolve_actor(get_current_user())


# ==========================
# SIGN-UP SERVICES
# ==========================
# Each operation takes the acting identity explicitly and re-reads the
# week's inactive marker and the actor's admin status from the store
# before deciding, never trusting flags sent by the client.

def _require_date_key(value):
    if not weeks.is_date_key(value):
        raise ValidationError(f"Invalid meeting date {value!r}; expected YYYY-MM-DD")
    earliest, latest = app.config["EARLIEST_MEETING_DATE"], app.config["LATEST_MEETING_DATE"]
    if not earliest <= value <= latest:
        raise ValidationError(f"Meeting date must be between {earliest} and {latest}")
    return value


def _week_state(meeting_date):
    marker = store.find_inactive_marker(meeting_date)
    return WeekState(
        date=meeting_date,
        is_inactive=marker is not None,
        inactive_reason=marker.reason if marker else None,
    )


def current_meeting_date(now=None):
    now = now or get_meeting_now()
    return weeks.next_meeting_date(now, app.config["MEETING_WEEKDAY"], app.config["MEETING_CUTOFF_HOUR"])


def get_week_view(actor, meeting_date=None, now=None):
    """Everything the sheet shows for one meeting date (default: the upcoming one)."""
    current = current_meeting_date(now)
    meeting_date = _require_date_key(meeting_date) if meeting_date else current
    week = _week_state(meeting_date)
    presentations = store.find_presentations_for_date(meeting_date)
    recording = store.find_recording(meeting_date)
    already_signed_up = bool(actor and actor.email) and any(
        p.presenter_email == actor.email for p in presentations
    )
    return {
        "date": meeting_date,
        "formatted_date": weeks.format_for_display(meeting_date, app.config["DISPLAY_LOCALE"]),
        "is_past": meeting_date < current,
        "is_current": meeting_date == current,
        "presentations": [
            dict(p.to_dict(), can_edit=can_mutate_presentation(actor, p.presenter_email, week))
            for p in presentations
        ],
        "recording_url": recording.recording_url if recording else None,
        "is_inactive": week.is_inactive,
        "inactive_reason": week.inactive_reason,
        "can_sign_up": can_sign_up(actor, week, already_signed_up),
        "can_manage": can_toggle_inactive(actor),
        "can_manage_recording": can_manage_recording(actor),
    }


def list_available_weeks(now=None):
    return weeks.enumerate_weeks(
        now or get_meeting_now(),
        store.all_presentation_dates(),
        store.all_inactive_weeks(),
        weekday=app.config["MEETING_WEEKDAY"],
        cutoff_hour=app.config["MEETING_CUTOFF_HOUR"],
        future_weeks=app.config["FUTURE_WEEKS"],
        locale=app.config["DISPLAY_LOCALE"],
    )


def check_admin_status(actor) -> bool:
    return bool(actor and actor.is_admin)


def sign_up_to_present(actor, title, meeting_date=None, now=None):
    meeting_date = _require_date_key(meeting_date) if meeting_date else current_meeting_date(now)
    week = _week_state(meeting_date)
    existing = None
    if actor is not None and actor.email:
        existing = store.find_presentation_by_owner(meeting_date, actor.email)
    check_can_sign_up(actor, week, existing is not None)
    title = clean_title(title, app.config["TITLE_MAX_LENGTH"])

    try:
        presentation = store.add_presentation(
            title=title,
            presenter_name=presenter_display_name(actor.name, actor.email),
            presenter_email=actor.email,
            meeting_date=meeting_date,
        )
    except IntegrityError:
        app.logger.warning(f"Concurrent duplicate signup by {actor.email} for {meeting_date}")
        raise InvalidState("You have already signed up for this meeting")

    app.logger.info(f"{actor.email} signed up to present on {meeting_date} (presentation {presentation.id})")
    return presentation


def _load_presentation_for_change(actor, presentation_id, action):
    require_identity(actor, f"{action} presentations")
    presentation = store.find_presentation(presentation_id)
    if presentation is None:
        raise NotFound("Presentation not found")
    week = _week_state(presentation.meeting_date)
    check_can_mutate_presentation(actor, presentation.presenter_email, week, action)
    return presentation


def edit_presentation(actor, presentation_id, title):
    presentation = _load_presentation_for_change(actor, presentation_id, "edit")
    title = clean_title(title, app.config["TITLE_MAX_LENGTH"])
    store.update_presentation_title(presentation, title)
    app.logger.info(f"Presentation {presentation.id} retitled by {actor.email}")
    return presentation


def delete_presentation(actor, presentation_id):
    presentation = _load_presentation_for_change(actor, presentation_id, "delete")
    store.delete_presentation(presentation)
    app.logger.info(f"Presentation {presentation_id} deleted by {actor.email}")


def admin_add_presentation(actor, title, meeting_date, presenter_email, presenter_name=None):
    """Backfill a presentation for someone else, on any date, past or inactive."""
    check_is_admin(actor, "backfill presentations")
    meeting_date = _require_date_key(meeting_date)
    presenter_email = normalize_email(presenter_email)
    if not presenter_email:
        raise ValidationError("Presenter email is required")
    title = clean_title(title, app.config["TITLE_MAX_LENGTH"])
    duplicate = InvalidState(f"{presenter_email} already has a presentation for {meeting_date}")
    if store.find_presentation_by_owner(meeting_date, presenter_email):
        raise duplicate

    try:
        presentation = store.add_presentation(
            title=title,
            presenter_name=presenter_display_name((presenter_name or "").strip() or None, presenter_email),
            presenter_email=presenter_email,
            meeting_date=meeting_date,
        )
    except IntegrityError:
        raise duplicate

    app.logger.info(f"Admin {actor.email} backfilled presentation {presentation.id} for {presenter_email} on {meeting_date}")
    return presentation


def set_recording_link(actor, meeting_date, recording_url):
    check_is_admin(actor, "add recording links")
    meeting_date = _require_date_key(meeting_date)
    recording_url = (recording_url or "").strip()
    if not recording_url:
        raise ValidationError("Recording URL is required")
    recording = store.upsert_recording(meeting_date, recording_url, actor.email)
    app.logger.info(f"Recording for {meeting_date} set by {actor.email}")
    return recording


def remove_recording_link(actor, meeting_date):
    check_is_admin(actor, "remove recording links")
    meeting_date = _require_date_key(meeting_date)
    if not store.delete_recording(meeting_date):
        raise NotFound("No recording found for this date")
    app.logger.info(f"Recording for {meeting_date} removed by {actor.email}")


def mark_week_inactive(actor, meeting_date, reason=None):
    check_is_admin(actor, "mark weeks as inactive")
    meeting_date = _require_date_key(meeting_date)
    marker = store.upsert_inactive_marker(meeting_date, (reason or "").strip() or None, actor.email)
    app.logger.info(f"Week {meeting_date} marked inactive by {actor.email}")
    return marker


def mark_week_active(actor, meeting_date):
    check_is_admin(actor, "mark weeks as active")
    meeting_date = _require_date_key(meeting_date)
    if not store.delete_inactive_marker(meeting_date):
        raise InvalidState("Week is not marked as inactive")
    app.logger.info(f"Week {meeting_date} marked active by {actor.email}")


def list_admins(actor):
    # Non-admins get an empty roster rather than an error
    if not can_manage_admins(actor):
        return []
    return store.list_admins()


def add_admin(actor, email):
    check_is_admin(actor, "add other admins")
    email = normalize_email(email)
    if not email:
        raise ValidationError("Email is required")
    if store.is_admin(email):
        raise InvalidState("User is already an admin")
    try:
        admin = store.add_admin(email, actor.email)
    except IntegrityError:
        raise InvalidState("User is already an admin")
    app.logger.info(f"{actor.email} granted admin to {email}")
    return admin


def remove_admin(actor, email):
    check_can_remove_admin(actor, email)
    if not store.remove_admin(email):
        raise NotFound("User is not an admin")
    app.logger.info(f"{actor.email} revoked admin from {normalize_email(email)}")


# ==========================
# FORMS
# ==========================

# Titles are checked by the services after the week and ownership checks,
# so an inactive week is reported even when the title is also bad.
class SignupForm(FlaskForm):
    title = StringField("Presentation Title")
    meeting_date = StringField("Meeting Date", validators=[Optional(), Length(min=10, max=10)])


class EditPresentationForm(FlaskForm):
    title = StringField("Presentation Title")


class BackfillForm(FlaskForm):
    title = StringField("Presentation Title", validators=[DataRequired()])
    meeting_date = StringField("Meeting Date", validators=[DataRequired(), Length(min=10, max=10)])
    presenter_email = StringField("Presenter Email", validators=[DataRequired(), Email(), Length(max=255)])
    presenter_name = StringField("Presenter Name (optional)", validators=[Optional(), Length(max=255)])


class RecordingForm(FlaskForm):
    recording_url = StringField("Recording URL", validators=[DataRequired(), URL(), Length(max=2000)])


class InactiveWeekForm(FlaskForm):
    reason = StringField("Reason (optional)", validators=[Optional(), Length(max=500)])


class AdminForm(FlaskForm):
    email = StringField("Email", validators=[DataRequired(), Email(), Length(max=255)])


class RegisterForm(FlaskForm):
    email = StringField("Email", validators=[DataRequired(), Email(), Length(max=255)])
    password = PasswordField(
        "Password",
        validators=[DataRequired(), Length(min=6, message="At least 6 characters")]
    )
    name = StringField("Display name (optional)", validators=[Optional(), Length(max=120)])


class LoginForm(FlaskForm):
    email = StringField("Email", validators=[DataRequired(), Email()])
    password = PasswordField("Password", validators=[DataRequired()])


def validated(form_class):
    """Instantiate a form from the request body, raising ValidationError if it does not validate."""
    # JSON bodies reach the fields as-is; every field here takes text
    if request.is_json:
        body = request.get_json(silent=True)
        if body is not None and not isinstance(body, dict):
            raise ValidationError("Request body must be a JSON object")
        wrong_type = sorted(k for k, v in (body or {}).items() if not isinstance(v, str))
        if wrong_type:
            raise ValidationError("; ".join(f"{field}: must be a string" for field in wrong_type))
    form = form_class()
    if form.validate_on_submit():
        return form
    message = "; ".join(f"{field}: {', '.join(map(str, errors))}" for field, errors in form.errors.items())
    raise ValidationError(message or "Invalid request")


# ==========================
# ERROR HANDLERS
# ==========================

@app.errorhandler(SignupSheetError)
def handle_signup_sheet_error(error):
    app.logger.warning(f"{request.method} {request.path} rejected ({error.code}): {error.message}")
    return jsonify(error.to_dict()), error.status_code


@app.errorhandler(CSRFError)
def handle_csrf_error(error):
    return jsonify({"error": "csrf_failed", "message": error.description}), 400


@app.errorhandler(404)
def handle_not_found(error):
    return jsonify({"error": "not_found", "message": "Not found"}), 404


# ==========================
# API: Weeks
# ==========================

@app.route("/api/weeks/current")
def api_current_week():
    """The upcoming meeting, its presentations, recording and status."""
    return jsonify(get_week_view(current_actor()))


@app.route("/api/weeks/<date_key>")
def api_week(date_key):
    return jsonify(get_week_view(current_actor(), date_key))


@app.route("/api/weeks")
def api_available_weeks():
    """Week selector: populated past weeks followed by the upcoming ones."""
    return jsonify({"weeks": [w.to_dict() for w in list_available_weeks()]})


@app.route("/api/weeks/<date_key>/recording", methods=["PUT"])
def api_set_recording(date_key):
    actor = current_actor()
    check_is_admin(actor, "add recording links")
    form = validated(RecordingForm)
    recording = set_recording_link(actor, date_key, form.recording_url.data)
    return jsonify(recording.to_dict())


@app.route("/api/weeks/<date_key>/recording", methods=["DELETE"])
def api_remove_recording(date_key):
    remove_recording_link(current_actor(), date_key)
    return jsonify({"ok": True})


@app.route("/api/weeks/<date_key>/inactive", methods=["PUT"])
def api_mark_inactive(date_key):
    form = validated(InactiveWeekForm)
    marker = mark_week_inactive(current_actor(), date_key, form.reason.data)
    return jsonify(marker.to_dict())


@app.route("/api/weeks/<date_key>/inactive", methods=["DELETE"])
def api_mark_active(date_key):
    mark_week_active(current_actor(), date_key)
    return jsonify({"ok": True})


# ==========================
# API: Presentations
# ==========================

@app.route("/api/presentations", methods=["POST"])
def api_sign_up():
    form = validated(SignupForm)
    presentation = sign_up_to_present(current_actor(), form.title.data, form.meeting_date.data or None)
    return jsonify(presentation.to_dict()), 201


@app.route("/api/presentations/<int:presentation_id>", methods=["PATCH"])
def api_edit_presentation(presentation_id):
    form = validated(EditPresentationForm)
    presentation = edit_presentation(current_actor(), presentation_id, form.title.data)
    return jsonify(presentation.to_dict())


@app.route("/api/presentations/<int:presentation_id>", methods=["DELETE"])
def api_delete_presentation(presentation_id):
    delete_presentation(current_actor(), presentation_id)
    return jsonify({"ok": True})


# ==========================
# API: Admin
# ==========================

@app.route("/api/admin/status")
def api_admin_status():
    return jsonify({"is_admin": check_admin_status(current_actor())})


@app.route("/api/admin/presentations", methods=["POST"])
def api_backfill_presentation():
    actor = current_actor()
    # Check the role before validating the body so non-admins learn nothing about the form
    check_is_admin(actor, "backfill presentations")
    form = validated(BackfillForm)
    presentation = admin_add_presentation(
        actor,
        form.title.data,
        form.meeting_date.data,
        form.presenter_email.data,
        form.presenter_name.data,
    )
    return jsonify(presentation.to_dict()), 201


@app.route("/api/admins")
def api_list_admins():
    actor = current_actor()
    return jsonify({
        "admins": [
            dict(a.to_dict(), can_remove=can_remove_admin(actor, a.email))
            for a in list_admins(actor)
        ]
    })


@app.route("/api/admins", methods=["POST"])
def api_add_admin():
    actor = current_actor()
    check_is_admin(actor, "add other admins")
    form = validated(AdminForm)
    admin = add_admin(actor, form.email.data)
    return jsonify(admin.to_dict()), 201


@app.route("/api/admins/<path:email>", methods=["DELETE"])
def api_remove_admin(email):
    remove_admin(current_actor(), email)
    return jsonify({"ok": True})


# ==========================
# API: Auth
# ==========================

@app.route("/api/auth/csrf-token")
def api_csrf_token():
    return jsonify({"csrf_token": generate_csrf()})


@app.route("/api/auth/me")
def api_me():
    user = get_current_user()
    if not user:
        return jsonify({"user": None, "is_admin": False})
    return jsonify({"user": user.to_dict(), "is_admin": check_admin_status(resolve_actor(user))})


@app.route("/api/auth/register", methods=["POST"])
def api_register():
    if not app.config.get('REGISTRATION_ENABLED', True):
        raise NotAuthorized("Registration is currently disabled. Please contact an admin.")

    form = validated(RegisterForm)
    email = normalize_email(form.email.data)
    if User.query.filter_by(email=email).first():
        raise InvalidState("An account with that email already exists.")

    user = User(email=email, name=(form.name.data or "").strip() or None, is_anonymous=False)
    user.set_password(form.password.data)
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        app.logger.warning(f"Duplicate email registration attempt: {email}")
        raise InvalidState("An account with that email already exists.")

    session.permanent = True
    session["user_id"] = user.id
    app.logger.info(f"New user registered: {user.email} (ID: {user.id})")
    return jsonify({"user": user.to_dict()}), 201


@app.route("/api/auth/login", methods=["POST"])
def api_login():
    form = validated(LoginForm)
    email = normalize_email(form.email.data)
    user = User.query.filter_by(email=email).first()
    if not user or not user.check_password(form.password.data):
        app.logger.warning(f"Failed login for {email}")
        raise NotAuthenticated("Invalid email or password.")

    session.permanent = True
    session["user_id"] = user.id
    app.logger.info(f"User {user.id} logged in")
    return jsonify({"user": user.to_dict(), "is_admin": check_admin_status(resolve_actor(user))})


@app.route("/api/auth/anonymous", methods=["POST"])
def api_anonymous_sign_in():
    """Browse-only session without an account."""
    if not app.config.get('ANONYMOUS_SIGNIN_ENABLED', True):
        raise NotAuthorized("Anonymous sign-in is disabled.")

    # Reuse the session's anonymous user instead of minting another row
    current = get_current_user()
    if current is not None and current.is_anonymous:
        return jsonify({"user": current.to_dict()})

    user = User(is_anonymous=True)
    db.session.add(user)
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        app.logger.error(f"Failed to create anonymous user: {e}")
        raise

    session["user_id"] = user.id
    return jsonify({"user": user.to_dict()}), 201


@app.route("/api/auth/logout", methods=["POST"])
def api_logout():
    session.pop("user_id", None)
    return jsonify({"ok": True})


# ==========================
# CLI
# ==========================

@app.cli.command("init-db")
def init_db_command():
    """
    Create tables and seed the first admin from BOOTSTRAP_ADMIN_EMAIL.
    Run with: flask --app app.py init-db
    """
    db.create_all()

    email = app.config.get("BOOTSTRAP_ADMIN_EMAIL")
    if email:
        if store.is_admin(email):
            print(f"Admin already exists: {normalize_email(email)}")
        else:
            store.add_admin(email, "cli")
            print(f"Created bootstrap admin: {normalize_email(email)}")
    else:
        print("BOOTSTRAP_ADMIN_EMAIL is not set; no admin seeded.")

    print("Database initialized.")


@app.cli.command("grant-admin")
@click.argument("email")
def grant_admin_command(email):
    """
    Add an admin without going through the API.
    Run with: flask --app app.py grant-admin someone@example.com
    """
    if store.is_admin(email):
        print(f"{normalize_email(email)} is already an admin.")
        return
    store.add_admin(email, "cli")
    print(f"Granted admin to {normalize_email(email)}.")


if __name__ == "__main__":
    with app.app_context():
        db.create_all()
    app.run(debug=True)
