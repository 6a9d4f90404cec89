"""
Who may do what to which week.

The checks take an explicit actor and the week's current state and raise a
SignupSheetError subclass when the action is not allowed. The ``can_*``
predicates wrap the same checks for building UI affordances. Nothing here
reads from the database: callers look up admin status and inactive markers
right before calling, so a decision is never made on stale state.
"""
from dataclasses import dataclass
from typing import Optional


class SignupSheetError(Exception):
    """Base for request-scoped failures reported back to the caller."""
    status_code = 400
    code = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class NotAuthenticated(SignupSheetError):
    status_code = 401
    code = "login_required"


class NotAuthorized(SignupSheetError):
    status_code = 403
    code = "not_authorized"


class NotFound(SignupSheetError):
    status_code = 404
    code = "not_found"


class InvalidState(SignupSheetError):
    status_code = 409
    code = "invalid_state"


class ValidationError(SignupSheetError):
    status_code = 400
    code = "validation_error"


@dataclass(frozen=True)
class Actor:
    """The identity performing an operation. ``None`` stands for a signed-out caller."""
    email: Optional[str]
    is_anonymous: bool = False
    is_admin: bool = False
    name: Optional[str] = None
    user_id: Optional[int] = None

    @property
    def is_verified(self) -> bool:
        return bool(self.email)


@dataclass(frozen=True)
class WeekState:
    date: str
    is_inactive: bool = False
    inactive_reason: Optional[str] = None


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def clean_title(title: Optional[str], max_length: int = 200) -> str:
    if title is not None and not isinstance(title, str):
        raise ValidationError("Presentation title must be text")
    cleaned = (title or "").strip()
    if not cleaned:
        raise ValidationError("Presentation title is required")
    if len(cleaned) > max_length:
        raise ValidationError(f"Presentation title must be at most {max_length} characters")
    return cleaned


def require_identity(actor: Optional[Actor], action: str) -> Actor:
    if actor is None or (not actor.is_verified and not actor.is_anonymous):
        raise NotAuthenticated(f"Must be logged in to {action}")
    if actor.is_anonymous:
        raise NotAuthorized(f"Anonymous users cannot {action}")
    return actor


def check_can_sign_up(actor: Optional[Actor], week: WeekState, already_signed_up: bool) -> None:
    require_identity(actor, "sign up to present")
    if week.is_inactive:
        message = "This week is inactive and signups are not allowed."
        if week.inactive_reason:
            message += f" Reason: {week.inactive_reason}"
        raise InvalidState(message)
    if already_signed_up:
        raise InvalidState("You have already signed up for this meeting")


_PAST_TENSE = {"edit": "edited", "delete": "deleted"}


def check_can_mutate_presentation(actor: Optional[Actor], owner_email: str, week: WeekState,
                                  action: str = "edit") -> None:
    """Owner or admin may edit/delete; on an inactive week only an admin may."""
    require_identity(actor, f"{action} presentations")
    if week.is_inactive and not actor.is_admin:
        raise InvalidState(
            f"This week is inactive and presentations cannot be {_PAST_TENSE.get(action, action)}"
        )
    if owner_email != actor.email and not actor.is_admin:
        raise NotAuthorized(f"You can only {action} your own presentations")


def check_is_admin(actor: Optional[Actor], action: str) -> None:
    if actor is None or not actor.is_verified:
        raise NotAuthenticated(f"Must be logged in to {action}")
    if not actor.is_admin:
        raise NotAuthorized(f"Only admins can {action}")


def check_can_remove_admin(actor: Optional[Actor], target_email: str) -> None:
    check_is_admin(actor, "remove other admins")
    if normalize_email(target_email) == normalize_email(actor.email):
        raise InvalidState("You cannot remove yourself as admin")


def _allowed(check, *args) -> bool:
    try:
        check(*args)
    except SignupSheetError:
        return False
    return True


def can_sign_up(actor: Optional[Actor], week: WeekState, already_signed_up: bool) -> bool:
    return _allowed(check_can_sign_up, actor, week, already_signed_up)


def can_mutate_presentation(actor: Optional[Actor], owner_email: str, week: WeekState) -> bool:
    return _allowed(check_can_mutate_presentation, actor, owner_email, week)


def can_manage_recording(actor: Optional[Actor]) -> bool:
    return _allowed(check_is_admin, actor, "manage recording links")


def can_toggle_inactive(actor: Optional[Actor]) -> bool:
    return _allowed(check_is_admin, actor, "change week status")


def can_manage_admins(actor: Optional[Actor]) -> bool:
    return _allowed(check_is_admin, actor, "manage admins")


def can_remove_admin(actor: Optional[Actor], target_email: str) -> bool:
    return _allowed(check_can_remove_admin, actor, target_email)
