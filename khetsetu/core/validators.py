"""Form validation rules shared by the command line and the auth backend."""

from __future__ import annotations

import re
from typing import Any

EMAIL_RE = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")
PASSWORD_CLASSES_RE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)")
PHONE_RE = re.compile(r"^\+?\d{7,15}$")

PASSWORD_MIN_LENGTH = 6
NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 50


class FieldValidationError(ValueError):
    """Raised with per-field messages when a form fails validation."""

    def __init__(self, errors: dict[str, str]) -> None:
        self.errors = dict(errors)
        super().__init__("; ".join(f"{field}: {msg}" for field, msg in self.errors.items()))


def is_valid_email(value: str) -> bool:
    return bool(EMAIL_RE.fullmatch((value or "").strip()))


def is_valid_phone(value: str) -> bool:
    compact = re.sub(r"[\s()-]", "", value or "")
    return bool(PHONE_RE.fullmatch(compact))


def password_policy_error(password: str, *, label: str = "Password") -> str | None:
    """Return the policy violation message for ``password`` or ``None``."""
    if not password:
        return f"{label} is required"
    if len(password) < PASSWORD_MIN_LENGTH:
        return f"{label} must be at least {PASSWORD_MIN_LENGTH} characters long"
    if not PASSWORD_CLASSES_RE.match(password):
        return (
            f"{label} must contain at least one uppercase letter, "
            "one lowercase letter, and one number"
        )
    return None


def name_error(name: str) -> str | None:
    stripped = (name or "").strip()
    if not stripped:
        return "Full name is required"
    if not NAME_MIN_LENGTH <= len(stripped) <= NAME_MAX_LENGTH:
        return f"Name must be between {NAME_MIN_LENGTH} and {NAME_MAX_LENGTH} characters"
    return None


def _email_error(email: str) -> str | None:
    if not email:
        return "Email is required"
    if not is_valid_email(email):
        return "Please enter a valid email address"
    return None


def collect_email_errors(email: str) -> dict[str, str]:
    email_msg = _email_error(email)
    return {"email": email_msg} if email_msg else {}


def collect_login_errors(email: str, password: str) -> dict[str, str]:
    errors: dict[str, str] = {}
    email_msg = _email_error(email)
    if email_msg:
        errors["email"] = email_msg
    if not password:
        errors["password"] = "Password is required"
    elif len(password) < PASSWORD_MIN_LENGTH:
        errors["password"] = f"Password must be at least {PASSWORD_MIN_LENGTH} characters long"
    return errors


def collect_registration_errors(
    data: dict[str, Any], confirm_password: str
) -> dict[str, str]:
    """Validate a registration form, including the password confirmation."""
    errors: dict[str, str] = {}
    name_msg = name_error(str(data.get("name") or ""))
    if name_msg:
        errors["name"] = name_msg
    email_msg = _email_error(str(data.get("email") or ""))
    if email_msg:
        errors["email"] = email_msg

    password = str(data.get("password") or "")
    password_msg = password_policy_error(password)
    if password_msg:
        errors["password"] = password_msg
    if not confirm_password:
        errors["confirm_password"] = "Please confirm your password"
    elif password != confirm_password:
        errors["confirm_password"] = "Passwords do not match"

    phone = str(data.get("phone") or "")
    if phone and not is_valid_phone(phone):
        errors["phone"] = "Please provide a valid phone number"
    return errors


def collect_password_change_errors(
    current_password: str, new_password: str, confirm_password: str
) -> dict[str, str]:
    errors: dict[str, str] = {}
    if not current_password:
        errors["current_password"] = "Current password is required"
    new_msg = password_policy_error(new_password, label="New password")
    if new_msg:
        errors["new_password"] = new_msg
    if new_password != confirm_password:
        errors["confirm_password"] = "Passwords do not match"
    return errors


def ensure_valid(errors: dict[str, str]) -> None:
    """Raise :class:`FieldValidationError` when ``errors`` is not empty."""
    if errors:
        raise FieldValidationError(errors)
