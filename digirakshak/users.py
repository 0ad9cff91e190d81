"""Registered users and the single current-session pointer."""
import logging
from typing import List, Optional

from werkzeug.security import generate_password_hash, check_password_hash

from .errors import (
    ValidationError, NotFoundError, DuplicateEmailError,
    InvalidCredentialError, NotVerifiedError,
)
from .notify import LANGUAGE_CODES
from .records import UserRecord, new_id, now_iso
from .store import KeyValueStore, USERS_KEY, SESSION_KEY

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
SUPPORTED_LANGUAGES = list(LANGUAGE_CODES)


def _norm(email: str) -> str:
    return (email or "").strip().lower()


def _field(profile: dict, *keys: str):
    for key in keys:
        value = profile.get(key)
        if value is None:
            continue
        if not isinstance(value, str):
            raise ValidationError(f"Field '{key}' must be a string")
        return value
    return None


def validate_registration(profile: dict) -> dict:
    """Check a registration form and return the cleaned fields"""
    name = (_field(profile, "name") or "").strip()
    email = (_field(profile, "email") or "").strip()
    password = _field(profile, "password") or ""
    confirm = _field(profile, "confirm_password", "confirmPassword")
    company = (_field(profile, "company_name", "companyName") or "").strip()
    gst = (_field(profile, "gst_number", "gstNumber") or "").strip()
    language = (_field(profile, "language") or "English").strip()

    if not name:
        raise ValidationError("Please enter your full name")
    if "@" not in email:
        raise ValidationError("Please enter a valid email address")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if confirm is not None and confirm != password:
        raise ValidationError("Passwords do not match")
    if not company:
        raise ValidationError("Please enter your company name")
    if not gst:
        raise ValidationError("Please enter your GST number")
    if language not in SUPPORTED_LANGUAGES:
        raise ValidationError(f"Unsupported language: {language}")

    return {
        "name": name,
        "email": email,
        "password": password,
        "company_name": company,
        "gst_number": gst,
        "language": language,
    }


class UserDirectory:
    def __init__(self, store: KeyValueStore):
        self.store = store

    # ---------- records ----------

    def all_users(self) -> List[UserRecord]:
        raw = self.store.get_json(USERS_KEY, [])
        if not isinstance(raw, list):
            return []
        return [UserRecord.from_dict(u) for u in raw if isinstance(u, dict) and u.get("email")]

    def _save(self, users: List[UserRecord]) -> None:
        self.store.set_json(USERS_KEY, [u.to_dict() for u in users])

    def get_by_email(self, email: str) -> Optional[UserRecord]:
        key = _norm(email)
        for u in self.all_users():
            if _norm(u.email) == key:
                return u
        return None

    def exists(self, email: str) -> bool:
        return self.get_by_email(email) is not None

    def register(self, profile: dict) -> UserRecord:
        data = validate_registration(profile)
        users = self.all_users()
        if any(_norm(u.email) == _norm(data["email"]) for u in users):
            raise DuplicateEmailError("User already exists with this email")

        user = UserRecord(
            id=new_id(),
            name=data["name"],
            email=data["email"],
            password_hash=generate_password_hash(data["password"]),
            company_name=data["company_name"],
            gst_number=data["gst_number"],
            language=data["language"],
            is_verified=False,
            created_at=now_iso(),
        )
        users.append(user)
        self._save(users)
        logger.info("Registered user %s", user.id)
        return user

    def mark_verified(self, email: str) -> bool:
        """Flip ``is_verified``; returns False when no such user exists."""
        users = self.all_users()
        for u in users:
            if _norm(u.email) == _norm(email):
                if not u.is_verified:
                    u.is_verified = True
                    self._save(users)
                return True
        return False

    # ---------- credentials ----------

    def check_password(self, email: str, password: str) -> UserRecord:
        """Return the user if the password matches, without touching the session."""
        user = self.get_by_email(email)
        if user is None:
            raise NotFoundError("User not found. Please register first.")
        if not user.password_hash or not check_password_hash(user.password_hash, password or ""):
            raise InvalidCredentialError("Invalid password. Please try again.")
        return user

    def authenticate(self, email: str, password: str) -> UserRecord:
        user = self.check_password(email, password)
        if not user.is_verified:
            raise NotVerifiedError("Email not verified. Please verify your email first.")
        self.store.set_json(SESSION_KEY, user.public_dict())
        logger.info("User %s signed in", user.id)
        return user

    # ---------- session ----------

    def current_session(self) -> Optional[dict]:
        data = self.store.get_json(SESSION_KEY)
        return data if isinstance(data, dict) else None

    def clear_session(self) -> None:
        self.store.remove(SESSION_KEY)
