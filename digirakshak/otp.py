"""E-mail one-time codes.

Per address the lifecycle is NoChallenge -> Issued -> Verified | Expired |
Exhausted, and every terminal state deletes the stored challenge. Expiry is
checked when a code is submitted; nothing deletes a challenge early.
"""
import logging
import secrets
import time
from dataclasses import dataclass
from typing import Callable, Optional

from .errors import NotFoundError, ExpiredError, ExhaustedError, ValidationError
from .notify import MailTransport, NullMailTransport, DeliveryStatus
from .records import OtpChallenge
from .store import KeyValueStore, otp_key
from .users import UserDirectory

logger = logging.getLogger(__name__)

OTP_SUBJECT = 'DigiRakshak - Email Verification OTP'
OTP_HTML = """
<h2>DigiRakshak - Email Verification</h2>
<p>Your OTP for DigiRakshak login is: <strong>{code}</strong></p>
<p>This OTP will expire in {minutes} minutes.</p>
<p>If you didn't request this OTP, please ignore this email.</p>
<br>
<p>Stay secure with DigiRakshak!</p>
<p>Team DigiRakshak</p>
"""


def generate_code() -> str:
    """Uniform 6-digit code in 100000-999999"""
    return str(100000 + secrets.randbelow(900000))


@dataclass(frozen=True)
class IssuedOtp:
    code: str
    delivered: bool
    message: str
    status: DeliveryStatus


@dataclass(frozen=True)
class OtpVerification:
    success: bool
    message: str
    remaining_attempts: Optional[int] = None


class OtpAuthenticator:
    def __init__(self, store: KeyValueStore, directory: UserDirectory,
                 mailer: Optional[MailTransport] = None, ttl_seconds: int = 300,
                 max_attempts: int = 3, console_fallback: bool = True,
                 clock: Callable[[], float] = time.time):
        self.store = store
        self.directory = directory
        self.mailer = mailer or NullMailTransport()
        self.ttl_seconds = ttl_seconds
        self.max_attempts = max_attempts
        self.console_fallback = console_fallback
        self.clock = clock

    def _load(self, email: str) -> Optional[OtpChallenge]:
        raw = self.store.get_json(otp_key(email))
        if not isinstance(raw, dict):
            return None
        try:
            return OtpChallenge.from_dict(raw)
        except (KeyError, TypeError, ValueError):
            logger.warning("Discarding unreadable OTP challenge for %s", email)
            self.store.remove(otp_key(email))
            return None

    def _save(self, challenge: OtpChallenge) -> None:
        self.store.set_json(otp_key(challenge.email), challenge.to_dict())

    def _delete(self, email: str) -> None:
        self.store.remove(otp_key(email))

    def issue(self, email: str) -> IssuedOtp:
        """Create a fresh challenge for ``email``, replacing any previous one, and mail it."""
        email = (email or "").strip()
        if "@" not in email:
            raise ValidationError("Please enter a valid email address")

        now = self.clock()
        code = generate_code()
        self._save(OtpChallenge(
            code=code,
            email=email.lower(),
            issued_at=now,
            expires_at=now + self.ttl_seconds,
            attempts=0,
        ))

        minutes = max(1, self.ttl_seconds // 60)
        if self.mailer.is_available():
            status = self.mailer.send([email], OTP_SUBJECT, OTP_HTML.format(code=code, minutes=minutes))
            if status is DeliveryStatus.DELIVERED:
                logger.info("OTP sent to %s", email)
                return IssuedOtp(code, True,
                                 f"OTP sent to {email}. Please check your email and enter the 6-digit code.",
                                 status)
            return IssuedOtp(code, False,
                             "Failed to send OTP. Please check your email settings and try again.",
                             status)

        if self.console_fallback:
            # no mail backend configured: the log is the only way to read the code
            logger.warning("OTP for %s: %s", email, code)
            return IssuedOtp(code, False,
                             "OTP generated. Mail delivery is not configured; check the server log.",
                             DeliveryStatus.UNAVAILABLE)

        logger.error("No mail transport available, OTP for %s was not delivered", email)
        return IssuedOtp(code, False, "Email delivery is unavailable. Please try again later.",
                         DeliveryStatus.UNAVAILABLE)

    def verify(self, email: str, submitted: str) -> OtpVerification:
        challenge = self._load(email)
        if challenge is None:
            raise NotFoundError("OTP not found or expired. Please request a new OTP.")

        if self.clock() > challenge.expires_at:
            self._delete(email)
            raise ExpiredError("OTP has expired. Please request a new OTP.")

        if challenge.attempts >= self.max_attempts:
            self._delete(email)
            raise ExhaustedError("Too many failed attempts. Please request a new OTP.")

        if challenge.code == submitted:
            self._delete(email)
            self.directory.mark_verified(email)
            logger.info("OTP verified for %s", email)
            return OtpVerification(True, "Email verified successfully!")

        challenge.attempts += 1
        remaining = self.max_attempts - challenge.attempts
        if remaining <= 0:
            self._delete(email)
            logger.info("OTP attempts exhausted for %s", email)
            raise ExhaustedError("Too many failed attempts. Please request a new OTP.")

        self._save(challenge)
        return OtpVerification(False, f"Invalid OTP. {remaining} attempts remaining.", remaining)

    def resend(self, email: str) -> IssuedOtp:
        """Drop any pending challenge and issue a new one; cooldowns are the caller's job."""
        self._delete(email)
        return self.issue(email)

    def pending(self, email: str) -> Optional[OtpChallenge]:
        return self._load(email)
