"""Outbound channels: OTP mail, system notifications and spoken alerts.

The services only decide what to send and when. Each channel is a small
capability object whose methods report a ``DeliveryStatus`` instead of
raising, so a missing backend never breaks the calling flow.
"""
import enum
import logging
import smtplib
import threading
from dataclasses import dataclass
from email.mime.text import MIMEText
from typing import Iterable, Optional, Tuple

from .records import Alert

logger = logging.getLogger(__name__)

NOTIFICATION_TITLE = 'DigiRakshak Security Alert'


class DeliveryStatus(enum.Enum):
    DELIVERED = 'delivered'
    UNAVAILABLE = 'unavailable'
    FAILED = 'failed'
    SKIPPED = 'skipped'


# ---- Mail ----

class MailTransport:
    """Sends HTML mail; ``is_available`` tells whether a backend is configured."""

    def is_available(self) -> bool:
        return False

    def send(self, recipients: Iterable[str], subject: str, html_body: str) -> DeliveryStatus:
        return DeliveryStatus.UNAVAILABLE


class NullMailTransport(MailTransport):
    pass


class SmtpMailTransport(MailTransport):
    def __init__(self, host: Optional[str], port: int = 587, user: Optional[str] = None,
                 password: Optional[str] = None, sender: Optional[str] = None, timeout: float = 10):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.sender = sender or user
        self.timeout = timeout

    @classmethod
    def from_config(cls, cfg):
        return cls(
            host=cfg.get('SMTP_HOST'),
            port=int(cfg.get('SMTP_PORT', 587)),
            user=cfg.get('SMTP_USER'),
            password=cfg.get('SMTP_PASS'),
            sender=cfg.get('MAIL_SENDER'),
        )

    def is_available(self):
        return bool(self.host and self.user and self.password)

    def send(self, recipients, subject, html_body):
        if not self.is_available():
            return DeliveryStatus.UNAVAILABLE
        recipients = list(recipients)
        msg = MIMEText(html_body, 'html', 'utf-8')
        msg['Subject'] = subject
        msg['From'] = self.sender
        msg['To'] = ', '.join(recipients)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                server.starttls()
                server.login(self.user, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Email sending error: %s", e)
            return DeliveryStatus.FAILED
        return DeliveryStatus.DELIVERED


# ---- Notifications ----

class Notifier:
    def notify(self, title: str, body: str) -> DeliveryStatus:
        return DeliveryStatus.UNAVAILABLE


class NullNotifier(Notifier):
    pass


class LogNotifier(Notifier):
    """Writes notifications to the application log"""

    def notify(self, title, body):
        logger.warning("%s: %s", title, body)
        return DeliveryStatus.DELIVERED


# ---- Voice ----

@dataclass(frozen=True)
class VoiceUtterance:
    text: str
    language_code: str
    severity: str
    pitch: float
    rate: float
    volume: float = 1.0


class SpeechBackend:
    def speak(self, utterance: VoiceUtterance) -> DeliveryStatus:
        return DeliveryStatus.UNAVAILABLE

    def stop(self) -> None:
        pass


class NullSpeechBackend(SpeechBackend):
    pass


VOICE_TRANSLATIONS = {
    'Phishing Email Detected': {
        'Hindi': 'फिशिंग ईमेल का पता चला है। सावधान रहें।',
        'English': 'Phishing email detected. Be careful.',
        'Marathi': 'फिशिंग ईमेल आढळले आहे. सावध राहा.',
        'Gujarati': 'ફિશિંગ ઈમેલ મળ્યો છે. સાવચેત રહો.',
    },
    'Malware Detected': {
        'Hindi': 'मैलवेयर का पता चला है। तुरंत कार्रवाई करें।',
        'English': 'Malware detected. Take immediate action.',
        'Marathi': 'मालवेअर आढळले आहे. तातडीने कारवाई करा.',
        'Gujarati': 'મેલવેર મળ્યો છે. તાત્કાલિક પગલાં લો.',
    },
    'Suspicious Website': {
        'Hindi': 'संदिग्ध वेबसाइट। इस साइट पर जानकारी न दें।',
        'English': 'Suspicious website. Do not enter information on this site.',
        'Marathi': 'संशयास्पद वेबसाइट. या साइटवर माहिती देऊ नका.',
        'Gujarati': 'શંકાસ્પદ વેબસાઇટ. આ સાઇટ પર માહિતી આપશો નહીં.',
    },
}

LANGUAGE_CODES = {
    'English': 'en-US',
    'Hindi': 'hi-IN',
    'Marathi': 'mr-IN',
    'Gujarati': 'gu-IN',
    'Bengali': 'bn-IN',
    'Tamil': 'ta-IN',
    'Telugu': 'te-IN',
    'Kannada': 'kn-IN',
    'Malayalam': 'ml-IN',
    'Punjabi': 'pa-IN',
}


def localize(message: str, language: str) -> Tuple[str, str]:
    """Alert text and the language it is in.

    Languages without a translation get the English text, so the voice must
    be English too.
    """
    translations = VOICE_TRANSLATIONS.get(message, {})
    if language in translations:
        return translations[language], language
    return translations.get('English', message), 'English'


def language_code(language: str) -> str:
    return LANGUAGE_CODES.get(language, 'en-US')


class VoiceAlertService:
    """Builds localized utterances and plays one at a time."""

    def __init__(self, backend: Optional[SpeechBackend] = None):
        self.backend = backend or NullSpeechBackend()
        self._playing = threading.Lock()

    def build_utterance(self, message: str, language: str, severity: str) -> VoiceUtterance:
        high = severity == 'high'
        text, spoken = localize(message, language)
        return VoiceUtterance(
            text=text,
            language_code=language_code(spoken),
            severity=severity,
            pitch=1.2 if high else 1.0,
            rate=0.8 if high else 1.0,
        )

    def play(self, message: str, language: str = 'English', severity: str = 'medium') -> DeliveryStatus:
        if not self._playing.acquire(blocking=False):
            return DeliveryStatus.SKIPPED
        try:
            return self.backend.speak(self.build_utterance(message, language, severity))
        except Exception:
            logger.exception("Voice alert error")
            return DeliveryStatus.FAILED
        finally:
            self._playing.release()

    def stop(self) -> None:
        try:
            self.backend.stop()
        except Exception:
            logger.exception("Error stopping voice alert")


# ---- Dispatch ----

@dataclass(frozen=True)
class DispatchReport:
    notification: DeliveryStatus
    voice: DeliveryStatus


class AlertDispatcher:
    """Hands a recorded alert to the notification and voice channels."""

    def __init__(self, notifier: Optional[Notifier] = None, voice: Optional[VoiceAlertService] = None):
        self.notifier = notifier or NullNotifier()
        self.voice = voice or VoiceAlertService()

    def dispatch(self, alert: Alert, language: str = 'English') -> DispatchReport:
        try:
            notified = self.notifier.notify(NOTIFICATION_TITLE, alert.description)
        except Exception:
            logger.exception("Notification not available, alert stored locally")
            notified = DeliveryStatus.FAILED
        if notified is DeliveryStatus.UNAVAILABLE:
            logger.info("Notification not available, alert %s stored locally", alert.id)

        spoken = self.voice.play(alert.title, language, alert.severity)
        return DispatchReport(notification=notified, voice=spoken)
