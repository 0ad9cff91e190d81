"""Service objects built once per application, plus the scan flows that tie them together."""
import logging
import os
import random
from dataclasses import dataclass
from typing import Callable, ContextManager, Optional

from .darkweb import BreachMonitor
from .ledger import AlertLedger
from .monitor import BackgroundMonitor
from .notify import (
    AlertDispatcher, VoiceAlertService, MailTransport, Notifier, SpeechBackend,
    SmtpMailTransport, LogNotifier, NullSpeechBackend,
)
from .otp import OtpAuthenticator
from .records import Alert, EmailAnalysis, ThreatAnalysis, FileAnalysis
from .scanner import analyze_email, analyze_website, analyze_file
from .store import KeyValueStore
from .users import UserDirectory

logger = logging.getLogger(__name__)


@dataclass
class Services:
    store: KeyValueStore
    directory: UserDirectory
    authenticator: OtpAuthenticator
    ledger: AlertLedger
    voice: VoiceAlertService
    dispatcher: AlertDispatcher
    breaches: BreachMonitor
    monitor: Optional[BackgroundMonitor] = None
    size_probe: Callable[[str], int] = os.path.getsize

    def preferred_language(self) -> str:
        session = self.directory.current_session()
        return (session or {}).get('language') or 'English'

    def _raise_alert(self, title: str, description: str, severity: str, category: str) -> Alert:
        alert = self.ledger.record_alert(Alert(
            title=title, description=description, severity=severity, category=category,
        ))
        self.dispatcher.dispatch(alert, self.preferred_language())
        return alert

    def scan_email(self, content: str, sender: str = 'unknown@sender.com',
                   subject: str = 'Email Security Scan') -> EmailAnalysis:
        analysis = analyze_email(content, sender, subject)
        if analysis.is_phishing:
            self._raise_alert(
                'Phishing Email Detected',
                f"Suspicious email from {analysis.sender} (risk {analysis.risk_score}%)",
                'high', 'phishing',
            )
        self.ledger.record_email_notification(analysis)
        return analysis

    def scan_website(self, url: str) -> ThreatAnalysis:
        analysis = analyze_website(url)
        if analysis.is_malware or analysis.is_phishing:
            self._raise_alert(
                'Suspicious Website',
                f"{analysis.url} flagged (risk {analysis.risk_score}%)",
                'high' if analysis.is_malware else 'medium', 'suspicious',
            )
        return analysis

    def scan_file(self, path: str, name: str) -> FileAnalysis:
        analysis = analyze_file(path, name, self.size_probe)
        if analysis.is_malware:
            self._raise_alert(
                'Malware Detected',
                f"{analysis.file_name} flagged (risk {analysis.risk_score}%)",
                'high', 'malware',
            )
        return analysis


def build_services(cfg, store: KeyValueStore, mailer: Optional[MailTransport] = None,
                   notifier: Optional[Notifier] = None, speech: Optional[SpeechBackend] = None,
                   context_factory: Optional[Callable[[], ContextManager]] = None,
                   rng: Optional[random.Random] = None, clock=None) -> Services:
    """Wire every service from a config mapping (Flask ``app.config`` or a dict)."""
    directory = UserDirectory(store)
    otp_kwargs = {}
    if clock is not None:
        otp_kwargs['clock'] = clock
    authenticator = OtpAuthenticator(
        store, directory,
        mailer=mailer or SmtpMailTransport.from_config(cfg),
        ttl_seconds=int(cfg.get('OTP_TTL_SECONDS', 300)),
        max_attempts=int(cfg.get('OTP_MAX_ATTEMPTS', 3)),
        console_fallback=bool(cfg.get('OTP_CONSOLE_FALLBACK', True)),
        **otp_kwargs,
    )
    ledger = AlertLedger(
        store,
        alert_retention=int(cfg.get('ALERT_RETENTION', 50)),
        history_retention=int(cfg.get('SCAN_HISTORY_RETENTION', 100)),
        notification_retention=int(cfg.get('NOTIFICATION_HISTORY_RETENTION', 100)),
    )
    voice = VoiceAlertService(speech or NullSpeechBackend())
    dispatcher = AlertDispatcher(notifier or LogNotifier(), voice)

    services = Services(
        store=store,
        directory=directory,
        authenticator=authenticator,
        ledger=ledger,
        voice=voice,
        dispatcher=dispatcher,
        breaches=BreachMonitor(store),
    )
    services.monitor = BackgroundMonitor(
        ledger, dispatcher,
        interval=float(cfg.get('MONITOR_INTERVAL_SECONDS', 30)),
        rng=rng,
        context_factory=context_factory,
        language_provider=services.preferred_language,
    )
    return services
