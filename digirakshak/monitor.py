"""Periodic simulated device scan.

The scan is placeholder logic: two independent low-probability draws per tick.
It is not a detection model.
"""
import contextlib
import logging
import random
import threading
from typing import Callable, ContextManager, List, Optional

from .ledger import AlertLedger
from .notify import AlertDispatcher
from .records import Alert, ScanHistoryEntry

logger = logging.getLogger(__name__)

NETWORK_THREAT_PROBABILITY = 0.10
APP_BEHAVIOR_PROBABILITY = 0.05


class MonitorHandle:
    """Owns the pending timer of one monitoring run."""

    def __init__(self):
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def _arm(self, interval: float, fn: Callable[[], None]) -> None:
        with self._lock:
            if self._cancelled:
                return
            self._timer = threading.Timer(interval, fn)
            self._timer.daemon = True
            self._timer.start()

    def cancel(self) -> None:
        with self._lock:
            self._cancelled = True
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None


class BackgroundMonitor:
    def __init__(self, ledger: AlertLedger, dispatcher: AlertDispatcher, interval: float = 30,
                 rng: Optional[random.Random] = None,
                 context_factory: Optional[Callable[[], ContextManager]] = None,
                 language_provider: Optional[Callable[[], str]] = None):
        self.ledger = ledger
        self.dispatcher = dispatcher
        self.interval = interval
        self.rng = rng or random.Random()
        self.context_factory = context_factory or contextlib.nullcontext
        self.language_provider = language_provider or (lambda: 'English')
        self._handle: Optional[MonitorHandle] = None
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return self._handle is not None

    def start(self) -> MonitorHandle:
        """Start ticking every ``interval`` seconds; a no-op when already running."""
        with self._lock:
            if self._handle is not None:
                return self._handle
            handle = MonitorHandle()
            self._handle = handle
        self._schedule(handle)
        logger.info("Background security monitoring started")
        return handle

    def stop(self) -> None:
        """Cancel the pending tick. A tick already running finishes on its own."""
        with self._lock:
            handle, self._handle = self._handle, None
        if handle is not None:
            handle.cancel()
            logger.info("Background security monitoring stopped")

    def _schedule(self, handle: MonitorHandle) -> None:
        handle._arm(self.interval, lambda: self._run(handle))

    def _run(self, handle: MonitorHandle) -> None:
        if handle.cancelled:
            return
        try:
            with self.context_factory():
                self.tick()
        except Exception:
            logger.exception("Background scan error")
        finally:
            self._schedule(handle)

    def scan_device_threats(self) -> List[str]:
        threats = []
        if self.rng.random() < NETWORK_THREAT_PROBABILITY:
            threats.append('Suspicious network activity detected')
        if self.rng.random() < APP_BEHAVIOR_PROBABILITY:
            threats.append('Potentially malicious app behavior detected')
        return threats

    def tick(self) -> Optional[Alert]:
        """Run one simulated scan; returns the alert raised, if any."""
        alert = None
        threats = self.scan_device_threats()
        if threats:
            alert = self.ledger.record_alert(Alert(
                title='Security Threat Detected',
                description=', '.join(threats),
                severity='high',
                category='malware',
            ))
            self.dispatcher.dispatch(alert, self.language_provider())

        self.ledger.record_scan_history(ScanHistoryEntry(
            threats_found=self.rng.randrange(3),
            files_scanned=self.rng.randrange(50, 150),
        ))
        return alert
