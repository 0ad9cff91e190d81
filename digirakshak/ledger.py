"""Security alerts, scan history and the derived cyber health score."""
import logging
import threading
from typing import List, Optional

from .errors import PersistenceError
from .records import Alert, ScanHistoryEntry, EmailAnalysis
from .store import KeyValueStore, ALERTS_KEY, SCAN_HISTORY_KEY, EMAIL_NOTIFICATIONS_KEY

logger = logging.getLogger(__name__)

DEFAULT_HEALTH_SCORE = 85
RECENT_SCANS = 5


def health_label(score: int) -> str:
    if score >= 80: return "Excellent"
    if score >= 60: return "Good"
    return "Needs Improvement"


class AlertLedger:
    """Newest-first, capacity-bounded lists kept in the key-value store.

    The lock serialises read-modify-write cycles made through this object.
    It does not protect against other processes sharing the same store.
    """

    def __init__(self, store: KeyValueStore, alert_retention: int = 50,
                 history_retention: int = 100, notification_retention: int = 100):
        self.store = store
        self.alert_retention = alert_retention
        self.history_retention = history_retention
        self.notification_retention = notification_retention
        self._lock = threading.RLock()

    def _load_list(self, key: str) -> list:
        raw = self.store.get_json(key, [])
        return [x for x in raw if isinstance(x, dict)] if isinstance(raw, list) else []

    def _prepend(self, key: str, item: dict, cap: int) -> None:
        with self._lock:
            items = self._load_list(key)
            items.insert(0, item)
            self.store.set_json(key, items[:cap])

    # ---------- alerts ----------

    def list_alerts(self) -> List[Alert]:
        alerts = []
        for a in self._load_list(ALERTS_KEY):
            try:
                alerts.append(Alert.from_dict(a))
            except (KeyError, ValueError):
                logger.warning("Skipping malformed stored alert: %r", a)
        return alerts

    def active_alerts(self) -> List[Alert]:
        return [a for a in self.list_alerts() if a.is_active]

    def get_alert(self, alert_id: str) -> Optional[Alert]:
        for a in self.list_alerts():
            if a.id == alert_id:
                return a
        return None

    def record_alert(self, alert: Alert) -> Alert:
        self._prepend(ALERTS_KEY, alert.to_dict(), self.alert_retention)
        logger.info("Recorded %s alert %s: %s", alert.severity, alert.id, alert.title)
        return alert

    def resolve(self, alert_id: str) -> bool:
        """Mark an alert resolved. Unknown ids are a no-op returning False."""
        with self._lock:
            items = self._load_list(ALERTS_KEY)
            for item in items:
                if str(item.get("id")) == alert_id:
                    if item.get("status") != "resolved":
                        item["status"] = "resolved"
                        self.store.set_json(ALERTS_KEY, items)
                    return True
            return False

    def delete(self, alert_id: str) -> bool:
        with self._lock:
            items = self._load_list(ALERTS_KEY)
            kept = [i for i in items if str(i.get("id")) != alert_id]
            if len(kept) == len(items):
                return False
            self.store.set_json(ALERTS_KEY, kept)
            return True

    def alert_summary(self) -> dict:
        alerts = self.list_alerts()
        return {
            "active": sum(1 for a in alerts if a.status == "active"),
            "high": sum(1 for a in alerts if a.severity == "high"),
            "resolved": sum(1 for a in alerts if a.status == "resolved"),
            "total": len(alerts),
        }

    # ---------- scan history ----------

    def record_scan_history(self, entry: ScanHistoryEntry) -> ScanHistoryEntry:
        self._prepend(SCAN_HISTORY_KEY, entry.to_dict(), self.history_retention)
        return entry

    def scan_history(self) -> List[ScanHistoryEntry]:
        entries = []
        for e in self._load_list(SCAN_HISTORY_KEY):
            try:
                entries.append(ScanHistoryEntry.from_dict(e))
            except (TypeError, ValueError):
                logger.warning("Skipping malformed scan history entry: %r", e)
        return entries

    # ---------- e-mail notification history ----------

    def record_email_notification(self, analysis: EmailAnalysis) -> None:
        self._prepend(EMAIL_NOTIFICATIONS_KEY, analysis.to_dict(), self.notification_retention)

    def notification_history(self) -> List[EmailAnalysis]:
        history = []
        for e in self._load_list(EMAIL_NOTIFICATIONS_KEY):
            try:
                history.append(EmailAnalysis.from_dict(e))
            except (TypeError, ValueError):
                logger.warning("Skipping malformed e-mail notification: %r", e)
        return history

    # ---------- health ----------

    def compute_health_score(self) -> int:
        """100, minus 10 per active alert, minus 5x the mean threats of the last scans."""
        try:
            active = len(self.active_alerts())
            recent = self.scan_history()[:RECENT_SCANS]
        except PersistenceError:
            logger.exception("Could not read ledger, using default health score")
            return DEFAULT_HEALTH_SCORE

        avg_threats = sum(e.threats_found for e in recent) / max(len(recent), 1)
        score = 100 - active * 10 - avg_threats * 5
        return max(0, min(100, int(score)))
