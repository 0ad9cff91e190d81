"""Flat key-value persistence.

Every collection the services keep (users, alerts, scan history, ...) lives
as one JSON document under a fixed key. There are no transactions: a
read-modify-write on the same key from two triggers is last-write-wins.
"""
import json
import logging
import threading
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from .errors import PersistenceError
from .models import db, KeyValue

logger = logging.getLogger(__name__)

USERS_KEY = 'registered_users'
SESSION_KEY = 'current_user'
ALERTS_KEY = 'security_alerts'
SCAN_HISTORY_KEY = 'scan_history'
BREACHES_KEY = 'dark_web_breaches'
EMAIL_NOTIFICATIONS_KEY = 'email_notifications'
OTP_KEY_PREFIX = 'otp_'


def otp_key(email: str) -> str:
    return f"{OTP_KEY_PREFIX}{email.strip().lower()}"


class KeyValueStore:
    """String-keyed store of JSON blobs"""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> None:
        raise NotImplementedError

    def get_json(self, key: str, default: Any = None) -> Any:
        """Decode the blob under ``key``; unreadable JSON counts as missing."""
        raw = self.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Stored value for %r is not valid JSON, resetting it", key)
            return default

    def set_json(self, key: str, value: Any) -> None:
        self.set(key, json.dumps(value, ensure_ascii=False))


class MemoryKeyValueStore(KeyValueStore):
    """Process-local store, used by scripts and unit tests"""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key):
        with self._lock:
            return self._data.get(key)

    def set(self, key, value):
        with self._lock:
            self._data[key] = value

    def remove(self, key):
        with self._lock:
            self._data.pop(key, None)

    def keys(self):
        with self._lock:
            return sorted(self._data)


class SqlKeyValueStore(KeyValueStore):
    """Store backed by the ``kv_entries`` table; needs an application context"""

    def get(self, key):
        try:
            row = db.session.get(KeyValue, key)
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error("Store read failed for %r: %s", key, e)
            raise PersistenceError('Could not read saved data. Please try again.') from e
        return row.value if row is not None else None

    def set(self, key, value):
        try:
            row = db.session.get(KeyValue, key)
            if row is None:
                db.session.add(KeyValue(key=key, value=value))
            else:
                row.value = value
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error("Store write failed for %r: %s", key, e)
            raise PersistenceError('Could not save data. Please try again.') from e

    def remove(self, key):
        try:
            row = db.session.get(KeyValue, key)
            if row is not None:
                db.session.delete(row)
                db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error("Store delete failed for %r: %s", key, e)
            raise PersistenceError('Could not update saved data. Please try again.') from e

    def ping(self) -> None:
        """Raise PersistenceError if the database cannot be reached"""
        try:
            db.session.execute(db.text('SELECT 1'))
        except SQLAlchemyError as e:
            db.session.rollback()
            raise PersistenceError(str(e)) from e
