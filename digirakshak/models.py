from datetime import datetime, timezone
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def _utcnow():
    return datetime.now(timezone.utc)


class KeyValue(db.Model):
    """One JSON blob of the device store"""
    __tablename__ = 'kv_entries'

    key = db.Column(db.String(320), primary_key=True)
    value = db.Column(db.Text, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    def __repr__(self):
        return f'<KeyValue {self.key}>'
