"""Simulated dark-web breach lookup.

No crawling happens here: the lookup returns the two canned findings the app
has always shown and keeps them in the store for the breach screen.
"""
from datetime import datetime, timedelta, timezone
from typing import List

from .errors import ValidationError
from .records import Breach
from .store import KeyValueStore, BREACHES_KEY


def mask_gst(gst_number: str) -> str:
    """Keep the first six and the characters from the tenth on, star the rest"""
    return gst_number[:6] + '***' + gst_number[9:]


class BreachMonitor:
    def __init__(self, store: KeyValueStore):
        self.store = store

    def check(self, email: str, gst_number: str) -> List[Breach]:
        if not email or "@" not in email:
            raise ValidationError("Please enter a valid email address")
        if not gst_number:
            raise ValidationError("Please enter your GST number")

        now = datetime.now(timezone.utc)
        breaches = [
            Breach(
                id='1',
                type='email',
                value=email,
                source='Data breach - TechCorp 2024',
                date_found=now.isoformat(),
                severity='high',
                status='active',
            ),
            Breach(
                id='2',
                type='gst',
                value=mask_gst(gst_number),
                source='Business database leak',
                date_found=(now - timedelta(days=7)).isoformat(),
                severity='medium',
                status='resolved',
            ),
        ]
        self.store.set_json(BREACHES_KEY, [b.to_dict() for b in breaches])
        return breaches

    def breaches(self) -> List[Breach]:
        raw = self.store.get_json(BREACHES_KEY, [])
        if not isinstance(raw, list):
            return []
        return [Breach.from_dict(b) for b in raw if isinstance(b, dict) and 'id' in b]
