import pytest

import digirakshak.app as app_module
from digirakshak.app import create_app
from digirakshak.notify import MailTransport, Notifier, SpeechBackend, DeliveryStatus
from digirakshak.services import build_services
from digirakshak.store import MemoryKeyValueStore


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeMailer(MailTransport):
    def __init__(self, available=True, status=DeliveryStatus.DELIVERED):
        self.available = available
        self.status = status
        self.sent = []

    def is_available(self):
        return self.available

    def send(self, recipients, subject, html_body):
        self.sent.append((list(recipients), subject, html_body))
        return self.status


class RecordingNotifier(Notifier):
    def __init__(self):
        self.sent = []

    def notify(self, title, body):
        self.sent.append((title, body))
        return DeliveryStatus.DELIVERED


class RecordingSpeech(SpeechBackend):
    def __init__(self):
        self.spoken = []

    def speak(self, utterance):
        self.spoken.append(utterance)
        return DeliveryStatus.DELIVERED


class ScriptedRandom:
    """Stands in for random.Random with predetermined draws"""

    def __init__(self, draws, randrange_value=1):
        self.draws = list(draws)
        self.randrange_value = randrange_value

    def random(self):
        return self.draws.pop(0) if self.draws else 0.99

    def randrange(self, start, stop=None):
        if stop is None:
            return min(self.randrange_value, start - 1)
        return max(start, min(self.randrange_value, stop - 1))


TEST_CONFIG = {
    'OTP_TTL_SECONDS': 300,
    'OTP_MAX_ATTEMPTS': 3,
    'OTP_CONSOLE_FALLBACK': True,
    'ALERT_RETENTION': 50,
    'SCAN_HISTORY_RETENTION': 100,
    'NOTIFICATION_HISTORY_RETENTION': 100,
    'MONITOR_INTERVAL_SECONDS': 3600,
}


@pytest.fixture
def store():
    return MemoryKeyValueStore()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def speech():
    return RecordingSpeech()


@pytest.fixture
def services(store, clock, mailer, notifier, speech):
    svc = build_services(TEST_CONFIG, store, mailer=mailer, notifier=notifier,
                         speech=speech, clock=clock, rng=ScriptedRandom([]))
    yield svc
    svc.monitor.stop()


@pytest.fixture
def profile():
    return {
        'name': 'Rajesh Kumar',
        'email': 'rajesh@kumartextiles.com',
        'password': 'secret123',
        'confirm_password': 'secret123',
        'company_name': 'Kumar Textiles',
        'gst_number': 'GST123456789',
        'language': 'Hindi',
    }


@pytest.fixture
def app(tmp_path, notifier, speech):
    app_module._rate_store.clear()
    app_module._resend_store.clear()
    app = create_app('testing', notifier=notifier, speech=speech)
    app.config['UPLOAD_FOLDER'] = str(tmp_path / 'uploads')
    yield app
    app.extensions['digirakshak'].monitor.stop()


@pytest.fixture
def client(app):
    return app.test_client()
