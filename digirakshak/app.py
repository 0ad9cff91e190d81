import logging
import os
import time
import uuid
from datetime import datetime, timezone

import click
from flask import Flask, Blueprint, current_app, request, jsonify
from flask_cors import CORS
from flask_migrate import Migrate
from werkzeug.utils import secure_filename

from .config import config
from .errors import (
    DigiRakshakError, PersistenceError, RateLimitError, ValidationError, NotFoundError,
    TransportUnavailable,
)
from .ledger import health_label
from .models import db
from .notify import DeliveryStatus
from .records import Alert
from .scanner import score_to_label
from .services import build_services
from .store import SqlKeyValueStore

logger = logging.getLogger(__name__)

api = Blueprint('api', __name__)
migrate = Migrate()

# Rate limiting stores, per process
_rate_store = {}
_resend_store = {}

SAMPLE_ALERTS = [
    ('Phishing Email Detected', 'Suspicious email from fake-bank@suspicious.com detected', 'high', 'phishing', 'active'),
    ('Malicious Website Blocked', 'Attempted access to malware-host.com blocked', 'medium', 'malware', 'resolved'),
    ('Dark Web Alert', 'Your email found in recent data breach', 'high', 'darkweb', 'active'),
]


def services():
    return current_app.extensions['digirakshak']


def payload() -> dict:
    data = request.get_json(force=True, silent=True)
    return data if isinstance(data, dict) else {}


def text_field(data: dict, key: str, strip: bool = True) -> str:
    """String value of ``key``; missing or null reads as empty"""
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"Field '{key}' must be a string")
    return value.strip() if strip else value


def too_many_requests(ip):
    """Rate limiting check"""
    now = time.time()
    window = current_app.config['RATE_LIMIT_WINDOW']
    max_requests = current_app.config['RATE_LIMIT_MAX']

    for key in [k for k, ts in _rate_store.items() if not ts or ts[-1] <= now - window]:
        del _rate_store[key]

    arr = _rate_store.get(ip, [])
    arr = [t for t in arr if t > now - window]
    arr.append(now)
    _rate_store[ip] = arr
    return len(arr) > max_requests


def check_scan_rate():
    if too_many_requests(request.remote_addr or "unknown"):
        raise RateLimitError("rate limit exceeded")


def resend_wait(email: str) -> int:
    """Seconds left before another code may be sent to ``email``"""
    cooldown = current_app.config['OTP_RESEND_COOLDOWN']
    now = time.time()
    for key in [k for k, last in _resend_store.items() if last + cooldown <= now]:
        del _resend_store[key]

    last = _resend_store.get(email.strip().lower())
    if last is None:
        return 0
    return max(0, int(last + cooldown - now + 0.999))


def upload_path(path: str) -> str:
    """Resolve ``path`` inside UPLOAD_FOLDER; anything outside it is rejected"""
    folder = os.path.realpath(current_app.config['UPLOAD_FOLDER'])
    resolved = os.path.realpath(os.path.join(folder, path))
    if os.path.commonpath([folder, resolved]) != folder:
        raise ValidationError("File must be inside the upload folder")
    return resolved


def note_code_sent(email: str):
    _resend_store[email.strip().lower()] = time.time()


def issue_status(issued) -> int:
    """HTTP status for an OTP send: 200 unless no code reached anyone"""
    if issued.delivered:
        return 200
    if issued.status is DeliveryStatus.UNAVAILABLE:
        if not services().authenticator.console_fallback:
            raise TransportUnavailable(issued.message)
        return 200
    return 502


# ========== AUTHENTICATION ENDPOINTS ==========

@api.route("/users/register", methods=["POST"])
def register_user():
    """Register a new user"""
    user = services().directory.register(payload())
    return jsonify({
        "success": True,
        "message": "Your account has been created successfully. Please sign in to verify your email.",
        "user": user.public_dict()
    }), 201


@api.route("/users/login", methods=["POST"])
def login_user():
    """Check the password, then mail a one-time code"""
    data = payload()
    email = text_field(data, "email")
    password = text_field(data, "password", strip=False)

    if not email or not password:
        raise ValidationError("Please fill in all fields")
    if "@" not in email:
        raise ValidationError("Please enter a valid email address")

    svc = services()
    svc.directory.check_password(email, password)
    issued = svc.authenticator.issue(email)
    note_code_sent(email)

    status = issue_status(issued)
    return jsonify({
        "success": status == 200,
        "otp_sent": issued.delivered,
        "message": issued.message,
        "resend_after": current_app.config['OTP_RESEND_COOLDOWN']
    }), status


@api.route("/users/verify-otp", methods=["POST"])
def verify_otp():
    """Verify the one-time code and complete sign-in"""
    data = payload()
    email = text_field(data, "email")
    password = text_field(data, "password", strip=False)
    code = data.get("otp")

    if not isinstance(code, str) or len(code) != 6 or not code.isdigit():
        raise ValidationError("Please enter a valid 6-digit OTP")

    svc = services()
    # credentials first: a failed password check must not consume the code
    svc.directory.check_password(email, password)
    result = svc.authenticator.verify(email, code)
    if not result.success:
        return jsonify({
            "success": False,
            "error": result.message,
            "remaining_attempts": result.remaining_attempts
        }), 401

    user = svc.directory.authenticate(email, password)
    return jsonify({
        "success": True,
        "message": "Login successful!",
        "user": user.public_dict()
    }), 200


@api.route("/users/resend-otp", methods=["POST"])
def resend_otp():
    """Send a new code once the cooldown has passed"""
    email = text_field(payload(), "email")
    if "@" not in email:
        raise ValidationError("Please enter a valid email address")

    wait = resend_wait(email)
    if wait > 0:
        raise RateLimitError(f"Please wait {wait} seconds before requesting a new OTP")

    issued = services().authenticator.resend(email)
    note_code_sent(email)
    status = issue_status(issued)
    return jsonify({"success": status == 200, "otp_sent": issued.delivered, "message": issued.message}), status


@api.route("/users/logout", methods=["POST"])
def logout_user():
    """Logout user"""
    services().directory.clear_session()
    return jsonify({"success": True, "message": "Logged out successfully"}), 200


@api.route("/users/me", methods=["GET"])
def get_current_user():
    """Get current logged-in user"""
    session = services().directory.current_session()
    if not session:
        return jsonify({"error": "Not authenticated"}), 401
    return jsonify(session), 200


# ========== SCAN ENDPOINTS ==========

@api.route("/scan/email", methods=["POST"])
def scan_email():
    """Scan an e-mail for phishing"""
    check_scan_rate()
    data = payload()
    content = text_field(data, "content", strip=False)
    if not content.strip():
        raise ValidationError("Please enter email content to scan")

    analysis = services().scan_email(
        content,
        text_field(data, "sender") or "unknown@sender.com",
        text_field(data, "subject") or "Email Security Scan",
    )
    return jsonify({"label": score_to_label(analysis.risk_score), **analysis.to_dict()}), 201


@api.route("/scan/website", methods=["POST"])
def scan_website():
    """Scan a URL"""
    check_scan_rate()
    url = text_field(payload(), "url")
    if not url:
        raise ValidationError("Please enter a website URL to scan")

    analysis = services().scan_website(url)
    return jsonify({"label": score_to_label(analysis.risk_score), **analysis.to_dict()}), 201


@api.route("/scan/file", methods=["POST"])
def scan_file():
    """Scan an uploaded file, or one already in the upload folder given by path"""
    check_scan_rate()
    upload = request.files.get("file")
    if upload is not None and upload.filename:
        name = upload.filename
        folder = current_app.config['UPLOAD_FOLDER']
        os.makedirs(folder, exist_ok=True)
        path = os.path.join(folder, f"{uuid.uuid4().hex}_{secure_filename(name) or 'upload'}")
        upload.save(path)
        try:
            analysis = services().scan_file(path, name)
        finally:
            try:
                os.remove(path)
            except OSError:
                logger.warning("Could not remove uploaded file %s", path)
    else:
        data = payload()
        path = text_field(data, "path")
        name = text_field(data, "name") or os.path.basename(path)
        if not path and not name:
            raise ValidationError("Please select a file to scan")
        analysis = services().scan_file(upload_path(path) if path else "", name)

    return jsonify({"label": score_to_label(analysis.risk_score), **analysis.to_dict()}), 201


# ========== LEDGER ENDPOINTS ==========

@api.route("/alerts", methods=["GET"])
def list_alerts():
    ledger = services().ledger
    return jsonify({
        "alerts": [a.to_dict() for a in ledger.list_alerts()],
        "summary": ledger.alert_summary()
    })


@api.route("/alerts/<alert_id>/resolve", methods=["POST"])
def resolve_alert(alert_id):
    if not services().ledger.resolve(alert_id):
        raise NotFoundError("Alert not found")
    return jsonify({"success": True, "message": "Alert marked as resolved"})


@api.route("/alerts/<alert_id>", methods=["DELETE"])
def delete_alert(alert_id):
    if not services().ledger.delete(alert_id):
        raise NotFoundError("Alert not found")
    return jsonify({"success": True, "message": "Alert deleted"})


@api.route("/alerts/<alert_id>/voice", methods=["POST"])
def play_alert(alert_id):
    """Speak a stored alert in the user's language"""
    svc = services()
    alert = svc.ledger.get_alert(alert_id)
    if alert is None:
        raise NotFoundError("Alert not found")
    status = svc.voice.play(alert.title, svc.preferred_language(), alert.severity)
    return jsonify({"success": True, "voice": status.value})


@api.route("/history", methods=["GET"])
def history():
    """Get scan history"""
    limit = request.args.get('limit', 100, type=int)
    entries = services().ledger.scan_history()[:max(0, limit)]
    return jsonify([e.to_dict() for e in entries])


@api.route("/notifications", methods=["GET"])
def notifications():
    """E-mail scan results, newest first"""
    return jsonify([n.to_dict() for n in services().ledger.notification_history()])


@api.route("/health-score", methods=["GET"])
def health_score():
    score = services().ledger.compute_health_score()
    return jsonify({"score": score, "label": health_label(score)})


# ========== DARK WEB ENDPOINTS ==========

@api.route("/darkweb/scan", methods=["POST"])
def darkweb_scan():
    svc = services()
    data = payload()
    session = svc.directory.current_session() or {}
    email = text_field(data, "email") or (session.get("email") or "").strip()
    gst = text_field(data, "gst_number") or (session.get("gstNumber") or "").strip()

    found = svc.breaches.check(email, gst)
    return jsonify({
        "found": len(found),
        "breaches": [b.to_dict() for b in found],
        "next_scan_hours": 24
    }), 201


@api.route("/darkweb/breaches", methods=["GET"])
def darkweb_breaches():
    return jsonify([b.to_dict() for b in services().breaches.breaches()])


# ========== MONITORING ENDPOINTS ==========

@api.route("/monitoring", methods=["GET"])
def monitoring_status():
    monitor = services().monitor
    return jsonify({"active": monitor.active, "interval_seconds": monitor.interval})


@api.route("/monitoring/start", methods=["POST"])
def monitoring_start():
    services().monitor.start()
    return jsonify({"active": True})


@api.route("/monitoring/stop", methods=["POST"])
def monitoring_stop():
    services().monitor.stop()
    return jsonify({"active": False})


# ========== APPLICATION ==========

def handle_error(e: DigiRakshakError):
    if isinstance(e, PersistenceError):
        logger.error("Persistence error: %s", e.message)
        return jsonify({"success": False, "error": "Something went wrong. Please try again."}), e.status_code
    return jsonify({"success": False, "error": e.message}), e.status_code


def seed_demo(svc):
    """Create a verified demo account and the sample alerts"""
    email = 'demo@digirakshak.com'
    if svc.directory.exists(email):
        click.echo(f"Demo user already exists: {email}")
    else:
        svc.directory.register({
            'name': 'Demo User',
            'email': email,
            'password': 'demo1234',
            'company_name': 'Demo Textiles',
            'gst_number': 'GST123456789',
            'language': 'English',
        })
        svc.directory.mark_verified(email)
        click.echo(f"Demo user created: {email} / demo1234")

    if not svc.ledger.list_alerts():
        for title, description, severity, category, status in reversed(SAMPLE_ALERTS):
            svc.ledger.record_alert(Alert(
                title=title, description=description, severity=severity,
                category=category, status=status,
            ))
        click.echo(f"Added {len(SAMPLE_ALERTS)} sample alerts")


def create_app(config_name=None, **service_overrides):
    """Application factory; ``service_overrides`` are passed to ``build_services``."""
    app = Flask(__name__)
    app.config.from_object(config[config_name or os.getenv('FLASK_ENV', 'development')])

    logging.basicConfig(level=app.config['LOG_LEVEL'],
                        format='%(asctime)s %(levelname)s %(name)s: %(message)s')

    CORS(app,
         origins=app.config['CORS_ORIGINS'],
         supports_credentials=True,
         allow_headers=["Content-Type", "Authorization"])

    db.init_app(app)
    migrate.init_app(app, db)

    with app.app_context():
        db.create_all()

    app.extensions['digirakshak'] = build_services(
        app.config, SqlKeyValueStore(), context_factory=app.app_context, **service_overrides
    )

    app.register_blueprint(api, url_prefix='/api')
    app.register_error_handler(DigiRakshakError, handle_error)

    @app.route("/health")
    def health():
        """Health check endpoint"""
        try:
            services().store.ping()
            return jsonify({"status": "healthy", "database": "connected"}), 200
        except PersistenceError as e:
            return jsonify({"status": "unhealthy", "error": e.message}), 500

    @app.route("/api/test")
    def test():
        """Test endpoint to verify backend is running"""
        return jsonify({"message": "Backend is running!", "timestamp": datetime.now(timezone.utc).isoformat()}), 200

    @app.cli.command("seed-demo")
    def seed_demo_command():
        """Create a demo account and sample alerts."""
        seed_demo(app.extensions['digirakshak'])

    if app.config['MONITOR_AUTOSTART']:
        app.extensions['digirakshak'].monitor.start()

    return app


if __name__ == "__main__":
    app = create_app()
    print("=" * 60)
    print("Starting DigiRakshak Backend")
    print("=" * 60)
    print("API Base URL: http://127.0.0.1:8000/api")
    print("Health check: http://127.0.0.1:8000/health")
    print("=" * 60)
    app.run(host="127.0.0.1", port=8000)
