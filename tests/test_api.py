import io
import os
import time

import pytest

import digirakshak.app as app_module

EMAIL = "rajesh@kumartextiles.com"
PASSWORD = "secret123"


@pytest.fixture
def registered(client, profile):
    res = client.post("/api/users/register", json=profile)
    assert res.status_code == 201
    return profile


def pending_code(app, email=EMAIL):
    with app.app_context():
        return app.extensions['digirakshak'].authenticator.pending(email).code


def login(client, app):
    res = client.post("/api/users/login", json={"email": EMAIL, "password": PASSWORD})
    assert res.status_code == 200
    code = pending_code(app)
    return client.post("/api/users/verify-otp", json={"email": EMAIL, "password": PASSWORD, "otp": code})


def test_backend_is_running(client):
    assert client.get("/api/test").status_code == 200
    res = client.get("/health")
    assert res.status_code == 200
    assert res.get_json()["status"] == "healthy"


def test_register_returns_public_user(client, profile):
    res = client.post("/api/users/register", json=profile)
    body = res.get_json()
    assert res.status_code == 201
    assert body["user"]["email"] == EMAIL
    assert body["user"]["isVerified"] is False
    assert "passwordHash" not in body["user"]


def test_register_duplicate(client, registered):
    res = client.post("/api/users/register", json=dict(registered, email=EMAIL.upper()))
    assert res.status_code == 409
    assert res.get_json() == {"success": False, "error": "User already exists with this email"}


def test_register_validation(client, profile):
    profile["password"] = "abc"
    res = client.post("/api/users/register", json=profile)
    assert res.status_code == 400


def test_full_sign_in_flow(client, app, registered):
    assert client.get("/api/users/me").status_code == 401

    res = client.post("/api/users/login", json={"email": EMAIL, "password": PASSWORD})
    body = res.get_json()
    assert res.status_code == 200
    assert body["success"] is True
    assert body["otp_sent"] is False
    assert body["resend_after"] == 60

    code = pending_code(app)
    res = client.post("/api/users/verify-otp", json={"email": EMAIL, "password": PASSWORD, "otp": code})
    assert res.status_code == 200
    assert res.get_json()["user"]["isVerified"] is True

    me = client.get("/api/users/me").get_json()
    assert me["email"] == EMAIL
    assert me["language"] == "Hindi"

    assert client.post("/api/users/logout").status_code == 200
    assert client.get("/api/users/me").status_code == 401


def test_login_errors(client, registered):
    res = client.post("/api/users/login", json={"email": EMAIL, "password": "wrong-password"})
    assert res.status_code == 401
    res = client.post("/api/users/login", json={"email": "ghost@example.com", "password": PASSWORD})
    assert res.status_code == 404
    res = client.post("/api/users/login", json={"email": EMAIL})
    assert res.status_code == 400


def test_verify_rejects_malformed_code(client, registered):
    res = client.post("/api/users/verify-otp", json={"email": EMAIL, "password": PASSWORD, "otp": "12ab"})
    assert res.status_code == 400
    assert res.get_json()["error"] == "Please enter a valid 6-digit OTP"


def test_wrong_codes_then_exhausted(client, app, registered):
    client.post("/api/users/login", json={"email": EMAIL, "password": PASSWORD})
    wrong = {"email": EMAIL, "password": PASSWORD, "otp": "000000"}

    res = client.post("/api/users/verify-otp", json=wrong)
    assert res.status_code == 401
    assert res.get_json()["remaining_attempts"] == 2
    client.post("/api/users/verify-otp", json=wrong)
    assert client.post("/api/users/verify-otp", json=wrong).status_code == 429
    assert client.post("/api/users/verify-otp", json=wrong).status_code == 404


def test_resend_cooldown(client, registered):
    client.post("/api/users/login", json={"email": EMAIL, "password": PASSWORD})
    res = client.post("/api/users/resend-otp", json={"email": EMAIL})
    assert res.status_code == 429
    assert "before requesting a new OTP" in res.get_json()["error"]


def test_resend_after_cooldown(client, app, registered):
    app.config["OTP_RESEND_COOLDOWN"] = 0
    client.post("/api/users/login", json={"email": EMAIL, "password": PASSWORD})
    client.post("/api/users/verify-otp", json={"email": EMAIL, "password": PASSWORD, "otp": "000000"})
    res = client.post("/api/users/resend-otp", json={"email": EMAIL})
    assert res.status_code == 200
    with app.app_context():
        assert app.extensions["digirakshak"].authenticator.pending(EMAIL).attempts == 0
    code = pending_code(app)
    res = client.post("/api/users/verify-otp", json={"email": EMAIL, "password": PASSWORD, "otp": code})
    assert res.status_code == 200


def test_email_scan_records_alert_and_notification(client, notifier):
    res = client.post("/api/scan/email", json={
        "content": "URGENT: verify account now",
        "sender": "x@fake-bank.com",
        "subject": "Security Alert",
    })
    body = res.get_json()
    assert res.status_code == 201
    assert body["isPhishing"] is True
    assert body["riskScore"] == 55
    assert body["label"] == "Warning"

    alerts = client.get("/api/alerts").get_json()
    assert alerts["summary"]["active"] == 1
    assert alerts["alerts"][0]["category"] == "phishing"
    assert notifier.sent and notifier.sent[0][0] == "DigiRakshak Security Alert"

    notifications = client.get("/api/notifications").get_json()
    assert notifications[0]["sender"] == "x@fake-bank.com"

    assert client.get("/api/health-score").get_json() == {"score": 90, "label": "Excellent"}


def test_clean_email_scan_raises_no_alert(client):
    res = client.post("/api/scan/email", json={"content": "Minutes from Monday's meeting attached"})
    assert res.status_code == 201
    assert res.get_json()["sender"] == "unknown@sender.com"
    assert client.get("/api/alerts").get_json()["alerts"] == []
    assert len(client.get("/api/notifications").get_json()) == 1


def test_empty_email_scan_is_rejected(client):
    assert client.post("/api/scan/email", json={"content": "  "}).status_code == 400


def test_website_scan(client):
    res = client.post("/api/scan/website", json={"url": "http://malware-host.com/free-software"})
    body = res.get_json()
    assert res.status_code == 201
    assert body["riskScore"] == 75
    assert body["label"] == "Dangerous"
    alert = client.get("/api/alerts").get_json()["alerts"][0]
    assert alert["title"] == "Suspicious Website"
    assert alert["severity"] == "high"


def test_file_scan_by_path(client, app):
    folder = app.config["UPLOAD_FOLDER"]
    os.makedirs(folder)
    with open(os.path.join(folder, "keygen.exe"), "wb") as f:
        f.write(b"MZ")
    res = client.post("/api/scan/file", json={"path": "keygen.exe"})
    body = res.get_json()
    assert res.status_code == 201
    assert body["fileName"] == "keygen.exe"
    assert body["isMalware"] is True
    assert body["fileSize"] == 2


def test_file_scan_upload(client, app):
    res = client.post("/api/scan/file", data={"file": (io.BytesIO(b"PK\x03\x04"), "free_crack.zip")},
                      content_type="multipart/form-data")
    body = res.get_json()
    assert res.status_code == 201
    assert body["fileName"] == "free_crack.zip"
    assert body["fileSize"] == 4
    assert body["isMalware"] is True
    # uploads are removed after scanning
    assert os.listdir(app.config["UPLOAD_FOLDER"]) == []


def test_file_scan_needs_a_file(client):
    assert client.post("/api/scan/file", json={}).status_code == 400


def test_scan_rate_limit(client, app):
    app.config["RATE_LIMIT_MAX"] = 2
    for _ in range(2):
        assert client.post("/api/scan/website", json={"url": "https://example.com"}).status_code == 201
    res = client.post("/api/scan/website", json={"url": "https://example.com"})
    assert res.status_code == 429


def test_alert_resolve_delete_and_voice(client, speech):
    client.post("/api/scan/website", json={"url": "http://malware-host.com"})
    alert_id = client.get("/api/alerts").get_json()["alerts"][0]["id"]

    res = client.post(f"/api/alerts/{alert_id}/voice")
    assert res.get_json()["voice"] == "delivered"
    assert speech.spoken[-1].text == "Suspicious website. Do not enter information on this site."

    assert client.post(f"/api/alerts/{alert_id}/resolve").status_code == 200
    assert client.get("/api/alerts").get_json()["summary"]["resolved"] == 1
    assert client.delete(f"/api/alerts/{alert_id}").status_code == 200
    assert client.delete(f"/api/alerts/{alert_id}").status_code == 404
    assert client.post("/api/alerts/unknown/resolve").status_code == 404
    assert client.post("/api/alerts/unknown/voice").status_code == 404


def test_darkweb_scan(client):
    res = client.post("/api/darkweb/scan", json={"email": EMAIL, "gst_number": "GST123456789"})
    body = res.get_json()
    assert res.status_code == 201
    assert body["found"] == 2
    assert body["breaches"][1]["value"] == "GST123***789"
    assert len(client.get("/api/darkweb/breaches").get_json()) == 2


def test_darkweb_scan_uses_session_profile(client, app, registered):
    login(client, app)
    res = client.post("/api/darkweb/scan", json={})
    assert res.status_code == 201
    assert res.get_json()["breaches"][0]["value"] == EMAIL


def test_darkweb_scan_needs_input(client):
    assert client.post("/api/darkweb/scan", json={}).status_code == 400


def test_monitoring_start_stop(client):
    assert client.get("/api/monitoring").get_json()["active"] is False
    assert client.post("/api/monitoring/start").get_json() == {"active": True}
    assert client.get("/api/monitoring").get_json()["active"] is True
    assert client.post("/api/monitoring/stop").get_json() == {"active": False}
    assert client.get("/api/monitoring").get_json()["active"] is False


def test_history_endpoint(client, app):
    with app.app_context():
        monitor = app.extensions['digirakshak'].monitor
        for _ in range(3):
            monitor.tick()
    assert len(client.get("/api/history").get_json()) == 3
    assert len(client.get("/api/history?limit=2").get_json()) == 2


def test_seed_demo_command(app, client):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["seed-demo"])
    assert "Demo user created" in result.output
    alerts = client.get("/api/alerts").get_json()
    assert alerts["summary"] == {"active": 2, "high": 2, "resolved": 1, "total": 3}
    assert alerts["alerts"][0]["title"] == "Phishing Email Detected"

    result = runner.invoke(args=["seed-demo"])
    assert "already exists" in result.output
    res = client.post("/api/users/login", json={"email": "demo@digirakshak.com", "password": "demo1234"})
    assert res.status_code == 200


def test_login_without_any_delivery_channel(client, app, registered):
    app.extensions['digirakshak'].authenticator.console_fallback = False
    res = client.post("/api/users/login", json={"email": EMAIL, "password": PASSWORD})
    assert res.status_code == 503
    assert res.get_json() == {"success": False, "error": "Email delivery is unavailable. Please try again later."}


def test_file_scan_stays_inside_upload_folder(client, app, tmp_path):
    os.makedirs(app.config["UPLOAD_FOLDER"])
    secret = tmp_path / "secret.txt"
    secret.write_text("x" * 100)
    for path in (str(secret), "../secret.txt", "/etc/passwd"):
        res = client.post("/api/scan/file", json={"path": path, "name": "notes.txt"})
        assert res.status_code == 400
        assert "fileSize" not in res.get_json()


def test_file_scan_by_name_only(client):
    res = client.post("/api/scan/file", json={"name": "setup.exe"})
    body = res.get_json()
    assert res.status_code == 201
    assert body["sizeKnown"] is False
    assert body["isMalware"] is True


@pytest.mark.parametrize("url,body", [
    ("/api/users/register", {"name": "Rajesh", "email": 42, "password": "secret123"}),
    ("/api/users/login", {"email": EMAIL, "password": 123456}),
    ("/api/users/verify-otp", {"email": ["a@b.com"], "password": PASSWORD, "otp": "123456"}),
    ("/api/users/resend-otp", {"email": {"address": EMAIL}}),
    ("/api/scan/email", {"content": 123}),
    ("/api/scan/email", {"content": "hello", "sender": 7}),
    ("/api/scan/website", {"url": ["http://a.test"]}),
    ("/api/scan/file", {"path": 5}),
    ("/api/scan/file", {"name": True}),
    ("/api/darkweb/scan", {"email": EMAIL, "gst_number": 123456789}),
])
def test_non_string_fields_are_rejected(client, url, body):
    res = client.post(url, json=body)
    assert res.status_code == 400
    assert res.get_json()["success"] is False


def test_wrong_password_keeps_the_code(client, app, registered):
    client.post("/api/users/login", json={"email": EMAIL, "password": PASSWORD})
    code = pending_code(app)

    res = client.post("/api/users/verify-otp", json={"email": EMAIL, "otp": code})
    assert res.status_code == 401
    with app.app_context():
        directory = app.extensions['digirakshak'].directory
        assert not directory.get_by_email(EMAIL).is_verified
    assert pending_code(app) == code

    res = client.post("/api/users/verify-otp", json={"email": EMAIL, "password": PASSWORD, "otp": code})
    assert res.status_code == 200


def test_stale_rate_entries_are_pruned(client):
    stale = time.time() - 3600
    app_module._rate_store["10.0.0.9"] = [stale]
    app_module._resend_store["old@example.com"] = stale

    client.post("/api/scan/website", json={"url": "https://example.com"})
    client.post("/api/users/resend-otp", json={"email": "new@example.com"})

    assert "10.0.0.9" not in app_module._rate_store
    assert "old@example.com" not in app_module._resend_store
    assert "new@example.com" in app_module._resend_store
