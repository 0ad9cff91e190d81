import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name, default):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    """Base configuration"""
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-me-in-production')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', 'sqlite:///digirakshak.db')

    CORS_ORIGINS = [o.strip() for o in os.getenv(
        'CORS_ORIGINS', 'http://127.0.0.1:8081,http://localhost:8081'
    ).split(',') if o.strip()]

    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

    # Rate limiting
    RATE_LIMIT_WINDOW = int(os.getenv('RATE_LIMIT_WINDOW', 60))
    RATE_LIMIT_MAX = int(os.getenv('RATE_LIMIT_MAX', 30))

    # One-time codes
    OTP_TTL_SECONDS = int(os.getenv('OTP_TTL_SECONDS', 300))
    OTP_MAX_ATTEMPTS = int(os.getenv('OTP_MAX_ATTEMPTS', 3))
    OTP_RESEND_COOLDOWN = int(os.getenv('OTP_RESEND_COOLDOWN', 60))
    OTP_CONSOLE_FALLBACK = _env_bool('OTP_CONSOLE_FALLBACK', True)

    # Ledger retention
    ALERT_RETENTION = int(os.getenv('ALERT_RETENTION', 50))
    SCAN_HISTORY_RETENTION = int(os.getenv('SCAN_HISTORY_RETENTION', 100))
    NOTIFICATION_HISTORY_RETENTION = int(os.getenv('NOTIFICATION_HISTORY_RETENTION', 100))

    # Background monitoring
    MONITOR_INTERVAL_SECONDS = float(os.getenv('MONITOR_INTERVAL_SECONDS', 30))
    MONITOR_AUTOSTART = _env_bool('MONITOR_AUTOSTART', False)

    # Mail transport for OTP delivery
    SMTP_HOST = os.getenv('SMTP_HOST')
    SMTP_PORT = int(os.getenv('SMTP_PORT', 587))
    SMTP_USER = os.getenv('SMTP_USER')
    SMTP_PASS = os.getenv('SMTP_PASS')
    MAIL_SENDER = os.getenv('MAIL_SENDER') or os.getenv('SMTP_USER')

    # File scans
    UPLOAD_FOLDER = os.getenv('UPLOAD_FOLDER', 'uploads')
    MAX_CONTENT_LENGTH = int(os.getenv('MAX_CONTENT_LENGTH', 256 * 1024 * 1024))


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    SQLALCHEMY_ECHO = _env_bool('SQLALCHEMY_ECHO', False)
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'DEBUG')


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    SQLALCHEMY_ECHO = False
    OTP_CONSOLE_FALLBACK = _env_bool('OTP_CONSOLE_FALLBACK', False)


class TestingConfig(Config):
    """Test configuration: in-memory database, no mail, no background timer"""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SMTP_HOST = None
    SMTP_USER = None
    SMTP_PASS = None
    MONITOR_AUTOSTART = False
    OTP_CONSOLE_FALLBACK = True
    RATE_LIMIT_MAX = 1000


config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
