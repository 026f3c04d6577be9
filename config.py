"""Configuration module for Flask application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '1') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')
    TESTING = False

    # Session Configuration (Production-safe defaults)
    SESSION_COOKIE_SECURE = os.getenv('SESSION_COOKIE_SECURE', 'false').lower() == 'true'
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = os.getenv('SESSION_COOKIE_SAMESITE', 'Lax')
    PERMANENT_SESSION_LIFETIME = 86400  # 24 hours

    # CSRF: the SPA sends the token in the X-CSRFToken header
    WTF_CSRF_ENABLED = os.getenv('WTF_CSRF_ENABLED', 'true').lower() == 'true'
    WTF_CSRF_HEADERS = ['X-CSRFToken', 'X-CSRF-Token']

    # Database - Support multiple environment variable naming conventions
    # Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        # Try DB_* variables (Docker style)
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'ealbaran')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'ealbaran')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'ealbaran')

        DATABASE_URL = (
            f"postgresql://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', 'false').lower() == 'true'

    # Delivery notes: signature capture
    # 'document-only': signer ID is mandatory, drawing is not offered
    # 'document-plus-drawing': signer ID and drawn signature are both mandatory
    SIGNATURE_CAPTURE_MODE = os.getenv('SIGNATURE_CAPTURE_MODE', 'document-plus-drawing')
    DOCUMENT_MIN_LENGTH = int(os.getenv('DOCUMENT_MIN_LENGTH', '8'))
    PHOTO_MIN_LENGTH = int(os.getenv('PHOTO_MIN_LENGTH', '100'))

    # Photo compression (Pillow)
    PHOTO_COMPRESSION_ENABLED = os.getenv('PHOTO_COMPRESSION_ENABLED', 'true').lower() == 'true'
    PHOTO_MAX_WIDTH = int(os.getenv('PHOTO_MAX_WIDTH', '1280'))
    PHOTO_JPEG_QUALITY = int(os.getenv('PHOTO_JPEG_QUALITY', '70'))

    # Business Information (for delivery notes / invoices)
    BUSINESS_NAME = os.getenv('BUSINESS_NAME', 'eAlbarán')
    BUSINESS_ADDRESS = os.getenv('BUSINESS_ADDRESS', '')
    BUSINESS_PHONE = os.getenv('BUSINESS_PHONE', '')
    BUSINESS_EMAIL = os.getenv('BUSINESS_EMAIL', '')

    # Invoicing
    DEFAULT_TAX_RATE = os.getenv('DEFAULT_TAX_RATE', '21')
    INVOICE_DUE_DAYS = int(os.getenv('INVOICE_DUE_DAYS', '30'))

    # Notifications
    NOTIFY_ON_NOTE_CREATED = os.getenv('NOTIFY_ON_NOTE_CREATED', 'true').lower() == 'true'
    NOTIFY_ON_NOTE_SIGNED = os.getenv('NOTIFY_ON_NOTE_SIGNED', 'true').lower() == 'true'

    # Email configuration
    MAIL_SERVER = os.getenv('SMTP_HOST', 'smtp.gmail.com')
    MAIL_PORT = int(os.getenv('SMTP_PORT', 587))
    MAIL_USE_TLS = True
    MAIL_USE_SSL = False
    MAIL_USERNAME = os.getenv('SMTP_USER') or ''
    MAIL_PASSWORD = os.getenv('SMTP_PASSWORD') or ''
    MAIL_DEFAULT_SENDER = (
        os.getenv('SMTP_FROM')
        or MAIL_USERNAME
        or 'no-reply@localhost'
    )
    MAIL_DEBUG = False
    MAIL_SUPPRESS_SEND = os.getenv('MAIL_SUPPRESS_SEND', 'false').lower() == 'true'

    # Redis Cache Configuration
    REDIS_URL = os.getenv('REDIS_URL', 'redis://redis:6379/0')
    CACHE_ENABLED = os.getenv('CACHE_ENABLED', 'true').lower() == 'true'
    CACHE_DEFAULT_TTL = int(os.getenv('CACHE_DEFAULT_TTL', '60'))  # seconds
    CACHE_STATS_TTL = int(os.getenv('CACHE_STATS_TTL', '60'))
    CACHE_KEY_PREFIX = os.getenv('CACHE_KEY_PREFIX', 'ealbaran')

    # Backups
    BACKUP_DIR = os.getenv('BACKUP_DIR', os.path.join(os.getcwd(), 'backups'))
    BACKUP_RETENTION_DAYS = int(os.getenv('BACKUP_RETENTION_DAYS', '365'))


class TestConfig(Config):
    """Configuration used by the pytest suite (in-memory SQLite)."""

    TESTING = True
    DEBUG = False
    ENV = 'testing'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_ECHO = False
    WTF_CSRF_ENABLED = False
    CACHE_ENABLED = False
    MAIL_SUPPRESS_SEND = True
    SIGNATURE_CAPTURE_MODE = 'document-plus-drawing'
    PHOTO_COMPRESSION_ENABLED = False
    BACKUP_DIR = os.path.join(os.getcwd(), 'backups-test')
