"""Configuration module for Flask application."""
import os
from decimal import Decimal
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _parse_rates(raw):
    """Parse 'USD:84,EUR:90' into {'USD': Decimal('84'), ...}."""
    rates = {}
    for chunk in (raw or '').split(','):
        if ':' not in chunk:
            continue
        code, value = chunk.split(':', 1)
        rates[code.strip().upper()] = Decimal(value.strip())
    return rates


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '0') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')
    TESTING = False

    SESSION_COOKIE_SECURE = os.getenv('SESSION_COOKIE_SECURE', 'false').lower() == 'true'
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = os.getenv('SESSION_COOKIE_SAMESITE', 'Lax')

    # Database - Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'tradeflow')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'tradeflow')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'tradeflow')

        DATABASE_URL = (
            f"postgresql://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', 'false').lower() == 'true'

    # A blocked transaction aborts instead of holding locks indefinitely (PostgreSQL only)
    DB_LOCK_TIMEOUT_MS = int(os.getenv('DB_LOCK_TIMEOUT_MS', '5000'))
    DB_STATEMENT_TIMEOUT_MS = int(os.getenv('DB_STATEMENT_TIMEOUT_MS', '30000'))

    # Redis Cache Configuration
    REDIS_URL = os.getenv('REDIS_URL', 'redis://redis:6379/0')
    CACHE_ENABLED = os.getenv('CACHE_ENABLED', 'true').lower() == 'true'
    CACHE_DEFAULT_TTL = int(os.getenv('CACHE_DEFAULT_TTL', '60'))  # seconds
    CACHE_DASHBOARD_TTL = int(os.getenv('CACHE_DASHBOARD_TTL', '300'))
    CACHE_KEY_PREFIX = os.getenv('CACHE_KEY_PREFIX', 'tradeflow')

    # Accounting
    BASE_CURRENCY = os.getenv('BASE_CURRENCY', 'INR')
    EXCHANGE_RATES = _parse_rates(os.getenv('EXCHANGE_RATES', 'USD:84'))

    # Orders & payments
    PAYMENT_DUE_DAYS = int(os.getenv('PAYMENT_DUE_DAYS', '30'))
    # 'global' keeps one ORD- series for every company, 'company' gives each its own
    ORDER_NUMBER_SCOPE = os.getenv('ORDER_NUMBER_SCOPE', 'global')
    SEQUENCE_RETRY_ATTEMPTS = int(os.getenv('SEQUENCE_RETRY_ATTEMPTS', '5'))
    SEQUENCE_RETRY_BACKOFF = float(os.getenv('SEQUENCE_RETRY_BACKOFF', '0.05'))

    # Observability
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    SENTRY_DSN = os.getenv('SENTRY_DSN')


class TestConfig(Config):
    """Configuration used by the test suite (SQLite file, cache off)."""

    TESTING = True
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = os.getenv('TEST_DATABASE_URL', 'sqlite:///tradeflow_test.db')
    SQLALCHEMY_ECHO = False
    CACHE_ENABLED = False
    SENTRY_DSN = None
    SEQUENCE_RETRY_BACKOFF = 0.01
