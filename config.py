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

    # Session Configuration (Production-safe defaults)
    SESSION_COOKIE_SECURE = os.getenv('SESSION_COOKIE_SECURE', 'false').lower() == 'true'
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = os.getenv('SESSION_COOKIE_SAMESITE', 'Lax')
    PERMANENT_SESSION_LIFETIME = 86400  # 24 hours

    # Database - Support multiple environment variable naming conventions
    # Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        # Try DB_* variables (Docker style)
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'agenda')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'agenda')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'agenda')

        DATABASE_URL = (
            f"postgresql://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', 'false').lower() == 'true'
    CREATE_SCHEMA_ON_START = os.getenv('CREATE_SCHEMA_ON_START', 'false').lower() == 'true'

    # Catalog pagination (limit above max is clamped by the API layer)
    CATALOG_DEFAULT_LIMIT = int(os.getenv('CATALOG_DEFAULT_LIMIT', '12'))
    CATALOG_MAX_LIMIT = int(os.getenv('CATALOG_MAX_LIMIT', '100'))

    # Booking window for the appointment wizard
    BOOKING_FIRST_SLOT = os.getenv('BOOKING_FIRST_SLOT', '07:00')
    BOOKING_LAST_SLOT = os.getenv('BOOKING_LAST_SLOT', '19:00')
    BOOKING_SLOT_MINUTES = int(os.getenv('BOOKING_SLOT_MINUTES', '15'))
    MAX_PREFERRED_STAFF = int(os.getenv('MAX_PREFERRED_STAFF', '3'))

    # Redis Cache Configuration
    # Shared per-company catalog cache; services and spaces are considered
    # fresh for 5 minutes
    REDIS_URL = os.getenv('REDIS_URL', 'redis://redis:6379/0')
    CACHE_ENABLED = os.getenv('CACHE_ENABLED', 'true').lower() == 'true'
    CACHE_DEFAULT_TTL = int(os.getenv('CACHE_DEFAULT_TTL', '60'))  # seconds
    CACHE_SERVICES_TTL = int(os.getenv('CACHE_SERVICES_TTL', '300'))
    CACHE_SPACES_TTL = int(os.getenv('CACHE_SPACES_TTL', '300'))
    CACHE_CURRENCIES_TTL = int(os.getenv('CACHE_CURRENCIES_TTL', '3600'))
    CACHE_KEY_PREFIX = os.getenv('CACHE_KEY_PREFIX', 'agenda')


class TestConfig(Config):
    """Configuration used by the test suite (in-memory SQLite, no Redis)."""

    TESTING = True
    DEBUG = False
    ENV = 'testing'
    SQLALCHEMY_DATABASE_URI = os.getenv('TEST_DATABASE_URL', 'sqlite://')
    SQLALCHEMY_ECHO = False
    CREATE_SCHEMA_ON_START = True
    WTF_CSRF_ENABLED = False
    CACHE_ENABLED = False
