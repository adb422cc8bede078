import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to app.py as bookati.db; PostgreSQL in production
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "bookati.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {}

    # Checkout holds
    LOCK_TTL_SECONDS = int(os.getenv("LOCK_TTL_SECONDS", "120"))          # 2 minutes
    LOCK_MAX_TTL_SECONDS = int(os.getenv("LOCK_MAX_TTL_SECONDS", "900"))  # 15 minutes

    # Row-lock wait per transaction (PostgreSQL lock_timeout)
    LOCK_WAIT_TIMEOUT_MS = int(os.getenv("LOCK_WAIT_TIMEOUT_MS", "5000"))

    # Automatic retry of transaction conflicts
    TX_RETRY_ATTEMPTS = int(os.getenv("TX_RETRY_ATTEMPTS", "3"))
    TX_RETRY_BACKOFF_SECONDS = float(os.getenv("TX_RETRY_BACKOFF_SECONDS", "0.05"))

    # Post-commit notifications (ticket, messaging, invoicing)
    NOTIFY_ASYNC = os.getenv("NOTIFY_ASYNC", "true").lower() == "true"
    NOTIFY_MAX_WORKERS = int(os.getenv("NOTIFY_MAX_WORKERS", "4"))

    # Admin API (tenant/service/slot management); closed when unset
    ADMIN_API_KEY = os.getenv("ADMIN_API_KEY")

    # Email (SMTP)
    SMTP_HOST = os.getenv("SMTP_HOST")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME = os.getenv("SMTP_USERNAME")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
    SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL")
    SMTP_USE_TLS = os.getenv("SMTP_USE_TLS", "true").lower() == "true"
    SMTP_TIMEOUT_SECONDS = int(os.getenv("SMTP_TIMEOUT_SECONDS", "10"))

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Basic app settings
    DEBUG = False
