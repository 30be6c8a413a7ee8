"""Process configuration loaded from environment variables."""

import os
from datetime import timedelta
from functools import lru_cache

from idplane.core.auth.service import TokenLifetimes
from idplane.core.events import (
    TOPIC_CREATE_INITIAL_ADMIN,
    TOPIC_NOTIFICATION_EMAIL,
    TOPIC_USER_LIFECYCLE,
    TopicNames,
)


def _bool(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Application settings loaded from environment."""

    def __init__(self) -> None:
        """Load settings from environment variables."""
        self.storage = os.getenv("STORAGE", "postgres").lower()  # postgres | memory
        self.database_url = os.getenv("DATABASE_URL", "postgresql://localhost:5432/idplane")

        # Session credentials
        self.jwt_secret_key = os.getenv("JWT_SECRET_KEY", "dev-secret-change-in-production")
        self.access_token_minutes = int(os.getenv("ACCESS_TOKEN_MINUTES", "15"))
        self.refresh_token_hours = int(os.getenv("REFRESH_TOKEN_HOURS", "24"))

        # One-time tokens
        self.setup_token_hours = int(os.getenv("SETUP_TOKEN_HOURS", "24"))
        self.invitation_token_hours = int(os.getenv("INVITATION_TOKEN_HOURS", "72"))
        self.reset_token_hours = int(os.getenv("RESET_TOKEN_HOURS", "1"))
        self.email_verification_token_hours = int(
            os.getenv("EMAIL_VERIFICATION_TOKEN_HOURS", "24")
        )
        self.bcrypt_rounds = int(os.getenv("BCRYPT_ROUNDS", "12"))
        self.frontend_url = os.getenv("FRONTEND_URL", "http://localhost:3000")

        # Broker
        self.kafka_brokers = os.getenv("KAFKA_BROKERS", "localhost:9092")
        self.kafka_consumer_group = os.getenv("KAFKA_CONSUMER_GROUP", "idplane")
        self.tenant_provisioned_topic = os.getenv(
            "TENANT_PROVISIONED_TOPIC", TOPIC_CREATE_INITIAL_ADMIN
        )
        self.user_lifecycle_topic = os.getenv("USER_LIFECYCLE_TOPIC", TOPIC_USER_LIFECYCLE)
        self.notification_email_topic = os.getenv(
            "NOTIFICATION_EMAIL_TOPIC", TOPIC_NOTIFICATION_EMAIL
        )

        # Policy engine
        self.opa_enabled = _bool("OPA_ENABLED", False)
        self.opa_url = os.getenv("OPA_URL", "http://localhost:8181")
        self.opa_policy_path = os.getenv("OPA_POLICY_PATH", "idplane/authz")
        self.opa_timeout_seconds = float(os.getenv("OPA_TIMEOUT_SECONDS", "2"))

        # Notifications: broker | smtp | console
        self.notifier = os.getenv("NOTIFIER", "broker").lower()
        self.smtp_host = os.getenv("SMTP_HOST", "localhost")
        self.smtp_port = int(os.getenv("SMTP_PORT", "587"))
        self.smtp_user = os.getenv("SMTP_USER") or None
        self.smtp_password = os.getenv("SMTP_PASSWORD") or None
        self.smtp_from_email = os.getenv("SMTP_FROM_EMAIL", "no-reply@example.com")
        self.smtp_use_tls = _bool("SMTP_USE_TLS", True)

        # Logging
        self.log_level = os.getenv("LOG_LEVEL", "INFO")
        self.log_json = _bool("LOG_JSON", True)

    @property
    def access_token_ttl(self) -> timedelta:
        return timedelta(minutes=self.access_token_minutes)

    @property
    def refresh_token_ttl(self) -> timedelta:
        return timedelta(hours=self.refresh_token_hours)

    @property
    def topics(self) -> TopicNames:
        """Broker topic names shared by the publisher and the worker."""
        return TopicNames(
            tenant_provisioned=self.tenant_provisioned_topic,
            user_lifecycle=self.user_lifecycle_topic,
            notification_email=self.notification_email_topic,
        )

    @property
    def token_lifetimes(self) -> TokenLifetimes:
        """One-time token lifetimes."""
        return TokenLifetimes(
            setup=timedelta(hours=self.setup_token_hours),
            invitation=timedelta(hours=self.invitation_token_hours),
            reset=timedelta(hours=self.reset_token_hours),
            email_verification=timedelta(hours=self.email_verification_token_hours),
        )


@lru_cache
def get_settings() -> Settings:
    """Process-wide settings, read once."""
    return Settings()
