"""Notification adapters."""

from idplane.adapters.notifications.broker import BrokerEmailNotifier
from idplane.adapters.notifications.console import ConsoleNotifier
from idplane.adapters.notifications.email import EmailConfig, SmtpEmailNotifier

__all__ = [
    "BrokerEmailNotifier",
    "ConsoleNotifier",
    "EmailConfig",
    "SmtpEmailNotifier",
]
