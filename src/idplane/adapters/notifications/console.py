"""Console notifier for demo/dev mode.

Prints emails to stdout so developers can follow token links directly
without an SMTP server or a notification service.
"""


class ConsoleNotifier:
    """Prints outgoing emails to the console."""

    async def send_email(self, to: str, subject: str, body: str) -> None:
        """Print the email with clear formatting so it's visible in logs."""
        print("\n" + "=" * 70, flush=True)
        print(f"[EMAIL] To: {to}", flush=True)
        print(f"  Subject: {subject}", flush=True)
        print("-" * 70, flush=True)
        print(body, flush=True)
        print("=" * 70 + "\n", flush=True)
