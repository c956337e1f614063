"""Last-resort storage for confirmations the order backend did not accept.

The log is a single JSON array of ``{"received_at", "payload"}`` entries.
It is only ever appended to; operators replay and clear it by hand.
"""

import json
import logging
import os
import smtplib
import tempfile
import threading
from datetime import datetime, timezone
from email.mime.text import MIMEText
from pathlib import Path

from relay.config import Settings
from relay.errors import FallbackPersistenceError
from relay.normalizer import OrderConfirmation

logger = logging.getLogger(__name__)

_locks: dict[str, threading.Lock] = {}
_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.Lock:
    key = str(path)
    with _locks_guard:
        if key not in _locks:
            _locks[key] = threading.Lock()
        return _locks[key]


class FallbackStore:
    def __init__(self, path: str | os.PathLike):
        self.path = Path(path).resolve()
        self._lock = _lock_for(self.path)

    def entries(self) -> list[dict]:
        """Current log contents; a missing or unreadable log reads as empty."""
        if not self.path.exists():
            return []
        try:
            raw = self.path.read_text(encoding="utf-8")
            entries = json.loads(raw or "[]")
        except (OSError, ValueError) as exc:
            logger.warning("Could not read fallback file %s: %s", self.path, exc)
            return []
        if not isinstance(entries, list):
            logger.warning("Fallback file %s is not a list, starting over", self.path)
            return []
        return entries

    def save(self, confirmation: OrderConfirmation) -> str:
        entry = {
            "received_at": datetime.now(timezone.utc).isoformat(),
            "payload": confirmation.to_payload(),
        }
        with self._lock:
            entries = self.entries()
            entries.append(entry)
            try:
                self._write(entries)
            except OSError as exc:
                raise FallbackPersistenceError(
                    f"Could not write fallback file {self.path}: {exc}"
                ) from exc

        logger.info(
            "Saved %s to fallback file %s (%d pending)",
            confirmation.payment_intent_id,
            self.path,
            len(entries),
        )
        return str(self.path)

    def _write(self, entries: list[dict]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(entries, fh, indent=2)
            os.replace(tmp_name, self.path)
        except OSError:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise


class AdminAlerter:
    """Emails the administrator when an order lands in the fallback log.

    Best effort: a missing SMTP setup or a failed send is logged and dropped.
    """

    def __init__(self, settings: Settings):
        self._host = settings.smtp_host
        self._port = settings.smtp_port
        self._user = settings.smtp_user
        self._password = settings.smtp_password
        self._from = settings.smtp_from or settings.smtp_user
        self._to = settings.admin_email

    @property
    def is_configured(self) -> bool:
        return bool(self._host and self._to)

    def format_message(self, confirmation: OrderConfirmation, fallback_path: str) -> MIMEText:
        payload = json.dumps(confirmation.to_payload(), indent=2)
        body = (
            "The order backend could not be reached. The confirmation below was "
            f"saved to {fallback_path} and must be replayed manually.\n\n{payload}\n"
        )
        msg = MIMEText(body)
        msg["Subject"] = f"[WARN] Pending order {confirmation.payment_intent_id}"
        msg["From"] = self._from
        msg["To"] = self._to
        return msg

    def notify(self, confirmation: OrderConfirmation, fallback_path: str) -> bool:
        if not self.is_configured:
            logger.debug("Admin alerts not configured, skipping")
            return False

        msg = self.format_message(confirmation, fallback_path)
        try:
            with smtplib.SMTP(self._host, self._port, timeout=10) as server:
                if self._user:
                    server.starttls()
                    server.login(self._user, self._password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError):
            logger.exception("Failed to send fallback alert to %s", self._to)
            return False

        logger.info("Fallback alert sent to %s", self._to)
        return True
