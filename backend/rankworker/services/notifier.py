"""Account notifications and operator alerts.

Account notifications are stored as rows for the dashboard to pick up.
Operator alerts are logged and, when SMTP is configured, e-mailed.
"""

import json
import logging
import smtplib
import socket
import ssl
import uuid
from datetime import datetime, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from rankworker.config import Settings
from rankworker.models.notification import Notification

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def notify(self, account_id: uuid.UUID, event_type: str, payload: dict[str, Any]) -> None:
        ...

    def alert_operator(self, title: str, message: str, data: dict[str, Any]) -> None:
        ...


class DatabaseNotifier:
    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.settings = settings
        self.email_enabled = all([settings.smtp_user, settings.smtp_password, settings.alert_email])

    def notify(self, account_id: uuid.UUID, event_type: str, payload: dict[str, Any]) -> None:
        self.db.add(Notification(
            id=uuid.uuid4(),
            account_id=account_id,
            notification_type=event_type,
            payload=payload,
        ))
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        logger.info(f"Notified account {account_id}: {event_type}")

    def alert_operator(self, title: str, message: str, data: dict[str, Any]) -> None:
        logger.error(f"[OPERATOR ALERT] {title}: {message} {json.dumps(data, default=str)}")
        if self.email_enabled:
            self._send_email(title, f"{message}\n\n{json.dumps(data, indent=2, default=str)}")

    def _send_email(self, subject: str, body: str) -> bool:
        msg = MIMEMultipart()
        msg["From"] = self.settings.smtp_user
        msg["To"] = self.settings.alert_email
        msg["Subject"] = f"[RANKWORKER ALERT] {subject}"

        full_body = f"{body}\n\n---\nTimestamp: {datetime.now(timezone.utc).isoformat()}\nServer: {socket.gethostname()}"
        msg.attach(MIMEText(full_body, "plain"))

        try:
            context = ssl.create_default_context()
            with smtplib.SMTP(self.settings.smtp_host, self.settings.smtp_port, timeout=30) as server:
                server.starttls(context=context)
                server.login(self.settings.smtp_user, self.settings.smtp_password)
                server.sendmail(self.settings.smtp_user, self.settings.alert_email, msg.as_string())
            logger.info(f"Operator alert e-mailed: {subject}")
            return True
        except (smtplib.SMTPException, OSError) as e:
            logger.warning(f"Failed to e-mail operator alert '{subject}': {e}")
            return False
