"""
Envoi des emails transactionnels (SMTP via aiosmtplib, corps HTML via Jinja2).

- send_bill_email: confirmation d'inscription + facture PDF en pièce jointe.
- send_admin_notification: récapitulatif de l'inscription pour l'administrateur.
Les deux renvoient un NotificationResult et ne lèvent jamais: un échec SMTP est
loggé, puis l'outbox de l'inscription se charge de la relance.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid
from typing import Any, Optional

import aiosmtplib
from jinja2 import Environment, FileSystemLoader, select_autoescape

from workshop_backend import config
from workshop_backend.errors import NotificationError, scrub_secrets

logger = logging.getLogger(__name__)

_env = Environment(
    loader=FileSystemLoader(str(config.TEMPLATES_DIR)),
    autoescape=select_autoescape(["html"]),
)


@dataclass(frozen=True)
class NotificationResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


# module workshop_backend.notifications.mailer
def render_template(name: str, **context: Any) -> str:
    return _env.get_template(name).render(company=_company(), **context)

def _company() -> dict:
    return {
        "name": config.COMPANY_NAME,
        "tagline": config.COMPANY_TAGLINE,
        "email": config.COMPANY_EMAIL,
        "website": config.COMPANY_WEBSITE,
    }


class Mailer:
    """Transport SMTP construit une fois au démarrage (lifespan)."""

    def __init__(
        self,
        *,
        host: str,
        port: int,
        username: str,
        password: str,
        sender: str,
        admin_email: str,
        use_tls: bool = True,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender or username
        self.admin_email = admin_email
        self.use_tls = use_tls

    @classmethod
    def from_config(cls) -> "Mailer":
        return cls(
            host=config.EMAIL_HOST,
            port=config.EMAIL_PORT,
            username=config.EMAIL_USER,
            password=config.EMAIL_PASSWORD,
            sender=config.EMAIL_FROM,
            admin_email=config.ADMIN_EMAIL,
            use_tls=config.EMAIL_USE_TLS,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.host and self.username and self.password)

    async def _deliver(self, message: MIMEMultipart) -> str:
        """Envoie le message; lève NotificationError en cas d'échec transport."""
        message_id = make_msgid(domain=(self.sender.split("@")[-1] or None))
        message["Message-ID"] = message_id
        try:
            await aiosmtplib.send(
                message,
                hostname=self.host,
                port=self.port,
                username=self.username,
                password=self.password,
                use_tls=self.use_tls and self.port == 465,
                start_tls=self.use_tls and self.port != 465,
            )
        except Exception as e:
            raise NotificationError("SMTP delivery failed", detail=scrub_secrets(e)) from e
        return message_id

    async def _send(self, recipient: str, message: MIMEMultipart, kind: str) -> NotificationResult:
        if not self.is_configured:
            logger.warning("notifications.mailer %s skipped: email transport not configured", kind)
            return NotificationResult(False, error="email transport not configured")
        if not recipient:
            logger.warning("notifications.mailer %s skipped: no recipient", kind)
            return NotificationResult(False, error="no recipient")
        try:
            message_id = await self._deliver(message)
        except NotificationError as e:
            logger.error("notifications.mailer %s to=%s failed: %s", kind, recipient, e.detail)
            return NotificationResult(False, error=e.detail or e.message)
        logger.info("notifications.mailer %s sent to=%s id=%s", kind, recipient, message_id)
        return NotificationResult(True, message_id=message_id)

    async def send_bill_email(
        self,
        *,
        recipient_email: str,
        recipient_name: str,
        bill: bytes,
        workshop_title: str,
        registration_id: str,
        amount: Any,
        filename: Optional[str] = None,
    ) -> NotificationResult:
        """
        Email de confirmation au participant, facture PDF jointe.
        """
        message = MIMEMultipart("mixed")
        message["From"] = self.sender
        message["To"] = recipient_email
        message["Subject"] = f"Workshop Registration Confirmation - {workshop_title}"
        html = render_template(
            "bill_email.html",
            user_name=recipient_name,
            workshop_title=workshop_title,
            registration_id=registration_id,
            amount=f"{float(amount or 0):.2f}",
        )
        message.attach(MIMEText(html, "html", "utf-8"))
        attachment = MIMEApplication(bill, _subtype="pdf")
        attachment.add_header("Content-Disposition", "attachment", filename=filename or f"bill_{registration_id}.pdf")
        message.attach(attachment)
        return await self._send(recipient_email, message, "bill_email")

    async def send_admin_notification(
        self,
        *,
        workshop_title: str,
        user_name: str,
        email: str,
        phone: str,
        organization: str,
        registration_id: str,
        amount: Any,
        registered_at: Optional[str] = None,
    ) -> NotificationResult:
        """Tableau récapitulatif envoyé à ADMIN_EMAIL."""
        message = MIMEMultipart("alternative")
        message["From"] = self.sender
        message["To"] = self.admin_email
        message["Subject"] = f"New Workshop Registration - {workshop_title}"
        html = render_template(
            "admin_notification.html",
            rows=[
                ("Registration ID", registration_id),
                ("Student Name", user_name),
                ("Email", email),
                ("Phone", phone),
                ("Organization", organization or "N/A"),
                ("Workshop", workshop_title),
                ("Amount", f"Rs. {float(amount or 0):.2f}"),
                ("Registration Date", registered_at or datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")),
            ],
        )
        message.attach(MIMEText(html, "html", "utf-8"))
        return await self._send(self.admin_email, message, "admin_notification")
