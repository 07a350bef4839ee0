"""
World Cup 2026 Passenger Capture Portal
Email Service.

Sends capture invitations over SMTP with template support.

Configuration (env vars):
    MAIL_SERVER         SMTP host (unset → EmailNotConfiguredError on send)
    MAIL_PORT           SMTP port (default: 587)
    MAIL_USE_TLS        Use TLS (default: true)
    MAIL_USERNAME       SMTP username
    MAIL_PASSWORD       SMTP password
    MAIL_DEFAULT_SENDER Default from address
    MAIL_SUPPRESS_SEND  Log instead of sending (development / tests)
"""

from __future__ import annotations

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any

from flask import current_app

from paxportal.core.exceptions import EmailNotConfiguredError, EmailSendError

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Email Templates
# ═══════════════════════════════════════════════════════════════════════════

_TEMPLATES: dict[str, dict[str, str]] = {
    "capture_invite": {
        "subject": "AbsolutSport Forms — Proposta {proposal}",
        "html": """
        <div style="font-family: 'Barlow', Arial, sans-serif; max-width: 600px; margin: 0 auto;">
            <div style="background-color: #041628; padding: 24px; text-align: center;">
                <h1 style="color: white; margin: 0; font-size: 24px;">AbsolutSport Forms</h1>
            </div>
            <div style="padding: 32px; background-color: #ffffff;">
                <h2 style="color: #0D1117; margin-bottom: 16px;">Olá {client_name},</h2>
                <p style="color: #343A40; line-height: 1.6;">
                    Sua proposta <strong>{proposal}</strong> está pronta para o preenchimento
                    dos dados dos passageiros.
                </p>
                <p style="color: #343A40; line-height: 1.6;">Acesse o portal com as seguintes credenciais:</p>
                <div style="background-color: #F8F9FA; border-radius: 8px; padding: 16px; margin: 20px 0;">
                    <p style="margin: 4px 0;"><strong>Link:</strong>
                        <a href="{client_link}" style="color: #155F97;">{client_link}</a></p>
                    <p style="margin: 4px 0;"><strong>E-mail:</strong> {client_email}</p>
                    {password_block}
                </div>
                {deadline_block}
                <p style="color: #6C757D; font-size: 14px; margin-top: 24px;">
                    Você pode salvar seu progresso e retornar a qualquer momento.
                </p>
            </div>
            <div style="background-color: #F8F9FA; padding: 16px; text-align: center;">
                <p style="color: #ADB5BD; font-size: 12px; margin: 0;">AbsolutSport — World Cup 2026</p>
            </div>
        </div>
        """,
    },
}

_PASSWORD_BLOCK = (
    '<p style="margin: 4px 0;"><strong>Senha temporária:</strong> '
    '<code style="background: #EBF3FB; padding: 2px 6px; border-radius: 4px;">{temp_password}</code></p>'
)
_DEADLINE_BLOCK = '<p style="color: #F59E0B;"><strong>Prazo limite:</strong> {deadline}</p>'


class EmailService:
    """
    Email sending service with template support.

    ``send`` returns True on delivery and raises a typed UpstreamError
    otherwise, so callers can tell "not configured" from "send failed".
    """

    @staticmethod
    def is_configured() -> bool:
        return bool(current_app.config.get("MAIL_SERVER"))

    @staticmethod
    def get_template(template_name: str) -> dict[str, str] | None:
        return _TEMPLATES.get(template_name)

    @classmethod
    def send(
        cls,
        *,
        to_email: str,
        subject: str,
        html_body: str,
        to_name: str | None = None,
    ) -> bool:
        """
        Send an HTML email.

        Raises:
            EmailNotConfiguredError: MAIL_SERVER is unset.
            EmailSendError: the SMTP exchange failed.
        """
        if not cls.is_configured():
            logger.error("Email requested but MAIL_SERVER is not configured")
            raise EmailNotConfiguredError()

        if current_app.config.get("MAIL_SUPPRESS_SEND"):
            logger.info("Email (suppressed): to=%s subject='%s'", to_email, subject)
            return True

        try:
            cls._send_smtp(to_email=to_email, to_name=to_name,
                           subject=subject, html_body=html_body)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Email failed: to=%s error=%s", to_email, exc)
            raise EmailSendError("Failed to send email. Please try again or use manual link.") from exc

        logger.info("Email sent: to=%s subject='%s'", to_email, subject)
        return True

    @classmethod
    def send_from_template(
        cls,
        *,
        to_email: str,
        template_name: str,
        context: dict[str, Any],
        to_name: str | None = None,
    ) -> bool:
        """Render a named template with ``context`` and send it."""
        template = cls.get_template(template_name)
        if not template:
            raise ValueError(f"Email template not found: {template_name}")

        subject = template["subject"].format_map(_SafeDict(context))
        html_body = template["html"].format_map(_SafeDict(context))
        return cls.send(to_email=to_email, to_name=to_name, subject=subject, html_body=html_body)

    @staticmethod
    def _send_smtp(*, to_email: str, to_name: str | None,
                   subject: str, html_body: str) -> None:
        cfg = current_app.config
        server = cfg.get("MAIL_SERVER")
        port = cfg.get("MAIL_PORT", 587)
        use_tls = cfg.get("MAIL_USE_TLS", True)
        username = cfg.get("MAIL_USERNAME")
        password = cfg.get("MAIL_PASSWORD")
        sender = cfg.get("MAIL_DEFAULT_SENDER", f"noreply@{server}")

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = sender
        msg["To"] = f"{to_name} <{to_email}>" if to_name else to_email
        msg.attach(MIMEText(html_body, "html"))

        with smtplib.SMTP(server, port, timeout=30) as smtp:
            if use_tls:
                smtp.starttls()
            if username and password:
                smtp.login(username, password)
            smtp.send_message(msg)


def capture_invite_context(
    *,
    proposal: str,
    client_name: str,
    client_email: str,
    client_link: str,
    temp_password: str | None,
    deadline_text: str | None,
) -> dict[str, str]:
    return {
        "proposal": proposal,
        "client_name": client_name or "Cliente",
        "client_email": client_email,
        "client_link": client_link,
        "password_block": _PASSWORD_BLOCK.format(temp_password=temp_password) if temp_password else "",
        "deadline_block": _DEADLINE_BLOCK.format(deadline=deadline_text) if deadline_text else "",
    }


class _SafeDict(dict):
    """Dict that returns {key} for missing keys instead of raising."""

    def __missing__(self, key):
        return f"{{{key}}}"
