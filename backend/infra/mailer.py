"""
Envoi d'e-mails transactionnels via SMTP (STARTTLS optionnel), borné par SMTP_TIMEOUT_SECONDS.
- is_configured(): False si SMTP_HOST est absent (les notifications sont alors ignorées)
- send_email(): lève l'erreur SMTP/réseau à l'appelant; c'est le dispatcher qui décide de l'avaler
"""
from email.message import EmailMessage
from typing import Optional
import logging
import smtplib

from backend import config

logger = logging.getLogger(__name__)


def is_configured() -> bool:
    return bool(config.SMTP_HOST)


def send_email(to: str, subject: str, html: str, text: Optional[str] = None) -> None:
    if not is_configured():
        raise RuntimeError("SMTP non configuré (SMTP_HOST manquant)")
    if not to:
        raise ValueError("Destinataire manquant")

    msg = EmailMessage()
    msg["From"] = f"{config.STORE_NAME} <{config.MAIL_FROM}>"
    msg["To"] = to
    msg["Subject"] = subject
    msg.set_content(text or "Votre client mail ne supporte pas le HTML.")
    msg.add_alternative(html, subtype="html")

    with smtplib.SMTP(config.SMTP_HOST, config.SMTP_PORT, timeout=config.SMTP_TIMEOUT_SECONDS) as smtp:
        if config.SMTP_USE_TLS:
            smtp.starttls()
        if config.SMTP_USERNAME:
            smtp.login(config.SMTP_USERNAME, config.SMTP_PASSWORD)
        smtp.send_message(msg)
    logger.info("mailer.sent to=%s subject=%s", to, subject)
