# mailbridge/infrastructure/email/smtp_client.py
from __future__ import annotations
import logging
import smtplib
import ssl
from email.message import EmailMessage as MimeMessage
from email.utils import formatdate, make_msgid
from typing import Iterable, Optional

from mailbridge.domain.models import SendResult

logger = logging.getLogger(__name__)

SMTP_SSL_PORT = 465


class SMTPSender:
    def __init__(
        self,
        *,
        host: str,
        port: int,
        user: str,
        password: str,
        starttls: bool = True,
        timeout: float = 10.0,
        msgid_domain: str | None = None,
    ) -> None:
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.starttls = starttls
        self.timeout = timeout
        self.msgid_domain = msgid_domain

    # ───────── conexión ─────────
    def _connect(self) -> smtplib.SMTP:
        context = ssl.create_default_context()
        if self.port == SMTP_SSL_PORT:
            smtp = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout, context=context)
        else:
            smtp = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        try:
            if self.starttls and self.port != SMTP_SSL_PORT:
                smtp.starttls(context=context)
            smtp.login(self.user, self.password)
        except Exception:
            smtp.close()
            raise
        return smtp

    def _build(self, *, to: str, subject: str, body: str, cc: Optional[str] = None) -> MimeMessage:
        msg = MimeMessage()
        msg["From"] = self.user
        msg["To"] = to
        if cc:
            msg["Cc"] = cc
        msg["Subject"] = subject
        msg["Date"] = formatdate(localtime=True)
        msg["Message-ID"] = make_msgid(domain=self.msgid_domain)
        msg.set_content(body)
        return msg

    def _deliver(self, msg: MimeMessage, recipients: list[str]) -> str:
        with self._connect() as smtp:
            smtp.send_message(msg, from_addr=self.user, to_addrs=recipients)
        return msg["Message-ID"]

    # ───────── envío ─────────
    def send_message(
        self,
        *,
        to: str,
        subject: str,
        body: str,
        cc: Optional[str] = None,
        bcc: Optional[str] = None,
    ) -> SendResult:
        msg = self._build(to=to, subject=subject, body=body, cc=cc)
        recipients = [a for a in (to, cc, bcc) if a]  # Bcc solo en el sobre
        try:
            message_id = self._deliver(msg, recipients)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Fallo enviando correo a %s: %s", to, exc)
            return SendResult.failure(f"Failed to send email: {exc}")
        logger.info("Correo enviado a %s (%s)", to, message_id)
        return SendResult(success=True, message_id=message_id, message="Email sent successfully")

    def send_reply(
        self,
        *,
        to: str,
        subject: str,
        body: str,
        in_reply_to: Optional[str] = None,
        references: Optional[Iterable[str]] = None,
        cc: Optional[str] = None,
    ) -> SendResult:
        """Respuesta encadenada: el asunto ya llega con 'Re: '."""
        if not to or "@" not in to:
            return SendResult.failure("Invalid recipient email address")

        msg = self._build(to=to, subject=subject, body=body, cc=cc)
        if in_reply_to:
            msg["In-Reply-To"] = in_reply_to
        references = [ref for ref in (references or []) if ref]
        if references:
            msg["References"] = " ".join(references)

        try:
            message_id = self._deliver(msg, [a for a in (to, cc) if a])
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Fallo enviando respuesta a %s: %s", to, exc)
            return SendResult.failure(f"Failed to send reply: {exc}")
        logger.info("Respuesta enviada a %s (%s) in-reply-to=%s", to, message_id, in_reply_to)
        return SendResult(success=True, message_id=message_id, message="Reply sent successfully")

    def verify_connection(self) -> bool:
        try:
            with self._connect() as smtp:
                smtp.noop()
            return True
        except (smtplib.SMTPException, OSError):
            logger.exception("Verificación SMTP fallida")
            return False
