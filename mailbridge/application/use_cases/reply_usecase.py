# mailbridge/application/use_cases/reply_usecase.py
from __future__ import annotations
import asyncio
import logging

from mailbridge.application.services.mailbox_reader import MailboxReader
from mailbridge.domain.errors import MailboxFetchError
from mailbridge.domain.headers import (
    compose_reply_body,
    extract_email_address,
    reply_references,
    reply_subject,
)
from mailbridge.domain.models import ReplyRequest, SendResult
from mailbridge.infrastructure.email.smtp_client import SMTPSender

logger = logging.getLogger(__name__)


class ReplyToMessageUseCase:
    def __init__(self, *, reader: MailboxReader, sender: SMTPSender) -> None:
        self.reader = reader
        self.sender = sender

    async def reply(self, request: ReplyRequest) -> SendResult:
        """
        Responde en el mismo hilo que el mensaje original.
        Todos los fallos de dominio vuelven como SendResult(success=False);
        solo los errores de conexión IMAP se propagan.
        """
        # 1) Original (cabeceras + cuerpo)
        try:
            original = await asyncio.to_thread(self.reader.get_message, request.message_id)
        except MailboxFetchError as exc:
            return SendResult.failure(f"Failed to send reply: {exc}")
        if original is None:
            return SendResult.failure("Original message not found")

        # 2) Destinatario
        to = extract_email_address(original.from_addr)
        if not to or "@" not in to:
            logger.info("Sin dirección de respuesta en UID=%s: %r", request.message_id, original.from_addr)
            return SendResult.failure("Could not determine reply address from original message")

        # 3) Cuerpo (con cita opcional)
        body = request.body
        if request.include_quote and original.body:
            body = compose_reply_body(request.body, original)

        # 4) Envío con cabeceras de hilo
        return await asyncio.to_thread(
            self.sender.send_reply,
            to=to,
            subject=reply_subject(original.subject),
            body=body,
            in_reply_to=original.message_id,
            references=reply_references(original.references, original.message_id),
        )
