# mailbridge/interface_adapters/controllers/tool_controller.py
from __future__ import annotations
import asyncio
import logging
from typing import Any

from mailbridge.application.services.mailbox_reader import MailboxReader
from mailbridge.application.use_cases.reply_usecase import ReplyToMessageUseCase
from mailbridge.application.use_cases.thread_usecase import ResolveThreadUseCase
from mailbridge.config.settings import Settings
from mailbridge.domain.models import EmailMessage, SendResult
from mailbridge.infrastructure.email.smtp_client import SMTPSender
from mailbridge.interface_adapters.schemas import (
    FindMessageParams,
    GetAttachmentParams,
    GetMessageParams,
    GetThreadParams,
    ListMessagesParams,
    MarkAsReadParams,
    ReplyToMessageParams,
    SendMessageParams,
)

logger = logging.getLogger(__name__)


def _summary(msg: EmailMessage) -> dict[str, Any]:
    return {
        "id": msg.id,
        "subject": msg.subject,
        "from": msg.from_addr,
        "date": msg.date.isoformat(),
        "snippet": msg.snippet,
        "is_read": msg.is_read,
        "has_attachments": msg.has_attachments,
    }


def _detail(msg: EmailMessage) -> dict[str, Any]:
    return {
        "id": msg.id,
        "thread_id": msg.thread_id,
        "subject": msg.subject,
        "from": msg.from_addr,
        "to": msg.to,
        "cc": msg.cc,
        "date": msg.date.isoformat(),
        "body": msg.body,
        "body_html": msg.body_html,
        "is_read": msg.is_read,
        "has_attachments": msg.has_attachments,
        "attachments": [vars(a).copy() for a in (msg.attachments or [])],
        "message_id": msg.message_id,
        "in_reply_to": msg.in_reply_to,
        "references": msg.references,
    }


def _thread_entry(msg: EmailMessage) -> dict[str, Any]:
    return {
        "id": msg.id,
        "subject": msg.subject,
        "from": msg.from_addr,
        "date": msg.date.isoformat(),
        "body": msg.body,
        "is_read": msg.is_read,
    }


def _send(result: SendResult) -> dict[str, Any]:
    return {"success": result.success, "message_id": result.message_id, "message": result.message}


class ToolController:
    """
    Una función por herramienta: recibe parámetros ya validados y devuelve el
    dict que se serializa como respuesta. Las llamadas bloqueantes
    (IMAP/SMTP) van a un hilo con asyncio.to_thread.
    """

    def __init__(
        self,
        *,
        reader: MailboxReader,
        sender: SMTPSender,
        threads: ResolveThreadUseCase,
        replies: ReplyToMessageUseCase,
    ) -> None:
        self.reader = reader
        self.sender = sender
        self.threads = threads
        self.replies = replies

    @classmethod
    def from_settings(cls, settings: Settings) -> "ToolController":
        reader = MailboxReader.from_settings(settings)
        sender = SMTPSender(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            user=settings.EMAIL_ADDRESS,
            password=settings.EMAIL_PASSWORD,
            starttls=settings.SMTP_STARTTLS,
            timeout=settings.CONNECT_TIMEOUT,
            msgid_domain=settings.sender_domain(),
        )
        return cls(
            reader=reader,
            sender=sender,
            threads=ResolveThreadUseCase(reader=reader, max_workers=settings.THREAD_SEARCH_WORKERS),
            replies=ReplyToMessageUseCase(reader=reader, sender=sender),
        )

    async def list_messages(self, params: ListMessagesParams) -> dict[str, Any]:
        messages = await asyncio.to_thread(self.reader.list_recent, params.count)
        return {
            "success": True,
            "count": len(messages),
            "messages": [_summary(m) for m in messages],
        }

    async def find_message(self, params: FindMessageParams) -> dict[str, Any]:
        result = await asyncio.to_thread(self.reader.search_text, params.query)
        return {
            "success": True,
            "query": result.query,
            "total_count": result.total_count,
            "found_messages": len(result.messages),
            "messages": [_summary(m) for m in result.messages],
        }

    async def send_message(self, params: SendMessageParams) -> dict[str, Any]:
        result = await asyncio.to_thread(
            self.sender.send_message,
            to=params.to,
            subject=params.subject,
            body=params.body,
            cc=params.cc,
            bcc=params.bcc,
        )
        return _send(result)

    async def get_message(self, params: GetMessageParams) -> dict[str, Any]:
        message = await asyncio.to_thread(self.reader.get_message, params.id)
        if message is None:
            return {"success": False, "message": "Message not found"}
        return {"success": True, "message": _detail(message)}

    async def mark_as_read(self, params: MarkAsReadParams) -> dict[str, Any]:
        result = await asyncio.to_thread(self.reader.set_read, params.id, params.read)
        return {"success": result.success, "message": result.message}

    async def reply_to_message(self, params: ReplyToMessageParams) -> dict[str, Any]:
        return _send(await self.replies.reply(params.to_request()))

    async def get_thread(self, params: GetThreadParams) -> dict[str, Any]:
        result = await self.threads.resolve(params.id)
        return {
            "success": True,
            "thread_id": result.thread_id,
            "message_count": result.message_count,
            "messages": [_thread_entry(m) for m in result.messages],
        }

    async def get_attachment(self, params: GetAttachmentParams) -> dict[str, Any]:
        attachment = await asyncio.to_thread(
            self.reader.get_attachment,
            params.message_id,
            params.attachment_index,
            params.max_size_bytes,
        )
        if attachment is None:
            return {"success": False, "message": "Attachment not found"}
        return {
            "success": True,
            "attachment": {
                "filename": attachment.filename,
                "content_type": attachment.content_type,
                "size": attachment.size,
                "content": attachment.content,
            },
        }
