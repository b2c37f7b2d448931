# mailbridge/interface_adapters/schemas.py
"""Validación de entrada de cada herramienta, antes de tocar la red."""
from __future__ import annotations
from typing import Annotated, Optional
from pydantic import BaseModel, EmailStr, Field

from mailbridge.domain.models import ReplyRequest

MAX_REPLY_CHARS = 100_000
DEFAULT_ATTACHMENT_BYTES = 10 * 1024 * 1024
MAX_ATTACHMENT_BYTES = 25 * 1024 * 1024
MAX_ATTACHMENT_INDEX = 50

MessageUid = Annotated[str, Field(min_length=1, pattern=r"^\d+$", description="Message UID")]


class ListMessagesParams(BaseModel):
    count: int = Field(10, ge=1, le=100)


class FindMessageParams(BaseModel):
    query: str = Field(min_length=1)


class SendMessageParams(BaseModel):
    to: EmailStr
    subject: str = Field(min_length=1)
    body: str = Field(min_length=1)
    cc: Optional[EmailStr] = None
    bcc: Optional[EmailStr] = None


class GetMessageParams(BaseModel):
    id: MessageUid


class MarkAsReadParams(BaseModel):
    id: MessageUid
    read: bool = True


class ReplyToMessageParams(BaseModel):
    id: MessageUid
    body: str = Field(min_length=1, max_length=MAX_REPLY_CHARS)
    include_quote: bool = True

    def to_request(self) -> ReplyRequest:
        return ReplyRequest(message_id=self.id, body=self.body, include_quote=self.include_quote)


class GetThreadParams(BaseModel):
    id: MessageUid


class GetAttachmentParams(BaseModel):
    message_id: MessageUid
    attachment_index: int = Field(0, ge=0, le=MAX_ATTACHMENT_INDEX)
    max_size_bytes: int = Field(DEFAULT_ATTACHMENT_BYTES, ge=1, le=MAX_ATTACHMENT_BYTES)
