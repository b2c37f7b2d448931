# mailbridge/domain/models.py
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

@dataclass
class AttachmentInfo:
    index: int
    filename: str
    content_type: str
    size: int

@dataclass
class AttachmentContent:
    index: int
    filename: str
    content_type: str
    size: int
    content: str  # base64

@dataclass
class EmailMessage:
    id: str
    subject: str
    from_addr: str
    date: datetime
    to: list[str] = field(default_factory=list)
    cc: Optional[list[str]] = None
    thread_id: str = ""
    snippet: str = ""
    body: Optional[str] = None
    body_html: Optional[str] = None
    labels: list[str] = field(default_factory=list)
    is_read: bool = False
    has_attachments: bool = False
    attachments: Optional[list[AttachmentInfo]] = None
    message_id: Optional[str] = None
    in_reply_to: Optional[str] = None
    references: Optional[list[str]] = None

    def __post_init__(self) -> None:
        if not self.thread_id:
            self.thread_id = self.id
        # con descriptores disponibles, el flag se deriva de ellos
        if self.attachments is not None:
            self.has_attachments = bool(self.attachments)

@dataclass
class ThreadResult:
    thread_id: str
    messages: list[EmailMessage]
    message_count: int

    @classmethod
    def of(cls, thread_id: str, messages: list[EmailMessage]) -> "ThreadResult":
        return cls(thread_id=thread_id, messages=messages, message_count=len(messages))

@dataclass
class SearchResult:
    messages: list[EmailMessage]
    total_count: int
    query: str

@dataclass
class ReplyRequest:
    message_id: str
    body: str
    include_quote: bool = True

@dataclass
class SendResult:
    success: bool
    message_id: str
    message: str

    @classmethod
    def failure(cls, message: str) -> "SendResult":
        return cls(success=False, message_id="", message=message)

@dataclass
class OperationResult:
    success: bool
    message: str
