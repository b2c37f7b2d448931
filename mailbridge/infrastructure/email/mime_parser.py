# mailbridge/infrastructure/email/mime_parser.py
from __future__ import annotations
import logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional, Sequence
import html2text
import pyzmail
from pyzmail.parse import decode_mail_header
from imapclient import SEEN

from mailbridge.domain.headers import parse_header_block, split_addresses, split_references
from mailbridge.domain.models import AttachmentInfo, EmailMessage

logger = logging.getLogger(__name__)

NO_SUBJECT = "(No Subject)"
DEFAULT_CONTENT_TYPE = "application/octet-stream"
SNIPPET_LEN = 200


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.astimezone()  # naive = hora local (INTERNALDATE de imapclient)
    return value


def _parse_date(raw: Optional[str]) -> Optional[datetime]:
    if not raw:
        return None
    try:
        parsed = parsedate_to_datetime(raw)
    except (TypeError, ValueError, IndexError):
        logger.debug("Fecha no parseable: %r", raw)
        return None
    # '-0000' devuelve naive: se toma como UTC
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _resolve_date(*candidates: Optional[datetime]) -> datetime:
    for value in candidates:
        if value is not None:
            return _aware(value)
    return datetime.now(timezone.utc)


def _decode_part(part) -> Optional[str]:
    if part is None:
        return None
    payload = part.get_payload()
    if payload is None:
        return None
    try:
        return payload.decode(part.charset or "utf-8", errors="replace")
    except LookupError:
        return payload.decode("utf-8", errors="replace")


def _html_to_text(html: str) -> str:
    converter = html2text.HTML2Text()
    converter.ignore_links = False
    converter.ignore_images = False
    return converter.handle(html).strip()


def _address_list(msg, name: str) -> list[str]:
    texts = [f"{display} <{addr}>" if display else addr for display, addr in msg.get_addresses(name)]
    return list(dict.fromkeys(t for t in texts if t))


def _optional_header(msg, name: str) -> Optional[str]:
    value = (msg.get_decoded_header(name) or "").strip()
    return value or None


def _attachment_parts(msg) -> list:
    return [part for part in msg.mailparts if not part.is_body]


def _describe(index: int, part) -> AttachmentInfo:
    payload = part.get_payload() or b""
    return AttachmentInfo(
        index=index,
        filename=part.filename or f"attachment_{index}",
        content_type=part.type or DEFAULT_CONTENT_TYPE,
        size=len(payload),
    )


def parse_full_message(
    uid: int | str,
    raw: bytes,
    *,
    flags: Sequence[bytes] = (),
    internal_date: Optional[datetime] = None,
    thread_id: str = "",
    folder: str = "INBOX",
) -> EmailMessage:
    """Mensaje completo (RFC822): cuerpos, adjuntos y cabeceras de hilo."""
    msg = pyzmail.PyzMessage.factory(raw)

    body_html = _decode_part(msg.html_part) or None
    # sin parte text/plain: texto derivado del HTML
    body = _decode_part(msg.text_part) or (_html_to_text(body_html) if body_html else "")
    attachments = [_describe(i, part) for i, part in enumerate(_attachment_parts(msg))]
    cc = _address_list(msg, "cc")
    references = split_references(msg.get_decoded_header("references"))

    return EmailMessage(
        id=str(uid),
        thread_id=thread_id,
        subject=msg.get_subject() or NO_SUBJECT,
        from_addr=(_address_list(msg, "from") or [""])[0],
        to=_address_list(msg, "to"),
        cc=cc or None,
        date=_resolve_date(_parse_date(msg.get_decoded_header("date")), internal_date),
        snippet=body[:SNIPPET_LEN],
        body=body,
        body_html=body_html,
        labels=[folder],
        is_read=SEEN in (flags or ()),
        attachments=attachments,
        message_id=_optional_header(msg, "message-id"),
        in_reply_to=_optional_header(msg, "in-reply-to"),
        references=references or None,
    )


def parse_header_message(
    uid: int | str,
    raw_headers: bytes,
    *,
    flags: Sequence[bytes] = (),
    internal_date: Optional[datetime] = None,
    has_attachments: bool = False,
    folder: str = "INBOX",
) -> EmailMessage:
    """Mensaje a partir de un fetch de solo cabeceras (listados / búsquedas)."""
    headers = parse_header_block(raw_headers.decode("utf-8", errors="replace"))
    subject = decode_mail_header(headers.get("subject", "")) or NO_SUBJECT
    sender = decode_mail_header(headers.get("from", ""))
    cc = split_addresses(decode_mail_header(headers.get("cc", "")))
    references = split_references(headers.get("references"))

    return EmailMessage(
        id=str(uid),
        subject=subject,
        from_addr=sender,
        to=split_addresses(decode_mail_header(headers.get("to", ""))),
        cc=cc or None,
        date=_resolve_date(internal_date, _parse_date(headers.get("date"))),
        snippet=f"{subject} - {sender or 'Unknown sender'}",
        labels=[folder],
        is_read=SEEN in (flags or ()),
        has_attachments=has_attachments,
        message_id=headers.get("message-id") or None,
        in_reply_to=headers.get("in-reply-to") or None,
        references=references or None,
    )


def attachment_at(raw: bytes, index: int) -> Optional[tuple[AttachmentInfo, bytes]]:
    """Descriptor + contenido binario del adjunto 'index', o None si no existe."""
    msg = pyzmail.PyzMessage.factory(raw)
    parts = _attachment_parts(msg)
    if index < 0 or index >= len(parts):
        return None
    part = parts[index]
    return _describe(index, part), part.get_payload() or b""
