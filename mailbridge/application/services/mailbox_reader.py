# mailbridge/application/services/mailbox_reader.py
from __future__ import annotations
import base64
import logging
from contextlib import contextmanager
from typing import Any, Callable, Iterable, Iterator, Optional
from imapclient.exceptions import IMAPClientError

from mailbridge.config.settings import Settings
from mailbridge.domain.errors import AttachmentTooLargeError, MailboxFetchError
from mailbridge.domain.models import (
    AttachmentContent,
    EmailMessage,
    OperationResult,
    SearchResult,
)
from mailbridge.infrastructure.email.imap_client import (
    IMAPInbox,
    has_attachment_disposition,
    header_bytes,
)
from mailbridge.infrastructure.email.mime_parser import (
    attachment_at,
    parse_full_message,
    parse_header_message,
)

logger = logging.getLogger(__name__)

SEARCH_FETCH_LIMIT = 50
THREAD_SEARCH_HEADERS = ("Message-ID", "References")


class MailboxReader:
    """
    Lectura del buzón. Cada método abre su propia sesión IMAP y la cierra al
    terminar (sin pool ni reutilización entre llamadas).
    """

    def __init__(self, *, inbox_factory: Callable[[], IMAPInbox], folder: str = "INBOX") -> None:
        self.inbox_factory = inbox_factory
        self.folder = folder

    @classmethod
    def from_settings(cls, settings: Settings) -> "MailboxReader":
        def factory() -> IMAPInbox:
            return IMAPInbox(
                settings.IMAP_HOST,
                settings.IMAP_PORT,
                settings.EMAIL_ADDRESS,
                settings.EMAIL_PASSWORD,
                ssl=settings.IMAP_SSL,
                timeout=settings.CONNECT_TIMEOUT,
            )
        return cls(inbox_factory=factory, folder=settings.IMAP_FOLDER_INBOX)

    @contextmanager
    def _session(self, readonly: bool = True) -> Iterator[IMAPInbox]:
        with self.inbox_factory() as inbox:
            inbox.select_folder(self.folder, readonly=readonly)
            yield inbox

    # ───────── solo cabeceras ─────────
    def _header_messages(self, data: dict[int, dict[bytes, Any]]) -> list[EmailMessage]:
        messages: list[EmailMessage] = []
        for uid in sorted(data):
            item = data[uid]
            try:
                messages.append(parse_header_message(
                    uid,
                    header_bytes(item),
                    flags=item.get(b"FLAGS", ()),
                    internal_date=item.get(b"INTERNALDATE"),
                    has_attachments=has_attachment_disposition(item.get(b"BODYSTRUCTURE")),
                    folder=self.folder,
                ))
            except Exception:
                logger.exception("Error parseando cabeceras UID=%s", uid)
        return messages

    def list_recent(self, count: int = 10) -> list[EmailMessage]:
        """Últimos 'count' mensajes, más recientes primero."""
        with self._session() as inbox:
            uids = inbox.search_all()
            recent = uids[-count:] if count > 0 else []
            data = inbox.fetch_headers(recent)
        messages = self._header_messages(data)
        messages.sort(key=lambda m: m.date, reverse=True)
        return messages

    def search_text(self, query: str, limit: int = SEARCH_FETCH_LIMIT) -> SearchResult:
        with self._session() as inbox:
            uids = inbox.search_text(query)
            data = inbox.fetch_headers(uids[-limit:]) if uids else {}
        messages = self._header_messages(data)
        messages.sort(key=lambda m: m.date, reverse=True)
        return SearchResult(messages=messages, total_count=len(uids), query=query)

    # ───────── mensaje completo ─────────
    def _full_message(self, uid: int, item: dict[bytes, Any], thread_id: str = "") -> EmailMessage:
        return parse_full_message(
            uid,
            item[b"RFC822"],
            flags=item.get(b"FLAGS", ()),
            internal_date=item.get(b"INTERNALDATE"),
            thread_id=thread_id,
            folder=self.folder,
        )

    def get_message(self, uid: str) -> Optional[EmailMessage]:
        """Mensaje completo o None si el UID no existe."""
        key = int(uid)
        with self._session() as inbox:
            item = inbox.fetch_full([key]).get(key)
        if item is None:
            return None
        try:
            return self._full_message(key, item)
        except Exception as exc:
            raise MailboxFetchError(f"Failed to parse message: {exc}") from exc

    def get_messages(self, uids: Iterable[int], *, thread_id: str = "") -> list[EmailMessage]:
        """Fetch en bloque. Un mensaje que no parsea se registra y se descarta."""
        with self._session() as inbox:
            data = inbox.fetch_full(sorted(set(uids)))
        messages: list[EmailMessage] = []
        for uid in sorted(data):
            try:
                messages.append(self._full_message(uid, data[uid], thread_id=thread_id))
            except Exception:
                logger.exception("Error parseando mensaje del hilo UID=%s", uid)
        return messages

    def search_thread_anchor(self, token: str) -> list[int]:
        """
        Par de búsquedas para un token de hilo, en su propia sesión:
        Message-ID == token y References contiene token. Si una de las dos
        falla, aporta cero UIDs.
        """
        found: list[int] = []
        with self._session() as inbox:
            for header in THREAD_SEARCH_HEADERS:
                try:
                    found.extend(inbox.search_header(header, token))
                except MailboxFetchError as exc:
                    logger.warning("Búsqueda %s=%s fallida: %s", header, token, exc)
        return found

    # ───────── flags ─────────
    def set_read(self, uid: str, read: bool = True) -> OperationResult:
        action = "mark as read" if read else "mark as unread"
        try:
            with self._session(readonly=False) as inbox:
                inbox.set_seen(int(uid), read)
        except (IMAPClientError, MailboxFetchError) as exc:
            logger.warning("No se pudo actualizar \\Seen en UID=%s: %s", uid, exc)
            return OperationResult(success=False, message=f"Failed to {action}: {exc}")
        done = "marked as read" if read else "marked as unread"
        return OperationResult(success=True, message=f"Message {done} successfully")

    # ───────── adjuntos ─────────
    def get_attachment(self, uid: str, index: int = 0, max_size: int = 10 * 1024 * 1024) -> Optional[AttachmentContent]:
        """
        Adjunto 'index' en base64. None si no existe el mensaje o el adjunto.
        Si supera 'max_size' se rechaza con AttachmentTooLargeError (nunca se
        devuelve contenido parcial).
        """
        key = int(uid)
        with self._session() as inbox:
            item = inbox.fetch_full([key]).get(key)
        if item is None:
            return None
        try:
            found = attachment_at(item[b"RFC822"], index)
        except Exception as exc:
            raise MailboxFetchError(f"Failed to parse attachment: {exc}") from exc
        if found is None:
            return None

        info, payload = found
        if info.size > max_size:
            raise AttachmentTooLargeError(size=info.size, limit=max_size)
        return AttachmentContent(
            index=info.index,
            filename=info.filename,
            content_type=info.content_type,
            size=info.size,
            content=base64.b64encode(payload).decode("ascii"),
        )
