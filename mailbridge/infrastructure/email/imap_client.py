# mailbridge/infrastructure/email/imap_client.py
from __future__ import annotations
import logging
from typing import Any, Iterable
from imapclient import IMAPClient, SEEN
from imapclient.exceptions import IMAPClientError

from mailbridge.domain.errors import MailboxConnectionError, MailboxFetchError

logger = logging.getLogger(__name__)

HEADER_FIELDS = "FROM TO CC SUBJECT DATE MESSAGE-ID IN-REPLY-TO REFERENCES"
FULL_ITEMS = ["RFC822", "FLAGS", "INTERNALDATE"]
HEADER_ITEMS = [f"BODY.PEEK[HEADER.FIELDS ({HEADER_FIELDS})]", "FLAGS", "INTERNALDATE", "BODYSTRUCTURE"]
GMAIL_CAPABILITY = "X-GM-EXT-1"


class IMAPInbox:
    """
    Sesión IMAP de un solo uso. Abre conexión + login al entrar y hace logout
    al salir, también si hubo excepción:

        with IMAPInbox(host, port, user, password) as inbox:
            inbox.select_folder("INBOX")
            uids = inbox.search_all()
    """

    def __init__(
        self,
        host: str,
        port: int,
        user: str,
        password: str,
        ssl: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.ssl = ssl
        self.timeout = timeout
        self.client: IMAPClient | None = None

    def __enter__(self) -> "IMAPInbox":
        try:
            self.client = IMAPClient(self.host, port=self.port, ssl=self.ssl, timeout=self.timeout)
            self.client.login(self.user, self.password)
        except (IMAPClientError, OSError) as exc:
            self._shutdown()
            raise MailboxConnectionError(f"IMAP connection error: {exc}") from exc
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            if self.client:
                self.client.logout()
        except Exception:
            logger.exception("Error cerrando IMAP")
        finally:
            self.client = None

    def _shutdown(self) -> None:
        # login fallido: cerrar el socket sin LOGOUT
        if not self.client:
            return
        try:
            self.client.shutdown()
        except Exception:
            logger.exception("Error cerrando socket IMAP tras fallo de login")
        finally:
            self.client = None

    def _require(self) -> IMAPClient:
        if self.client is None:
            raise MailboxConnectionError("IMAP session is not open")
        return self.client

    def select_folder(self, folder: str, readonly: bool = True) -> None:
        try:
            self._require().select_folder(folder, readonly=readonly)
        except (IMAPClientError, OSError) as exc:
            raise MailboxFetchError(f"Failed to open {folder}: {exc}") from exc

    def search_all(self) -> list[int]:
        try:
            return sorted(self._require().search(["ALL"]))
        except (IMAPClientError, OSError) as exc:
            raise MailboxFetchError(f"Search error: {exc}") from exc

    def search_text(self, query: str) -> list[int]:
        """Búsqueda de texto libre; en Gmail usa X-GM-RAW (sintaxis de Gmail)."""
        client = self._require()
        try:
            if client.has_capability(GMAIL_CAPABILITY):
                uids = client.gmail_search(query)
            else:
                charset = None if query.isascii() else "UTF-8"
                uids = client.search(["TEXT", query], charset=charset)
        except (IMAPClientError, OSError) as exc:
            raise MailboxFetchError(f"Search error: {exc}") from exc
        return sorted(uids)

    def search_header(self, name: str, value: str) -> list[int]:
        try:
            return sorted(self._require().search(["HEADER", name, value]))
        except (IMAPClientError, OSError) as exc:
            raise MailboxFetchError(f"Search error: {exc}") from exc

    def fetch_full(self, uids: Iterable[int]) -> dict[int, dict[bytes, Any]]:
        return self._fetch(uids, FULL_ITEMS)

    def fetch_headers(self, uids: Iterable[int]) -> dict[int, dict[bytes, Any]]:
        return self._fetch(uids, HEADER_ITEMS)

    def _fetch(self, uids: Iterable[int], items: list[str]) -> dict[int, dict[bytes, Any]]:
        uids = list(uids)
        if not uids:
            return {}
        try:
            return self._require().fetch(uids, items)
        except (IMAPClientError, OSError) as exc:
            raise MailboxFetchError(f"Fetch error: {exc}") from exc

    def set_seen(self, uid: int, seen: bool = True) -> None:
        client = self._require()
        try:
            if seen:
                client.add_flags([uid], [SEEN])
            else:
                client.remove_flags([uid], [SEEN])
        except (IMAPClientError, OSError) as exc:
            raise MailboxFetchError(f"Store error: {exc}") from exc


def header_bytes(data: dict[bytes, Any]) -> bytes:
    # la clave devuelta es BODY[HEADER.FIELDS (...)], sin el .PEEK
    for key, value in data.items():
        if key.upper().startswith(b"BODY[HEADER"):
            return value or b""
    return b""


def has_attachment_disposition(node: Any) -> bool:
    """Recorre el BODYSTRUCTURE buscando alguna disposición 'attachment'."""
    if isinstance(node, (list, tuple)):
        if (
            len(node) == 2
            and isinstance(node[0], bytes)
            and node[0].lower() == b"attachment"
        ):
            return True
        return any(has_attachment_disposition(child) for child in node)
    return False
