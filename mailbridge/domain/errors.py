# mailbridge/domain/errors.py
from __future__ import annotations


class MailboxError(Exception):
    """Error base de cualquier operación contra el buzón."""


class MailboxConnectionError(MailboxError):
    """No se pudo conectar o autenticar contra el servidor IMAP."""


class MailboxFetchError(MailboxError):
    """Un comando IMAP (SELECT/FETCH/SEARCH) falló con la sesión ya abierta."""


class AttachmentTooLargeError(MailboxError):
    def __init__(self, size: int, limit: int) -> None:
        self.size = size
        self.limit = limit
        super().__init__(f"Attachment size ({size} bytes) exceeds limit ({limit} bytes)")
