from __future__ import annotations

from datetime import datetime, timedelta, timezone
from email.message import EmailMessage as MimeMessage
from typing import Callable, Iterable, Optional, Sequence

import pytest

from mailbridge.domain.models import AttachmentInfo, EmailMessage, SendResult

BASE_DATE = datetime(2025, 6, 2, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_message() -> Callable[..., EmailMessage]:
    def _factory(
        uid: str = "1",
        subject: str = "Meeting",
        from_addr: str = "Jane Doe <jane@example.com>",
        body: Optional[str] = "line1\nline2",
        minutes: int = 0,
        message_id: Optional[str] = None,
        in_reply_to: Optional[str] = None,
        references: Optional[list[str]] = None,
        attachments: Optional[list[AttachmentInfo]] = None,
    ) -> EmailMessage:
        return EmailMessage(
            id=uid,
            subject=subject,
            from_addr=from_addr,
            to=["me@example.com"],
            date=BASE_DATE + timedelta(minutes=minutes),
            snippet=(body or "")[:200],
            body=body,
            labels=["INBOX"],
            attachments=attachments,
            message_id=message_id,
            in_reply_to=in_reply_to,
            references=references,
        )

    return _factory


@pytest.fixture
def build_raw() -> Callable[..., bytes]:
    """RFC822 en bytes construido con la librería estándar."""

    def _factory(
        subject: str = "Meeting",
        sender: str = "Jane Doe <jane@example.com>",
        to: str = "me@example.com",
        cc: Optional[str] = None,
        body: str = "line1\nline2",
        html: Optional[str] = None,
        date: Optional[str] = "Mon, 02 Jun 2025 10:00:00 +0000",
        message_id: Optional[str] = "<a@x>",
        in_reply_to: Optional[str] = None,
        references: Optional[str] = None,
        attachments: Iterable[tuple[Optional[str], bytes, str]] = (),
    ) -> bytes:
        msg = MimeMessage()
        msg["Subject"] = subject
        msg["From"] = sender
        msg["To"] = to
        if cc:
            msg["Cc"] = cc
        if date:
            msg["Date"] = date
        if message_id:
            msg["Message-ID"] = message_id
        if in_reply_to:
            msg["In-Reply-To"] = in_reply_to
        if references:
            msg["References"] = references
        msg.set_content(body)
        if html:
            msg.add_alternative(html, subtype="html")
        for filename, data, content_type in attachments:
            maintype, subtype = content_type.split("/")
            if filename:
                msg.add_attachment(data, maintype=maintype, subtype=subtype, filename=filename)
            else:
                msg.add_attachment(data, maintype=maintype, subtype=subtype)
        return msg.as_bytes()

    return _factory


class FakeSender:
    """Mail Sender que registra las llamadas en vez de enviar."""

    def __init__(self, result: Optional[SendResult] = None) -> None:
        self.result = result or SendResult(success=True, message_id="<sent@example.com>", message="Reply sent successfully")
        self.replies: list[dict] = []
        self.sent: list[dict] = []

    def send_reply(self, **kwargs) -> SendResult:
        self.replies.append(kwargs)
        return self.result

    def send_message(self, **kwargs) -> SendResult:
        self.sent.append(kwargs)
        return SendResult(success=True, message_id="<new@example.com>", message="Email sent successfully")

    def verify_connection(self) -> bool:
        return True


@pytest.fixture
def fake_sender() -> FakeSender:
    return FakeSender()


class FakeInbox:
    """Sustituto de IMAPInbox: datos en memoria, misma interfaz."""

    def __init__(
        self,
        *,
        uids: Sequence[int] = (),
        full: Optional[dict] = None,
        headers: Optional[dict] = None,
        text_hits: Sequence[int] = (),
        header_hits: Optional[dict] = None,
        failing_headers: Sequence[str] = (),
        seen_error: Optional[Exception] = None,
    ) -> None:
        self.uids = list(uids)
        self.full = full or {}
        self.headers = headers or {}
        self.text_hits = list(text_hits)
        self.header_hits = header_hits or {}
        self.failing_headers = set(failing_headers)
        self.seen_error = seen_error
        self.opened = 0
        self.closed = 0
        self.readonly: list[bool] = []
        self.fetched: list[list[int]] = []
        self.seen_calls: list[tuple[int, bool]] = []

    def __enter__(self) -> "FakeInbox":
        self.opened += 1
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.closed += 1

    def select_folder(self, folder: str, readonly: bool = True) -> None:
        self.readonly.append(readonly)

    def search_all(self) -> list[int]:
        return sorted(self.uids)

    def search_text(self, query: str) -> list[int]:
        return sorted(self.text_hits)

    def search_header(self, name: str, value: str) -> list[int]:
        from mailbridge.domain.errors import MailboxFetchError

        if name in self.failing_headers:
            raise MailboxFetchError(f"Search error: {name} unsupported")
        return sorted(self.header_hits.get((name, value), []))

    def fetch_full(self, uids) -> dict:
        uids = list(uids)
        self.fetched.append(uids)
        return {uid: self.full[uid] for uid in uids if uid in self.full}

    def fetch_headers(self, uids) -> dict:
        uids = list(uids)
        self.fetched.append(uids)
        return {uid: self.headers[uid] for uid in uids if uid in self.headers}

    def set_seen(self, uid: int, seen: bool = True) -> None:
        if self.seen_error is not None:
            raise self.seen_error
        self.seen_calls.append((uid, seen))


class StubIMAPClient:
    """Sustituto de imapclient.IMAPClient: registra llamadas y falla a demanda."""

    instances: list["StubIMAPClient"] = []
    config: dict = {}
    fetches = 0

    def __init__(self, host, port=None, ssl=True, timeout=None) -> None:
        cfg = StubIMAPClient.config
        if cfg.get("connect_error") is not None:
            raise cfg["connect_error"]
        self.host = host
        self.port = port
        self.ssl = ssl
        self.timeout = timeout
        self.calls: list[tuple] = []
        self.logged_in = None
        self.logged_out = False
        self.shut_down = False
        StubIMAPClient.instances.append(self)

    def _fail(self, key: str) -> None:
        error = StubIMAPClient.config.get(key)
        if error is not None:
            raise error

    def login(self, user, password) -> None:
        self._fail("login_error")
        self.logged_in = (user, password)

    def logout(self) -> None:
        self.logged_out = True
        self._fail("logout_error")

    def shutdown(self) -> None:
        self.shut_down = True

    def select_folder(self, folder, readonly=False) -> dict:
        self.calls.append(("select_folder", folder, readonly))
        return {}

    def has_capability(self, capability) -> bool:
        return capability in StubIMAPClient.config.get("capabilities", ())

    def gmail_search(self, query) -> list[int]:
        self.calls.append(("gmail_search", query))
        self._fail("search_error")
        return list(StubIMAPClient.config.get("search_hits", []))

    def search(self, criteria, charset=None) -> list[int]:
        self.calls.append(("search", list(criteria), charset))
        self._fail("search_error")
        return list(StubIMAPClient.config.get("search_hits", []))

    def fetch(self, uids, items) -> dict:
        StubIMAPClient.fetches += 1
        self.calls.append(("fetch", list(uids), list(items)))
        if StubIMAPClient.fetches >= StubIMAPClient.config.get("fail_fetch_from", 1):
            self._fail("fetch_error")
        data = StubIMAPClient.config.get("messages", {})
        return {uid: data[uid] for uid in uids if uid in data}

    def add_flags(self, uids, flags) -> None:
        self._fail("store_error")
        self.calls.append(("add_flags", list(uids), list(flags)))

    def remove_flags(self, uids, flags) -> None:
        self._fail("store_error")
        self.calls.append(("remove_flags", list(uids), list(flags)))


@pytest.fixture
def imap_stub(monkeypatch):
    from mailbridge.infrastructure.email import imap_client

    StubIMAPClient.instances = []
    StubIMAPClient.config = {}
    StubIMAPClient.fetches = 0
    monkeypatch.setattr(imap_client, "IMAPClient", StubIMAPClient)
    return StubIMAPClient
