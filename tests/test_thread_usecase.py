from __future__ import annotations

import asyncio
import socket
import threading
from datetime import datetime, timezone
from typing import Optional

import pytest

from mailbridge.application.services.mailbox_reader import MailboxReader
from mailbridge.application.use_cases.thread_usecase import ResolveThreadUseCase
from mailbridge.domain.errors import MailboxConnectionError, MailboxFetchError
from mailbridge.domain.models import EmailMessage
from mailbridge.infrastructure.email.imap_client import IMAPInbox


class FakeReader:
    def __init__(
        self,
        target: Optional[EmailMessage],
        *,
        hits: Optional[dict[str, list[int]]] = None,
        members: Optional[list[EmailMessage]] = None,
        get_error: Optional[Exception] = None,
        search_error: Optional[Exception] = None,
        fetch_error: Optional[Exception] = None,
    ) -> None:
        self.target = target
        self.hits = hits or {}
        self.members = members or []
        self.get_error = get_error
        self.search_error = search_error
        self.fetch_error = fetch_error
        self.searched: list[str] = []
        self.fetched: list[tuple[list[int], str]] = []
        self._lock = threading.Lock()

    def get_message(self, uid: str) -> Optional[EmailMessage]:
        if self.get_error is not None:
            raise self.get_error
        return self.target

    def search_thread_anchor(self, token: str) -> list[int]:
        with self._lock:
            self.searched.append(token)
        if self.search_error is not None:
            raise self.search_error
        return list(self.hits.get(token, []))

    def get_messages(self, uids, *, thread_id: str = "") -> list[EmailMessage]:
        self.fetched.append((list(uids), thread_id))
        if self.fetch_error is not None:
            raise self.fetch_error
        return list(self.members)


def resolve(reader: FakeReader, uid: str = "1"):
    return asyncio.run(ResolveThreadUseCase(reader=reader, max_workers=2).resolve(uid))


def test_missing_target_gives_empty_thread():
    result = resolve(FakeReader(None), "42")
    assert result.thread_id == "42"
    assert result.messages == []
    assert result.message_count == 0


def test_target_fetch_failure_gives_empty_thread():
    result = resolve(FakeReader(None, get_error=MailboxFetchError("Fetch error: BAD")), "42")
    assert result.message_count == 0
    assert result.thread_id == "42"


def test_connection_error_on_initial_fetch_propagates():
    with pytest.raises(MailboxConnectionError):
        resolve(FakeReader(None, get_error=MailboxConnectionError("IMAP connection error: refused")))


def test_message_without_threading_headers_is_singleton(make_message):
    target = make_message(uid="1")
    reader = FakeReader(target)
    result = resolve(reader)

    assert result.messages == [target]
    assert result.message_count == 1
    assert reader.searched == []


def test_no_search_hits_degrades_to_singleton(make_message):
    target = make_message(uid="1", message_id="<a@x>")
    reader = FakeReader(target, hits={})
    result = resolve(reader)

    assert result.messages == [target]
    assert result.message_count == 1
    assert reader.fetched == []


def test_search_connection_failure_degrades_to_singleton(make_message):
    target = make_message(uid="1", message_id="<a@x>", in_reply_to="<b@x>")
    reader = FakeReader(target, search_error=MailboxConnectionError("IMAP connection error: too many connections"))
    result = resolve(reader)

    assert result.messages == [target]
    assert result.message_count == 1


def test_batch_fetch_failure_degrades_to_singleton(make_message):
    target = make_message(uid="1", message_id="<a@x>")
    reader = FakeReader(target, hits={"<a@x>": [1, 2]}, fetch_error=MailboxFetchError("Fetch error: BAD"))
    result = resolve(reader)

    assert result.messages == [target]


def test_union_of_anchor_searches_fetched_once_and_sorted_oldest_first(make_message):
    target = make_message(
        uid="3", minutes=20, message_id="<a@x>", in_reply_to="<b@x>", references=["<b@x>", "<c@x>"],
    )
    root = make_message(uid="1", minutes=0, message_id="<c@x>")
    middle = make_message(uid="2", minutes=10, message_id="<b@x>", references=["<c@x>"])
    reader = FakeReader(
        target,
        hits={"<a@x>": [3], "<b@x>": [2, 3], "<c@x>": [1, 2, 3]},
        members=[target, middle, root],
    )
    result = resolve(reader, "3")

    assert sorted(reader.searched) == ["<a@x>", "<b@x>", "<c@x>"]
    assert reader.fetched == [([1, 2, 3], "3")]
    assert [m.id for m in result.messages] == ["1", "2", "3"]
    assert result.message_count == 3
    assert result.thread_id == "3"


def test_equal_timestamps_keep_relative_order(make_message):
    target = make_message(uid="5", minutes=0, message_id="<a@x>")
    sibling = make_message(uid="2", minutes=0, message_id="<s@x>")
    reader = FakeReader(target, hits={"<a@x>": [2, 5]}, members=[sibling, target])
    result = resolve(reader, "5")

    assert [m.id for m in result.messages] == ["2", "5"]


def test_count_reflects_parsed_messages_only(make_message):
    target = make_message(uid="1", message_id="<a@x>")
    reader = FakeReader(target, hits={"<a@x>": [1, 2, 3]}, members=[target])
    result = resolve(reader)

    assert result.message_count == 1
    assert reader.fetched == [([1, 2, 3], "1")]


def imap_reader() -> MailboxReader:
    return MailboxReader(
        inbox_factory=lambda: IMAPInbox("imap.test", 993, "me@example.com", "secret", timeout=5.0),
    )


def stored(raw: bytes) -> dict:
    return {b"RFC822": raw, b"FLAGS": (), b"INTERNALDATE": datetime(2025, 6, 2, tzinfo=timezone.utc)}


def test_search_timeout_over_imap_degrades_to_singleton(imap_stub, build_raw):
    imap_stub.config.update(
        messages={7: stored(build_raw(message_id="<a@x>"))},
        search_error=socket.timeout("timed out"),
    )
    result = asyncio.run(ResolveThreadUseCase(reader=imap_reader()).resolve("7"))

    assert result.message_count == 1
    assert result.messages[0].message_id == "<a@x>"
    assert all(client.logged_out for client in imap_stub.instances)


def test_batch_fetch_timeout_over_imap_degrades_to_singleton(imap_stub, build_raw):
    imap_stub.config.update(
        messages={7: stored(build_raw(message_id="<a@x>")), 8: stored(build_raw(message_id="<b@x>"))},
        search_hits=[7, 8],
        fetch_error=TimeoutError("timed out"),
        fail_fetch_from=2,
    )
    result = asyncio.run(ResolveThreadUseCase(reader=imap_reader()).resolve("7"))

    assert [m.id for m in result.messages] == ["7"]
    assert result.message_count == 1


def test_raw_socket_error_from_reader_degrades_to_singleton(make_message):
    target = make_message(uid="1", message_id="<a@x>")
    reader = FakeReader(target, hits={"<a@x>": [1, 2]}, fetch_error=TimeoutError("timed out"))
    result = resolve(reader)

    assert result.messages == [target]
