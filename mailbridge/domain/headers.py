# mailbridge/domain/headers.py
"""
Utilidades puras sobre cabeceras RFC 2822: plegado de bloques de cabecera,
extracción de direcciones y construcción de respuestas encadenadas
(In-Reply-To / References). No tocan la red.
"""
from __future__ import annotations
import re
from datetime import datetime
from typing import Iterable, Optional

from mailbridge.domain.models import EmailMessage

_LINE_SPLIT = re.compile(r"\r?\n")
_ANGLE_ADDR = re.compile(r"<([^>]+)>")
_BARE_ADDR = re.compile(r"([^\s<]+@[^\s>]+)")

REPLY_PREFIX = "Re:"


def parse_header_block(raw: str) -> dict[str, str]:
    """
    Pliega las líneas de continuación (empiezan por espacio o tabulador) sobre
    la cabecera anterior y devuelve {nombre en minúsculas: valor}.
    - Líneas sin ':' se ignoran.
    - Si una cabecera se repite, gana la última aparición (limitación conocida).
    """
    headers: dict[str, str] = {}
    current_key = ""
    current_value = ""

    for line in _LINE_SPLIT.split(raw or ""):
        if line.startswith((" ", "\t")):
            current_value += " " + line.strip()
        elif ":" in line:
            if current_key:
                headers[current_key.lower()] = current_value
            key, _, value = line.partition(":")
            current_key = key.strip()
            current_value = value.strip()

    if current_key:
        headers[current_key.lower()] = current_value
    return headers


def extract_email_address(header: str) -> Optional[str]:
    """'Jane Doe <jane@example.com>' -> 'jane@example.com'; sin patrón -> None."""
    if not header:
        return None
    match = _ANGLE_ADDR.search(header) or _BARE_ADDR.search(header)
    return match.group(1) if match else None


def split_addresses(value: str) -> list[str]:
    # conjunto ordenado: conserva el orden de aparición sin duplicados
    return list(dict.fromkeys(a.strip() for a in (value or "").split(",") if a.strip()))


def split_references(value: Optional[str]) -> list[str]:
    return (value or "").split()


def reply_subject(subject: str) -> str:
    return subject if subject.startswith(REPLY_PREFIX) else f"{REPLY_PREFIX} {subject}"


def quote_body(body: str) -> str:
    return "\n".join(f"> {line}" for line in body.split("\n"))


def format_locale_date(value: datetime) -> str:
    return value.astimezone().strftime("%c")


def compose_reply_body(reply: str, original: EmailMessage) -> str:
    return (
        f"{reply}\n\n---\n"
        f"On {format_locale_date(original.date)}, {original.from_addr} wrote:\n"
        f"{quote_body(original.body or '')}"
    )


def reply_references(references: Optional[Iterable[str]], message_id: Optional[str]) -> list[str]:
    return [ref for ref in [*(references or []), message_id] if ref]


def thread_anchors(message: EmailMessage) -> list[str]:
    """Message-ID propio, In-Reply-To y cada entrada de References, sin repetir."""
    candidates = [message.message_id, message.in_reply_to, *(message.references or [])]
    return list(dict.fromkeys(token for token in candidates if token))
