# mailbridge/application/use_cases/thread_usecase.py
"""
Reconstrucción de hilos en cliente (sin la extensión IMAP THREAD).

Política de degradación (degrade_to_singleton): si la fase secundaria
(búsquedas por token o fetch en bloque) falla, se devuelve el hilo con solo el
mensaje original. Se prefiere un hilo más pequeño pero válido a fallar la
llamada entera.
"""
from __future__ import annotations
import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from itertools import chain

from mailbridge.application.services.mailbox_reader import MailboxReader
from mailbridge.domain.errors import MailboxError, MailboxFetchError
from mailbridge.domain.headers import thread_anchors
from mailbridge.domain.models import EmailMessage, ThreadResult

logger = logging.getLogger(__name__)


class ResolveThreadUseCase:
    def __init__(self, *, reader: MailboxReader, max_workers: int = 4) -> None:
        self.reader = reader
        self.max_workers = max(1, max_workers)

    async def resolve(self, uid: str) -> ThreadResult:
        # 1) Mensaje objetivo. Errores de conexión se propagan al llamador.
        try:
            target = await asyncio.to_thread(self.reader.get_message, uid)
        except MailboxFetchError as exc:
            logger.warning("Hilo %s: fetch del mensaje fallido (%s)", uid, exc)
            target = None
        if target is None:
            return ThreadResult.of(uid, [])

        # 2) Tokens de anclaje
        anchors = thread_anchors(target)
        if not anchors:
            return ThreadResult.of(uid, [target])

        # 3) Fan-out de búsquedas + fetch en bloque
        try:
            uids = await self._search_anchors(anchors)
            if not uids:
                return self.degrade_to_singleton(uid, target, "sin coincidencias para los tokens")
            messages = await asyncio.to_thread(self.reader.get_messages, uids, thread_id=uid)
        except (MailboxError, OSError) as exc:
            return self.degrade_to_singleton(uid, target, str(exc))

        # 4) Orden cronológico ascendente (sort estable)
        messages.sort(key=lambda m: m.date)
        logger.info("Hilo %s: %d mensajes (%d tokens)", uid, len(messages), len(anchors))
        return ThreadResult.of(uid, messages)

    async def _search_anchors(self, anchors: list[str]) -> list[int]:
        loop = asyncio.get_running_loop()
        workers = min(self.max_workers, len(anchors))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="thread-search") as pool:
            results = await asyncio.gather(
                *(loop.run_in_executor(pool, self.reader.search_thread_anchor, token) for token in anchors),
                return_exceptions=True,
            )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return sorted(set(chain.from_iterable(results)))

    @staticmethod
    def degrade_to_singleton(uid: str, target: EmailMessage, reason: str) -> ThreadResult:
        logger.warning("Hilo %s degradado a mensaje único: %s", uid, reason)
        return ThreadResult.of(uid, [target])
