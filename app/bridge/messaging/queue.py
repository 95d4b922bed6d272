"""Per-conversation ordered work queue.

Each conversation key gets its own FIFO and at most one drain loop.  Items
for one key are processed strictly in enqueue order, one at a time; drain
loops for different keys run concurrently and never wait on each other.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any

from ..errors import BackendFailure
from ..services.backend import Backend
from .status import StatusKind, StatusReporter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkItem:
    content: str
    conversation_id: str
    message_ref: Any = None
    destination: str | None = None
    result: asyncio.Future[str] = field(default=None, repr=False, compare=False)  # type: ignore[assignment]
    # QUEUED reaction started at enqueue time; awaited before PROCESSING
    queued_signal: asyncio.Task[bool] | None = field(default=None, repr=False, compare=False)


@dataclass
class ConversationState:
    pending: deque[WorkItem] = field(default_factory=deque)
    active: bool = False


def _preview(text: str) -> str:
    return text[:20] + ("..." if len(text) > 20 else "")


class ConversationQueue:
    """Serializes backend calls per conversation and brackets them with status signals."""

    def __init__(
        self,
        backend: Backend,
        reporter: StatusReporter,
        *,
        inter_item_delay: float = 0.5,
    ) -> None:
        self._backend = backend
        self._reporter = reporter
        self._delay = inter_item_delay
        self._states: dict[str, ConversationState] = {}
        self._drains: dict[str, asyncio.Task[None]] = {}
        self._closed = False

    # -- public API --------------------------------------------------------

    async def enqueue(
        self,
        key: str,
        content: str,
        conversation_id: str,
        message_ref: Any = None,
        destination: str | None = None,
    ) -> str:
        """Queue *content* for *key* and wait for the backend's reply.

        Raises :class:`BackendFailure` when the backend call fails.
        """
        return await self.submit(key, content, conversation_id, message_ref, destination)

    def submit(
        self,
        key: str,
        content: str,
        conversation_id: str,
        message_ref: Any = None,
        destination: str | None = None,
    ) -> asyncio.Future[str]:
        """Synchronous half of :meth:`enqueue`; the item is queued before this returns."""
        if self._closed:
            raise RuntimeError("Conversation queue is closed")
        loop = asyncio.get_running_loop()
        state = self._states.setdefault(key, ConversationState())
        logger.info(
            "[queue] Enqueueing message for %s: %s (processing=%s, queueLength=%d)",
            key, _preview(content), state.active, len(state.pending),
        )

        queued_signal = None
        if state.pending or state.active:
            queued_signal = loop.create_task(
                self._reporter.emit(StatusKind.QUEUED, destination, message_ref)
            )

        item = WorkItem(
            content=content,
            conversation_id=conversation_id,
            message_ref=message_ref,
            destination=destination,
            result=loop.create_future(),
            queued_signal=queued_signal,
        )
        state.pending.append(item)

        if not state.active:
            state.active = True
            self._drains[key] = loop.create_task(self._drain(key, state))
        return item.result

    def queue_size(self, key: str) -> int:
        """Items waiting behind the one in flight."""
        state = self._states.get(key)
        return len(state.pending) if state else 0

    def is_active(self, key: str) -> bool:
        state = self._states.get(key)
        return bool(state and state.active)

    def stats(self) -> dict[str, int]:
        return {
            "conversations": len(self._states),
            "active": sum(1 for s in self._states.values() if s.active),
            "pending": sum(len(s.pending) for s in self._states.values()),
        }

    async def close(self) -> None:
        """Cancel running drain loops; outstanding results are cancelled."""
        self._closed = True
        tasks = list(self._drains.values())
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        for state in self._states.values():
            while state.pending:
                state.pending.popleft().result.cancel()
            state.active = False
        self._drains.clear()
        self._states.clear()

    # -- drain loop --------------------------------------------------------

    async def _drain(self, key: str, state: ConversationState) -> None:
        current: WorkItem | None = None
        try:
            while True:
                while state.pending:
                    current = state.pending.popleft()
                    await self._process(key, current)
                    current = None
                    if state.pending and self._delay > 0:
                        # keeps reactions of back-to-back messages visually apart
                        await asyncio.sleep(self._delay)
                state.active = False
                # An item may have been appended after the emptiness check.
                if not state.pending:
                    break
                state.active = True
        except asyncio.CancelledError:
            if current is not None:
                current.result.cancel()
            raise
        except Exception as exc:
            logger.exception("[queue] Drain loop for %s failed", key)
            if current is not None and not current.result.done():
                failure = BackendFailure(f"Processing failed: {exc}")
                failure.__cause__ = exc
                current.result.set_exception(failure)
            state.active = False
        finally:
            if self._drains.get(key) is asyncio.current_task():
                del self._drains[key]
            if not state.active and self._states.get(key) is state:
                if not state.pending:
                    del self._states[key]
                elif not self._closed:
                    # items queued behind a failed loop get a fresh one
                    state.active = True
                    self._drains[key] = asyncio.get_running_loop().create_task(self._drain(key, state))

    async def _process(self, key: str, item: WorkItem) -> None:
        if item.queued_signal is not None:
            await item.queued_signal
        logger.info("[queue] Processing message for %s: %s", key, _preview(item.content))
        await self._reporter.emit(StatusKind.PROCESSING, item.destination, item.message_ref)

        try:
            reply = await self._backend.process(item.content, item.conversation_id)
        except asyncio.CancelledError as exc:
            if self._closed:
                raise
            # cancellation from inside the backend call, not of this drain
            await self._fail(key, item, exc)
            return
        except Exception as exc:
            await self._fail(key, item, exc)
            return

        await self._reporter.emit(StatusKind.COMPLETED, item.destination, item.message_ref)
        if not item.result.done():
            item.result.set_result(reply)

    async def _fail(self, key: str, item: WorkItem, exc: BaseException) -> None:
        logger.error("[queue] Error processing message for %s: %s", key, str(exc) or type(exc).__name__)
        await self._reporter.emit(StatusKind.ERROR, item.destination, item.message_ref)
        failure = exc if isinstance(exc, BackendFailure) else BackendFailure(str(exc) or "Processing cancelled")
        if failure is not exc:
            failure.__cause__ = exc
        if not item.result.done():
            item.result.set_exception(failure)
