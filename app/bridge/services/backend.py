"""Reply backend client -- ``POST <base>/api/chat``."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Protocol

from aiohttp import ClientError, ClientSession, ClientTimeout

from ..errors import BackendFailure

logger = logging.getLogger(__name__)


class Backend(Protocol):
    async def process(self, content: str, conversation_id: str) -> str: ...


class BackendClient:
    """Single form-encoded call per message, no retries.

    *timeout* is in seconds; ``0``/``None`` leaves the call unbounded.
    """

    def __init__(
        self,
        base_url: str,
        *,
        platform: str = "whatsapp",
        timeout: float | None = None,
        session: ClientSession | None = None,
    ) -> None:
        self._url = f"{base_url.rstrip('/')}/api/chat"
        self._platform = platform
        self._timeout = ClientTimeout(total=timeout) if timeout else ClientTimeout(total=None)
        self._session = session
        self._owns_session = session is None

    @property
    def url(self) -> str:
        return self._url

    def _get_session(self) -> ClientSession:
        if self._session is None or self._session.closed:
            self._session = ClientSession()
            self._owns_session = True
        return self._session

    async def process(self, content: str, conversation_id: str) -> str:
        form = {
            "content": content,
            "platform": self._platform,
            "platform_user_id": conversation_id,
        }
        if conversation_id:
            form["conversation_id"] = conversation_id

        try:
            async with self._get_session().post(self._url, data=form, timeout=self._timeout) as resp:
                if not 200 <= resp.status < 300:
                    body = await resp.text()
                    raise BackendFailure(
                        f"API responded with status: {resp.status}, {body}",
                        status=resp.status,
                        body=body,
                    )
                raw = await resp.text()
        except BackendFailure as exc:
            logger.error("Error calling AI API: %s", exc)
            raise
        except asyncio.TimeoutError as exc:
            logger.error("Error calling AI API: timed out after %ss", self._timeout.total)
            raise BackendFailure("API call timed out") from exc
        except ClientError as exc:
            logger.error("Error calling AI API: %s", exc)
            raise BackendFailure(f"API call failed: {exc}") from exc

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise BackendFailure("API returned invalid JSON", status=resp.status, body=raw) from exc
        reply = data.get("content") if isinstance(data, dict) else None
        if not isinstance(reply, str):
            raise BackendFailure("API response has no 'content' field", status=resp.status, body=raw)
        return reply

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
