"""Outcome of a manual send through the transport."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class SendResult:
    """Whether the transport accepted a send, and the id it assigned.

    Falsy on failure, so callers can branch on it directly::

        result = await sender.send_text("4915...", "hi")
        if not result:
            logger.warning(result.message)
    """

    success: bool
    message: str = ""
    message_id: str | None = None
    media_type: str | None = None

    @classmethod
    def sent(cls, what: str, message_id: str, *, media_type: str | None = None) -> SendResult:
        return cls(True, f"{what.capitalize()} sent successfully", message_id, media_type)

    @classmethod
    def failed(cls, message: str) -> SendResult:
        return cls(False, message)

    def __bool__(self) -> bool:
        return self.success

    def to_json(self) -> dict[str, Any]:
        """Response body for the send routes."""
        if not self.success:
            return {"success": False, "error": self.message}
        body: dict[str, Any] = {
            "success": True,
            "messageId": self.message_id,
            "message": self.message,
        }
        if self.media_type is not None:
            body["type"] = self.media_type
        return body
