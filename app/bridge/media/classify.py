"""Media kind classification for outbound attachments."""

from __future__ import annotations

import mimetypes

EXTENSION_TO_MIME: dict[str, str] = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".mp3": "audio/mpeg",
    ".ogg": "audio/ogg",
    ".opus": "audio/ogg",
    ".m4a": "audio/mp4",
    ".aac": "audio/aac",
    ".mp4": "video/mp4",
    ".3gp": "video/3gpp",
    ".mov": "video/quicktime",
    ".pdf": "application/pdf",
}


def classify(content_type: str) -> str:
    """Return ``'image'``, ``'video'``, ``'audio'``, or ``'document'``."""
    mime = content_type.lower().split(";")[0].strip()
    for kind in ("image", "video", "audio"):
        if mime.startswith(f"{kind}/"):
            return kind
    return "document"


def guess_mime(filename: str, declared: str | None = None) -> str:
    """Declared content type when useful, otherwise a guess from the file name."""
    if declared and declared != "application/octet-stream":
        return declared
    suffix = "." + filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    return (
        EXTENSION_TO_MIME.get(suffix)
        or mimetypes.guess_type(filename)[0]
        or "application/octet-stream"
    )
