"""
Image attachment helpers shared by provider adapters.

Backends disagree about how images travel: OpenAI-compatible APIs accept a
URL (remote or ``data:``) while Anthropic wants base64 payloads with an
exact media type. Uploaded files are frequently mislabelled (a JPEG saved
as ``.png``), so the declared type is checked against the leading bytes.
"""

from __future__ import annotations

import base64
import binascii
import re
from typing import Any, Dict, Optional, Tuple

from quorum.providers.interfaces import ImageAttachment

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<b64>;base64)?,(?P<payload>.*)$", re.DOTALL)

# Enough bytes to recognise every supported signature (WebP needs 12).
_SNIFF_BYTES = 16


def sniff_image_type(data: bytes) -> Optional[str]:
    """
    Detect an image MIME type from its magic number.

    Returns:
        'image/png', 'image/jpeg', 'image/gif', 'image/webp' or None

    Example:
        >>> sniff_image_type(b"\\x89PNG\\r\\n\\x1a\\n....")
        'image/png'
    """
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if data.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if data.startswith((b"GIF87a", b"GIF89a")):
        return "image/gif"
    if len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return None


def parse_data_url(url: str) -> Optional[Tuple[str, str]]:
    """
    Split a base64 ``data:`` URL into (mime_type, base64_payload).

    Returns None for remote URLs and for non-base64 data URLs.
    """
    match = _DATA_URL_RE.match(url)
    if not match or not match.group("b64"):
        return None
    return match.group("mime") or "application/octet-stream", match.group("payload")


def resolve_base64(attachment: ImageAttachment) -> Optional[Tuple[str, str]]:
    """
    Return (corrected_mime_type, base64_payload) for inline images.

    Remote URLs return None: they are forwarded as URLs. The declared type is
    replaced by the sniffed one whenever the two disagree.
    """
    if attachment.data is not None:
        payload = base64.b64encode(attachment.data).decode("ascii")
        declared = attachment.mime_type
        raw = attachment.data[:_SNIFF_BYTES]
    elif attachment.url:
        parsed = parse_data_url(attachment.url)
        if parsed is None:
            return None
        declared, payload = parsed
        raw = _decode_prefix(payload)
    else:
        return None

    detected = sniff_image_type(raw) if raw else None
    return (detected or declared), payload


def to_openai_part(attachment: ImageAttachment) -> Dict[str, Any]:
    """Build an OpenAI ``image_url`` content part."""
    inline = resolve_base64(attachment)
    if inline is not None:
        mime, payload = inline
        url = f"data:{mime};base64,{payload}"
    else:
        url = attachment.url or ""
    return {"type": "image_url", "image_url": {"url": url}}


def to_anthropic_part(attachment: ImageAttachment) -> Dict[str, Any]:
    """Build an Anthropic ``image`` content block."""
    inline = resolve_base64(attachment)
    if inline is not None:
        mime, payload = inline
        return {
            "type": "image",
            "source": {"type": "base64", "media_type": mime, "data": payload},
        }
    return {"type": "image", "source": {"type": "url", "url": attachment.url}}


def _decode_prefix(payload: str) -> bytes:
    # 24 base64 chars decode to 18 bytes, enough for the sniffer.
    chunk = payload[:24]
    try:
        return base64.b64decode(chunk + "=" * (-len(chunk) % 4))
    except (binascii.Error, ValueError):
        return b""


__all__ = [
    "sniff_image_type",
    "parse_data_url",
    "resolve_base64",
    "to_openai_part",
    "to_anthropic_part",
]
