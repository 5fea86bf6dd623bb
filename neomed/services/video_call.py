"""
Video room naming for emergency calls.
"""

import re
import time
from typing import Optional
from urllib.parse import quote

ROOM_PREFIX = "neomed-emergency"

_SLUG_INVALID = re.compile(r"[^a-z0-9]+")


def room_slug(request_id: Optional[str], now_ms: Optional[int] = None) -> str:
    """Deterministic room name for a request id; epoch milliseconds when the id sanitises to nothing."""
    slug = _SLUG_INVALID.sub("-", str(request_id or "").lower()).strip("-")
    if not slug:
        slug = str(now_ms if now_ms is not None else int(time.time() * 1000))
    return f"{ROOM_PREFIX}-{slug}"


def build_video_call_url(room: str, base_url: str) -> str:
    room = quote(str(room or "").strip(), safe="")
    if not room:
        return ""

    base = str(base_url or "").strip()
    if not base:
        return f"/twilio-video-embed.html?roomName={room}"

    if "{room}" in base or "{identity}" in base:
        return base.replace("{room}", room).replace("{identity}", "")

    separator = "&" if "?" in base else "?"
    return f"{base}{separator}roomName={room}"
