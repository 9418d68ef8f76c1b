"""Room codes and share links."""
from __future__ import annotations

import secrets
from urllib.parse import parse_qs, quote, urlsplit


def generate_room_code() -> str:
    """Return a three-digit room code between 100 and 999."""

    return str(100 + secrets.randbelow(900))


def share_url(origin: str, room_id: str) -> str:
    return f"{origin.rstrip('/')}?room={quote(room_id, safe='')}"


def room_from_share_url(url: str) -> str | None:
    """Extract the room code a share link points at, upper-cased for the join form."""

    values = parse_qs(urlsplit(url).query).get("room")
    if not values or not values[0].strip():
        return None
    return values[0].strip().upper()


def qr_image_url(url: str, size: int = 180) -> str:
    """Address of a QR image encoding ``url`` at ``size`` pixels square."""

    return f"https://chart.googleapis.com/chart?cht=qr&chs={size}x{size}&chl={quote(url, safe='')}"
