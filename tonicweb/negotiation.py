"""Content negotiation helpers: Accept parsing and format selection."""

from __future__ import annotations

from collections.abc import Sequence

MIME_JSON = "application/json"
MIME_HTML = "text/html"
MIME_XML = "application/xml"
MIME_XML2 = "text/xml"
MIME_PLAIN = "text/plain"
MIME_POST_FORM = "application/x-www-form-urlencoded"
MIME_MULTIPART_POST_FORM = "multipart/form-data"
MIME_YAML = "application/x-yaml"
MIME_TOML = "application/toml"


def parse_accept(header: str) -> list[str]:
    """Split an Accept header into media ranges, dropping parameters and blanks."""
    result = []
    for part in header.split(","):
        semicolon = part.find(";")
        if semicolon > 0:
            part = part[:semicolon]
        part = part.strip()
        if part:
            result.append(part)
    return result


def filter_flags(content: str) -> str:
    """Return ``content`` up to the first space or semicolon."""
    for index, char in enumerate(content):
        if char in " ;":
            return content[:index]
    return content


def _accepts(accepted: str, offer: str) -> bool:
    for wanted, offered in zip(accepted, offer):
        if wanted == "*" or offered == "*":
            return True
        if wanted != offered:
            return False
    return len(accepted) <= len(offer)


def negotiate_format(accepted: Sequence[str], offered: Sequence[str]) -> str:
    """Pick the first offered format matching the accepted list.

    With nothing accepted, the first offer wins. Returns ``""`` when no offer
    matches. Raises ValueError when nothing is offered.
    """
    if not offered:
        raise ValueError("you must provide at least one offer")
    if not accepted:
        return offered[0]
    for wanted in accepted:
        for offer in offered:
            if _accepts(wanted, offer):
                return offer
    return ""


def body_allowed_for_status(status: int) -> bool:
    """Return False for statuses that must not carry a body (1xx, 204, 304)."""
    if 100 <= status <= 199:
        return False
    return status not in (204, 304)