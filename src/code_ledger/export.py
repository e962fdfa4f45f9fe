"""Plain-text export of a product's codes for operators."""

from __future__ import annotations

from .models import CodeListing

AVAILABLE_HEADER = "Non-sold:"
SOLD_HEADER = "Sold:"


def render_export(listing: CodeListing) -> str:
    available = "\n".join(listing.available)
    sold = "\n".join(listing.sold)
    return f"{AVAILABLE_HEADER}\n{available}\n\n{SOLD_HEADER}\n{sold}"


def parse_export(text: str) -> tuple[list[str], list[str]]:
    """Read a `render_export` document back into (available, sold)."""
    sections: dict[str, list[str]] = {AVAILABLE_HEADER: [], SOLD_HEADER: []}
    current: list[str] | None = None
    for line in text.splitlines():
        stripped = line.strip()
        if stripped in sections:
            current = sections[stripped]
        elif stripped and current is not None:
            current.append(stripped)
    return sections[AVAILABLE_HEADER], sections[SOLD_HEADER]
