import html
from typing import Optional

import bleach


def clean_text(value: Optional[str]) -> str:
    """Drop every HTML tag from ``value`` and keep the rest as literal text.

    bleach escapes ``&`` and ``<`` in what it keeps; the stored value is
    plain text rendered as JSON, so the entities are decoded again.
    """
    cleaned = bleach.clean((value or '').strip(), tags=set(), attributes={}, strip=True)
    return html.unescape(cleaned).strip()
