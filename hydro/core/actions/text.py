from __future__ import annotations

import unicodedata

# Letters without a canonical decomposition into base letter + mark.
_EXTRA = str.maketrans({
    "ł": "l", "Ł": "L",
    "đ": "d", "Đ": "D",
    "ø": "o", "Ø": "O",
    "ß": "ss",
    "æ": "ae", "Æ": "AE",
    "œ": "oe", "Œ": "OE",
})


def transliterate(text: str) -> str:
    """
    Best-effort conversion of a message to plain ASCII for SMS delivery.

    Accented letters lose their marks, other non-ASCII characters are
    dropped. If the conversion fails, the text is returned unchanged.
    """
    try:
        decomposed = unicodedata.normalize("NFKD", text.translate(_EXTRA))
        return decomposed.encode("ascii", "ignore").decode("ascii")
    except (AttributeError, TypeError, UnicodeError):
        return text
