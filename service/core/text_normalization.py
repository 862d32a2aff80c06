"""Search normalization and font heuristics for bilingual (Arabic/English) labels."""

import re
import unicodedata

_ARABIC_RE = re.compile(r"[\u0600-\u06FF\u0750-\u077F\u08A0-\u08FF\uFB50-\uFDFF\uFE70-\uFEFF]")

# Applied after NFKD, which already splits hamza/madda carriers (أ إ آ ؤ ئ) into base letter + mark.
_LOOKALIKE_FOLDS = str.maketrans(
    {
        "\u0671": "\u0627",  # alef wasla -> alef
        "\u0629": "\u0647",  # ta marbuta -> ha
        "\u0649": "\u064a",  # alef maksura -> ya
        "\u06cc": "\u064a",  # farsi yeh -> ya
        "\u06a9": "\u0643",  # keheh -> kaf
        "\u0640": None,  # tatweel
    }
)

ARABIC_FONT_CLASS = "font-arabic"
LATIN_FONT_CLASS = "font-sans"


def normalize_search_text(text: str | None) -> str:
    """Fold text for case- and accent-insensitive substring search.

    Applied identically to the search term and every candidate string.

    Args:
        text: Raw label, value or search term.

    Returns:
        Casefolded text without combining marks, with Arabic look-alike letters
        folded to one form and Arabic-Indic digits mapped to ASCII.
    """
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFKD", str(text))
    chars: list[str] = []
    for ch in decomposed:
        if unicodedata.combining(ch):
            continue
        if ch.isdigit() and not ch.isascii():
            digit = unicodedata.digit(ch, None)
            if digit is not None:
                ch = str(digit)
        chars.append(ch)
    return "".join(chars).translate(_LOOKALIKE_FOLDS).casefold()


def contains_arabic(text: str | None) -> bool:
    return bool(text) and _ARABIC_RE.search(text) is not None


def font_class(text: str | None) -> str:
    """Pick the font family class for a piece of content."""
    return ARABIC_FONT_CLASS if contains_arabic(text) else LATIN_FONT_CLASS


def mixed_font_class() -> str:
    # The Arabic face also covers Latin glyphs.
    return ARABIC_FONT_CLASS
