# everydaymed/normalize.py
import re
import unicodedata

_COMBINING_MARKS = re.compile(r"[\u0300-\u036f]")
_NOT_ALNUM_SPACE = re.compile(r"[^a-z0-9\s]")


def normalize_text(s):
    """
    Canonical comparison key for free text.

    Lower-cases, folds accented letters to their base letter, drops anything
    outside [a-z0-9] and whitespace, then trims. "São Paulo" -> "sao paulo".
    """
    s = (s or "").lower()
    s = unicodedata.normalize("NFD", s)
    s = _COMBINING_MARKS.sub("", s)
    s = _NOT_ALNUM_SPACE.sub("", s)
    return s.strip()


def normalize_question(s):
    # Key for "was this question already asked today"
    return (s or "").strip().lower()
