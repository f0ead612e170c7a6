import re
import unicodedata

# Folded before NFKD so "ä" becomes "ae" rather than "a"
_GERMAN_FOLDS = {"ä": "ae", "ö": "oe", "ü": "ue", "ß": "ss"}
_GERMAN_RE = re.compile("|".join(_GERMAN_FOLDS))


def fold_diacritics(s: str) -> str:
    s = _GERMAN_RE.sub(lambda m: _GERMAN_FOLDS[m.group(0)], s)
    s = unicodedata.normalize("NFKD", s)
    return "".join(ch for ch in s if not unicodedata.combining(ch))


def normalize_for_search(s: str) -> str:
    """Lowercase, diacritics-folded copy of ``s`` used for matching."""
    return fold_diacritics(s.lower()).strip()


def collapse_whitespace(s: str) -> str:
    s = s.replace("\u00a0", " ")
    return re.sub(r"\s+", " ", s).strip()
