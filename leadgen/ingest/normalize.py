# leadgen/ingest/normalize.py
from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from typing import Any

from unidecode import unidecode

# Column widths for stored lead fields
NAME_MAX = 200
COMPANY_MAX = 200
TITLE_MAX = 200
LOCATION_MAX = 100
URL_MAX = 500

# Shorter values are treated as scraping noise
MIN_FIELD_LEN = 2


# ---------------------------------------------------------------------------
# Small utils
# ---------------------------------------------------------------------------


def _to_nfkc(s: str) -> str:
    return unicodedata.normalize("NFKC", s)


def _collapse_ws(s: str) -> str:
    return " ".join(str(s).strip().split())


def clean_field(value: Any, limit: int) -> str | None:
    """Stringify, NFKC-normalize, collapse whitespace and truncate. Empty → None."""
    if value is None:
        return None
    s = _collapse_ws(_to_nfkc(str(value)))[:limit].strip()
    return s or None


# Legal suffixes dropped before matching a company against a domain
COMPANY_STOPWORDS = frozenset(
    {
        "inc",
        "llc",
        "corp",
        "ltd",
        "company",
        "corporation",
        "incorporated",
        "limited",
        "gmbh",
        "plc",
    }
)

_TOKEN_SPLIT_RE = re.compile(r"[^a-z0-9]+")


def company_tokens(company_name: str) -> list[str]:
    """
    Tokenize a company display name: lowercase, transliterated, split on
    whitespace/punctuation, dropping tokens of two characters or fewer and
    legal-suffix stopwords. Order is preserved, duplicates removed.
    """
    folded = unidecode(company_name or "").lower()
    out: list[str] = []
    for tok in _TOKEN_SPLIT_RE.split(folded):
        if len(tok) <= 2 or tok in COMPANY_STOPWORDS:
            continue
        if tok not in out:
            out.append(tok)
    return out


# ---------------------------------------------------------------------------
# Name parsing
# ---------------------------------------------------------------------------

# Particles to keep with the surname (normalized lowercase)
SURNAME_PARTICLES = {
    "da",
    "das",
    "de",
    "del",
    "della",
    "di",
    "dos",
    "du",
    "la",
    "le",
    "van",
    "von",
    "bin",
    "ibn",
    "al",
    "el",
    "de la",
    "de los",
    "van der",
    "van de",
    "van den",
    "von der",
}

# Trailing credentials/suffixes scraped profiles carry after the name
_NAME_SUFFIXES = {"jr", "sr", "ii", "iii", "iv", "phd", "mba", "md", "cpa", "pmp", "esq"}

_PAREN_RE = re.compile(r"\([^)]*\)|\[[^\]]*\]")


def transliterate(s: str) -> str:
    """ASCII transliteration ("José Müller" → "Jose Muller")."""
    return unidecode(s or "")


def is_cjk(s: str) -> bool:
    # coarse heuristic: any CJK block character → treat as CJK
    return any(
        "\u4e00" <= ch <= "\u9fff" or "\u3040" <= ch <= "\u30ff" or "\uac00" <= ch <= "\ud7af"
        for ch in s
    )


def _strip_decorations(full_name: str) -> str:
    raw = _PAREN_RE.sub(" ", _to_nfkc(full_name))
    # "Jane Doe, MBA, PMP" → "Jane Doe"
    raw = raw.split(",", 1)[0]
    toks = raw.split()
    while len(toks) > 1 and toks[-1].lower().strip(".") in _NAME_SUFFIXES:
        toks.pop()
    return " ".join(toks)


def split_full_name(full_name: str) -> tuple[str, str]:
    """
    Returns (first, last) with particle-aware splitting.

    "Ludwig van Beethoven" → ("Ludwig", "van Beethoven");
    CJK names are family-name first: "王 小明" → ("小明", "王").
    """
    raw = _collapse_ws(_strip_decorations(full_name or ""))
    if not raw:
        return "", ""

    toks = raw.split()
    if is_cjk(raw):
        if len(toks) >= 2:
            return " ".join(toks[1:]), toks[0]
        return toks[0], ""

    if len(toks) == 1:
        return toks[0], ""

    # Walk from the end backward, accreting known particles
    last_parts: list[str] = [toks[-1]]
    i = len(toks) - 2
    while i >= 1:
        if i - 1 >= 1:
            two = f"{toks[i - 1].lower()} {toks[i].lower()}"
            if two in SURNAME_PARTICLES:
                last_parts = [toks[i - 1], toks[i], *last_parts]
                i -= 2
                continue
        if toks[i].lower() in SURNAME_PARTICLES:
            last_parts.insert(0, toks[i])
            i -= 1
            continue
        break

    first = " ".join(toks[: i + 1]).strip()
    last = " ".join(last_parts).strip()
    return first, last


def normalize_name_parts(full_name: str) -> tuple[str, str]:
    """
    (first, last) transliterated to ASCII lowercase, for email synthesis.
    """
    first, last = split_full_name(full_name)
    return (
        _collapse_ws(transliterate(first)).lower(),
        _collapse_ws(transliterate(last)).lower(),
    )


# ---------------------------------------------------------------------------
# Lead rows
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NormalizedLead:
    full_name: str
    company: str
    first_name: str | None
    last_name: str | None
    title: str | None
    location: str | None
    linkedin_url: str | None


def _pick(raw: dict[str, Any], *keys: str) -> Any:
    for k in keys:
        v = raw.get(k)
        if v not in (None, ""):
            return v
    return None


def normalize_lead(raw: dict[str, Any]) -> NormalizedLead | None:
    """
    Clean one scraped lead. Accepts camelCase (extension payload) or
    snake_case keys. Returns None when name or company is too short to be
    a real record.
    """
    full = _pick(raw, "fullName", "full_name")
    if full is None:
        first_in = _pick(raw, "firstName", "first_name") or ""
        last_in = _pick(raw, "lastName", "last_name") or ""
        full = f"{first_in} {last_in}"
    full_name = clean_field(full, NAME_MAX)
    company = clean_field(_pick(raw, "company", "companyName"), COMPANY_MAX)

    if not full_name or not company:
        return None
    if len(full_name) < MIN_FIELD_LEN or len(company) < MIN_FIELD_LEN:
        return None

    first, last = split_full_name(full_name)
    return NormalizedLead(
        full_name=full_name,
        company=company,
        first_name=first or None,
        last_name=last or None,
        title=clean_field(_pick(raw, "title"), TITLE_MAX),
        location=clean_field(_pick(raw, "location"), LOCATION_MAX),
        linkedin_url=clean_field(_pick(raw, "linkedinUrl", "linkedin_url", "profileUrl"), URL_MAX),
    )


__all__ = [
    "COMPANY_STOPWORDS",
    "NAME_MAX",
    "COMPANY_MAX",
    "TITLE_MAX",
    "LOCATION_MAX",
    "URL_MAX",
    "NormalizedLead",
    "clean_field",
    "company_tokens",
    "normalize_lead",
    "normalize_name_parts",
    "split_full_name",
    "transliterate",
]
