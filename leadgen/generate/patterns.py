# leadgen/generate/patterns.py
from __future__ import annotations

from dataclasses import dataclass

from leadgen.ingest.normalize import transliterate

# Token vocabulary for pattern definitions. Anything else in a pattern's
# token sequence is emitted literally (separators).
FIRST = "first"
LAST = "last"
F = "f"  # first initial
L = "l"  # last initial


@dataclass(frozen=True)
class EmailPattern:
    name: str
    tokens: tuple[str, ...]
    frequency: float  # observed share of real-world mailboxes, percent

    @property
    def needs_last(self) -> bool:
        return LAST in self.tokens or L in self.tokens

    def local_part(self, first: str, last: str) -> str:
        fn, ln = norm_name(first, last)
        values = {FIRST: fn, LAST: ln, F: fn[:1], L: ln[:1]}
        return "".join(values.get(tok, tok) for tok in self.tokens)


_RAW_PATTERNS: tuple[EmailPattern, ...] = (
    EmailPattern("flast", (F, LAST), 42.9),
    EmailPattern("first.last", (FIRST, ".", LAST), 30.8),
    EmailPattern("first_only", (FIRST,), 13.9),
    EmailPattern("firstl", (FIRST, L), 2.0),
    EmailPattern("firstlast", (FIRST, LAST), 2.0),
    EmailPattern("f.last", (F, ".", LAST), 1.1),
    EmailPattern("last_only", (LAST,), 1.0),
    EmailPattern("lastf", (LAST, F), 0.8),
    EmailPattern("first_last", (FIRST, "_", LAST), 0.5),
    EmailPattern("first.l", (FIRST, ".", L), 0.4),
    EmailPattern("last.first", (LAST, ".", FIRST), 0.2),
    EmailPattern("last.f", (LAST, ".", F), 0.1),
    EmailPattern("first-last", (FIRST, "-", LAST), 0.1),
    EmailPattern("f-last", (F, "-", LAST), 0.1),
    EmailPattern("first-l", (FIRST, "-", L), 0.1),
    EmailPattern("fl", (F, L), 0.1),
    EmailPattern("f.l", (F, ".", L), 0.1),
    EmailPattern("last_first", (LAST, "_", FIRST), 0.05),
    EmailPattern("lastfirst", (LAST, FIRST), 0.05),
    EmailPattern("last-first", (LAST, "-", FIRST), 0.05),
)

# Most common first; sorted() is stable so equal frequencies keep table order.
PATTERNS: tuple[EmailPattern, ...] = tuple(
    sorted(_RAW_PATTERNS, key=lambda p: p.frequency, reverse=True)
)

PATTERNS_BY_NAME: dict[str, EmailPattern] = {p.name: p for p in PATTERNS}


def _safe(s: str) -> list[str]:
    # Keep only [a-z0-9], collapse runs
    out = []
    for ch in transliterate(s).lower():
        out.append(ch if ("a" <= ch <= "z") or ("0" <= ch <= "9") else " ")
    return "".join(out).split()


def norm_name(first: str, last: str) -> tuple[str, str]:
    fn = "".join(_safe(first))
    ln = "".join(_safe(last))
    return fn, ln


def apply_pattern(first: str, last: str, key: str) -> str:
    return PATTERNS_BY_NAME[key].local_part(first, last)


def generate_candidates(first: str, last: str, domain: str) -> list[tuple[EmailPattern, str]]:
    """
    (pattern, address) pairs in frequency order.

    Patterns that need a last name are skipped when there is none, and an
    address already produced by a more frequent pattern is not repeated.
    """
    fn, ln = norm_name(first, last)
    dom = (domain or "").strip().lower()
    if not fn or not dom:
        return []
    seen: set[str] = set()
    out: list[tuple[EmailPattern, str]] = []
    for pat in PATTERNS:
        if pat.needs_last and not ln:
            continue
        local = pat.local_part(fn, ln)
        if not local:
            continue
        addr = f"{local}@{dom}"
        if addr in seen:
            continue
        seen.add(addr)
        out.append((pat, addr))
    return out


__all__ = [
    "EmailPattern",
    "PATTERNS",
    "PATTERNS_BY_NAME",
    "apply_pattern",
    "generate_candidates",
    "norm_name",
]
