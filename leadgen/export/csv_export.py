# leadgen/export/csv_export.py
"""
CSV export of one extraction file's leads.

Fixed column order:

  id, full_name, company, title, location, linkedin_url, domain, email,
  email_verified, ceo_name, status, created_at

Text cells are guarded against spreadsheet formula injection.
"""

from __future__ import annotations

import csv
import io
from collections.abc import Iterable, Iterator

from leadgen.db import Lead

EXPORT_COLUMNS: tuple[str, ...] = (
    "id",
    "full_name",
    "company",
    "title",
    "location",
    "linkedin_url",
    "domain",
    "email",
    "email_verified",
    "ceo_name",
    "status",
    "created_at",
)


def _escape_cell(value: str | None) -> str:
    """
    Guard against Excel/Sheets "formula injection" (CSV Injection / DDE attacks).

    Prefixes any cell starting with a dangerous character with a single quote.
    Dangerous characters per OWASP CSV Injection guidance:
      =  +  -  @  \\t (tab)  \\r (carriage return)
    """
    if value is None:
        return ""
    if value and value[0] in ("=", "+", "-", "@", "\t", "\r"):
        return "'" + value
    return value


def lead_to_row(lead: Lead) -> list[str]:
    return [
        lead.id,
        _escape_cell(lead.full_name),
        _escape_cell(lead.company),
        _escape_cell(lead.title),
        _escape_cell(lead.location),
        _escape_cell(lead.linkedin_url),
        _escape_cell(lead.domain),
        _escape_cell(lead.email),
        "true" if lead.email_verified else "false",
        _escape_cell(lead.ceo_name),
        lead.status,
        lead.created_at,
    ]


def iter_csv(leads: Iterable[Lead]) -> Iterator[str]:
    """Yield the CSV one line at a time (header first), for streaming responses."""
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")

    def _flush() -> str:
        out = buf.getvalue()
        buf.seek(0)
        buf.truncate(0)
        return out

    writer.writerow(EXPORT_COLUMNS)
    yield _flush()
    for lead in leads:
        writer.writerow(lead_to_row(lead))
        yield _flush()


def write_csv(leads: Iterable[Lead], fh) -> int:
    """Write leads to an open text file. Returns rows written (excluding header)."""
    writer = csv.writer(fh, lineterminator="\n")
    writer.writerow(EXPORT_COLUMNS)
    n = 0
    for lead in leads:
        writer.writerow(lead_to_row(lead))
        n += 1
    return n


__all__ = ["EXPORT_COLUMNS", "iter_csv", "lead_to_row", "write_csv"]
