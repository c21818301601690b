# leadgen/ingest/__init__.py
from __future__ import annotations

from .normalize import NormalizedLead, normalize_lead, normalize_name_parts, split_full_name

__all__ = ["NormalizedLead", "normalize_lead", "normalize_name_parts", "split_full_name"]
