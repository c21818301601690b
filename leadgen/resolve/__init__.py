"""
Resolvers: one sparse input → one enriched field via an external lookup.

  - DomainResolver:    company name → registrable domain
  - ExecutiveResolver: company + domain → executive full name
  - EmailResolver:     first/last + domain → verified email address

Each returns None for "not found"; provider failures raise.
"""

from .domain import DomainResolver
from .email import EmailMatch, EmailResolver
from .executive import ExecutiveResolver

__all__ = ["DomainResolver", "ExecutiveResolver", "EmailResolver", "EmailMatch"]
