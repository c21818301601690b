# leadgen/fetch/__init__.py
"""
Search-provider client.

Public entry points:
  - SearchClient(cfg).search(query) -> raw result markup
  - search_url(query) -> the search-engine URL proxied by the provider
"""

from .client import SEARCH_ENGINE_URL, SearchClient, search_url

__all__ = ["SearchClient", "search_url", "SEARCH_ENGINE_URL"]
