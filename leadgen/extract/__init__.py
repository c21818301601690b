"""Language-model extraction of executive names from search text."""

from .executive import ExecutiveExtractor, clean_executive_name, relevant_text

__all__ = ["ExecutiveExtractor", "clean_executive_name", "relevant_text"]
