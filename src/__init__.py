"""v2e-notes: bookmarks, memory cards and guided navigation over a security knowledge graph."""

__version__ = "1.0.0"
