"""
Notion → Markdown Generator

Fetches pages from a Notion database and renders each page's block tree
into a Markdown file, with image download, front matter and incremental
re-sync.
"""

__version__ = "1.0.0"
