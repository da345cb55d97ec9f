"""mdweave: a Markdown-to-HTML static site pipeline.

Markdown documents with optional frontmatter are turned into linked HTML
pages. Every page gets a table of contents built from its headings and a
list of the pages that link to it.

The build runs in global stages (split, link graph, ToC, render,
assemble) with per-document work spread over a thread pool. Recovered
problems are collected into a diagnostics manifest written next to the
output.
"""

import logging

__all__ = ["__version__"]
__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())
