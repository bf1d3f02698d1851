"""
NoteTaker Backend - Markdown Renderer
=====================================

What:  Converts note Markdown into the HTML stored alongside it.
How:   Python-Markdown with the "extra" bundle (tables, fenced code,
       footnotes, ...) and sane list handling.
Who:   Called by NoteService on every create and edit.

The render is a pure function of its input: the same Markdown always yields
the same HTML, so html_content can be recomputed at any time.
"""

import markdown

MARKDOWN_EXTENSIONS = ["extra", "sane_lists"]


def render_markdown(text: str) -> str:
    """Render Markdown to an HTML fragment. Empty input gives an empty string."""
    if not text:
        return ""
    return markdown.markdown(text, extensions=MARKDOWN_EXTENSIONS, output_format="html")
