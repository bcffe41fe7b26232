"""
Notion rich text to Markdown inline syntax.

Works directly on the rich text objects returned by the Notion API:

    {"type": "text", "text": {"content": "...", "link": {"url": "..."}},
     "annotations": {"bold": false, "italic": false, ...}}
"""

from typing import Optional


def convert_rich_text(rich_text: Optional[list[dict]]) -> str:
    """Join a list of rich text objects into a single Markdown string."""
    if not rich_text:
        return ""
    return "".join(convert_rich(span) for span in rich_text)


def convert_rich(span: dict) -> str:
    """
    Render one rich text object as Markdown.

    Only ``text`` spans produce output. ``equation`` and ``mention`` spans
    render as an empty string.
    """
    span_type = span.get("type", "text")

    if span_type == "text":
        text = span.get("text") or {}
        content = text.get("content", "")
        link = text.get("link")
        if link and link.get("url"):
            content = f"[{content}]({link['url']})"
        return emph_format(span.get("annotations")).format(content)

    # equation and mention are not rendered
    return ""


def emph_format(annotations: Optional[dict]) -> str:
    """
    Build a ``str.format`` pattern for the given annotations.

    ``code`` wins over everything else; otherwise bold/italic are combined
    and the result is wrapped once more for underline or strikethrough.
    Color is ignored.
    """
    pattern = "{}"
    if not annotations:
        return pattern

    if annotations.get("code"):
        return "`{}`"

    bold = annotations.get("bold", False)
    italic = annotations.get("italic", False)
    if bold and italic:
        pattern = "***{}***"
    elif bold:
        pattern = "**{}**"
    elif italic:
        pattern = "*{}*"

    if annotations.get("underline"):
        pattern = "__" + pattern + "__"
    elif annotations.get("strikethrough"):
        pattern = "~~" + pattern + "~~"

    return pattern
