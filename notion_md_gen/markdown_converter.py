"""
Notion blocks to Markdown converter.

Converts Notion's block structure to Markdown, one page at a time.
Handles the common block types including:
- Text blocks (paragraphs, headings, quotes)
- Lists (bulleted, numbered, to-do, toggle)
- Code blocks (with depth-aware indentation)
- Images (downloaded locally)
- Tables and column layouts
- Callouts and bookmarks as Hugo/Hexo/VuePress shortcodes
"""

import html
from dataclasses import dataclass
from pathlib import Path
from string import Template
from typing import Callable, Optional, TextIO

from notion_md_gen.assets import AssetPipeline
from notion_md_gen.config import SHORTCODE_TARGETS
from notion_md_gen.front_matter import build_front_matter, dump_front_matter
from notion_md_gen.link_preview import LinkPreviewFetcher
from notion_md_gen.notion_api import BlockType, NotionBlock, NotionPage, children_of
from notion_md_gen.rich_text import convert_rich_text

# Only rendered when a shortcode target is enabled.
EXTENDED_SYNTAX_BLOCKS = frozenset({BlockType.BOOKMARK, BlockType.CALLOUT})

# Handlers for these render their own children.
SELF_RENDERED_CHILDREN = frozenset({
    BlockType.QUOTE,
    BlockType.TOGGLE,
    BlockType.CALLOUT,
    BlockType.TABLE,
    BlockType.COLUMN_LIST,
    BlockType.COLUMN,
    BlockType.SYNCED_BLOCK,
    BlockType.TEMPLATE,
})

LIST_TYPES = frozenset({
    BlockType.BULLETED_LIST_ITEM,
    BlockType.NUMBERED_LIST_ITEM,
    BlockType.TO_DO,
})

# Map Notion language names to fence info strings
LANGUAGE_MAP = {
    "plain text": "",
    "c++": "cpp",
    "c#": "csharp",
    "shell": "bash",
    "f#": "fsharp",
    "objective-c": "objectivec",
    "vb.net": "vbnet",
    "markup": "html",
}


@dataclass
class ConversionContext:
    """Position of the block being rendered."""

    # Nesting level, 0 for top-level blocks
    depth: int = 0

    # Index within the current run of same-type siblings
    same_block_idx: int = 0

    @property
    def indent(self) -> str:
        return "  " * self.depth


def indent_code(rich_text: Optional[list[dict]], depth: int) -> str:
    """Render code content, prefixing every line with ``depth`` two-space indents."""
    content = convert_rich_text(rich_text)
    if depth == 0:
        return content
    indent = "  " * depth
    return "\n".join(f"{indent}{line}" for line in content.split("\n"))


def _file_url(data: dict) -> Optional[str]:
    """URL of a file object, hosted or external."""
    if data.get("type") == "external":
        return (data.get("external") or {}).get("url")
    if data.get("type") == "file":
        return (data.get("file") or {}).get("url")
    return data.get("url")


def _attr(value: Optional[str]) -> str:
    return html.escape(value or "", quote=True)


class MarkdownConverter:
    """
    Converts one page's Notion blocks to Markdown.

    A converter holds the state of a single page conversion (front matter,
    image pipeline, shortcode target); create a new one per page.
    """

    def __init__(
        self,
        assets: Optional[AssetPipeline] = None,
        link_preview: Optional[LinkPreviewFetcher] = None,
        content_template: str = "",
    ):
        """
        Initialize converter.

        Args:
            assets: Pipeline for downloading images. Without one, image
                    blocks keep their remote URL.
            link_preview: Fetcher for bookmark metadata.
            content_template: Optional path of a ``string.Template`` file
                              the rendered body is passed through.
        """
        self.assets = assets
        self.link_preview = link_preview
        self.content_template = content_template
        self.front_matter: dict = {}
        self.extended_syntax_target: Optional[str] = None

        # Block type handlers
        self._handlers: dict[BlockType, Callable[[NotionBlock, ConversionContext], str]] = {
            BlockType.PARAGRAPH: self._convert_paragraph,
            BlockType.HEADING_1: self._convert_heading,
            BlockType.HEADING_2: self._convert_heading,
            BlockType.HEADING_3: self._convert_heading,
            BlockType.BULLETED_LIST_ITEM: self._convert_bulleted_list_item,
            BlockType.NUMBERED_LIST_ITEM: self._convert_numbered_list_item,
            BlockType.TO_DO: self._convert_todo,
            BlockType.TOGGLE: self._convert_toggle,
            BlockType.QUOTE: self._convert_quote,
            BlockType.CALLOUT: self._convert_callout,
            BlockType.BOOKMARK: self._convert_bookmark,
            BlockType.IMAGE: self._convert_image,
            BlockType.CODE: self._convert_code,
            BlockType.DIVIDER: self._convert_divider,
            BlockType.EQUATION: self._convert_equation,
            BlockType.TABLE: self._convert_table,
            BlockType.COLUMN_LIST: self._convert_container,
            BlockType.COLUMN: self._convert_container,
            BlockType.SYNCED_BLOCK: self._convert_container,
            BlockType.TEMPLATE: self._convert_container,
            BlockType.VIDEO: self._convert_media_link,
            BlockType.EMBED: self._convert_media_link,
            BlockType.FILE: self._convert_media_link,
            BlockType.PDF: self._convert_media_link,
        }

    # =========================================================================
    # Configuration
    # =========================================================================

    def enable_extended_syntax(self, target: str) -> None:
        """Render bookmarks and callouts as shortcodes for ``target``."""
        if target not in SHORTCODE_TARGETS:
            raise ValueError(f"unknown shortcode target: {target!r}")
        self.extended_syntax_target = target

    @property
    def extended_syntax_enabled(self) -> bool:
        return self.extended_syntax_target is not None

    def with_front_matter(self, page: NotionPage) -> None:
        """Load front matter from the page's properties and cover."""
        self.front_matter.update(build_front_matter(page, self.assets))

    # =========================================================================
    # Generation
    # =========================================================================

    def generate(self, blocks: list[NotionBlock]) -> str:
        """Render front matter and blocks into the final file content."""
        content = self._normalize_whitespace(self.render_blocks(blocks, 0))

        if self.content_template:
            content = self._apply_template(content)

        return dump_front_matter(self.front_matter) + content

    def generate_to(self, blocks: list[NotionBlock], writer: TextIO) -> None:
        writer.write(self.generate(blocks))

    def render_blocks(self, blocks: list[NotionBlock], depth: int = 0) -> str:
        """
        Render sibling blocks at ``depth``.

        Consecutive blocks of the same type are numbered 0, 1, 2... in
        ``ConversionContext.same_block_idx``; the count restarts whenever
        the type changes. Skipped extended-syntax blocks do not count.
        """
        parts = []
        same_block_idx = 0
        last_type = None

        for block in blocks:
            if self._should_skip_render(block):
                continue

            same_block_idx += 1
            if block.type != last_type:
                same_block_idx = 0

            context = ConversionContext(depth=depth, same_block_idx=same_block_idx)
            parts.append(self.render_block(block, context))

            last_type = block.type

        return "".join(parts)

    def render_block(self, block: NotionBlock, context: ConversionContext) -> str:
        """
        Render a single block followed by its children.

        Unknown block types render as nothing, children included.
        """
        if block.block_type is BlockType.IMAGE:
            self._download_image(block)
        elif block.block_type is BlockType.BOOKMARK:
            self._inject_bookmark_info(block)

        handler = self._handlers.get(block.block_type)
        if handler is None:
            return ""

        markdown = handler(block, context)

        if block.has_children and block.block_type not in SELF_RENDERED_CHILDREN:
            markdown += self.render_blocks(children_of(block), context.depth + 1)

        return markdown

    def _should_skip_render(self, block: NotionBlock) -> bool:
        return not self.extended_syntax_enabled and block.block_type in EXTENDED_SYNTAX_BLOCKS

    # =========================================================================
    # Pre-processing
    # =========================================================================

    def _download_image(self, block: NotionBlock) -> None:
        """Download the image and remember its local path in ``block.extra``."""
        url = _file_url(block.content)
        if url and self.assets is not None:
            block.extra["src"] = self.assets.ensure_local(url)

    def _inject_bookmark_info(self, block: NotionBlock) -> None:
        """Fetch OpenGraph data for the bookmark into ``block.extra``."""
        url = block.content.get("url")
        if url and self.link_preview is not None:
            block.extra.update(self.link_preview.fetch(url).to_extra())

    # =========================================================================
    # Block type handlers
    # =========================================================================

    def _convert_paragraph(self, block: NotionBlock, context: ConversionContext) -> str:
        text = convert_rich_text(block.content.get("rich_text"))
        return f"\n{context.indent}{text}\n"

    def _convert_heading(self, block: NotionBlock, context: ConversionContext) -> str:
        level = int(block.type[-1])
        text = convert_rich_text(block.content.get("rich_text"))
        return f"\n{'#' * level} {text}\n"

    def _list_lead(self, context: ConversionContext) -> str:
        """Blank line before a top-level list starts."""
        return "\n" if context.depth == 0 and context.same_block_idx == 0 else ""

    def _convert_bulleted_list_item(self, block: NotionBlock, context: ConversionContext) -> str:
        text = convert_rich_text(block.content.get("rich_text"))
        return f"{self._list_lead(context)}{context.indent}- {text}\n"

    def _convert_numbered_list_item(self, block: NotionBlock, context: ConversionContext) -> str:
        text = convert_rich_text(block.content.get("rich_text"))
        number = context.same_block_idx + 1
        return f"{self._list_lead(context)}{context.indent}{number}. {text}\n"

    def _convert_todo(self, block: NotionBlock, context: ConversionContext) -> str:
        text = convert_rich_text(block.content.get("rich_text"))
        checkbox = "[x]" if block.content.get("checked") else "[ ]"
        return f"{self._list_lead(context)}{context.indent}- {checkbox} {text}\n"

    def _convert_toggle(self, block: NotionBlock, context: ConversionContext) -> str:
        """Convert toggle block to details/summary HTML."""
        text = convert_rich_text(block.content.get("rich_text"))
        body = self.render_blocks(children_of(block), 0).strip("\n")

        result = f"\n<details>\n<summary>{text}</summary>\n"
        if body:
            result += f"\n{body}\n"
        return result + "\n</details>\n"

    def _convert_quote(self, block: NotionBlock, context: ConversionContext) -> str:
        text = convert_rich_text(block.content.get("rich_text"))
        lines = text.split("\n")

        children = self.render_blocks(children_of(block), 0).strip("\n")
        if children:
            lines += [""] + children.split("\n")

        quoted = "\n".join(f"{context.indent}> {line}".rstrip() for line in lines)
        return f"\n{quoted}\n"

    def _convert_callout(self, block: NotionBlock, context: ConversionContext) -> str:
        """Convert callout block to the target's admonition shortcode."""
        text = convert_rich_text(block.content.get("rich_text"))
        children = self.render_blocks(children_of(block), 0).strip("\n")
        body = f"{text}\n\n{children}" if children else text

        icon = ""
        icon_data = block.content.get("icon") or {}
        if icon_data.get("type") == "emoji":
            icon = icon_data.get("emoji", "")

        target = self.extended_syntax_target
        if target == "hugo":
            shortcode = '{{< callout emoji="' + _attr(icon) + '" >}}\n' + body + "\n{{< /callout >}}"
        elif target == "hexo":
            prefix = f"{icon} " if icon else ""
            shortcode = "{% note info %}\n" + prefix + body + "\n{% endnote %}"
        else:
            shortcode = f"::: tip {icon}".rstrip() + f"\n{body}\n:::"

        return f"\n{shortcode}\n"

    def _convert_bookmark(self, block: NotionBlock, context: ConversionContext) -> str:
        """Convert bookmark block to the target's link card shortcode."""
        url = block.content.get("url", "")
        caption = convert_rich_text(block.content.get("caption"))
        title = block.extra.get("Title") or caption or url
        description = block.extra.get("Description", "")
        image = block.extra.get("Image", "")

        target = self.extended_syntax_target
        if target == "hugo":
            shortcode = (
                '{{< bookmark url="' + _attr(url) + '" title="' + _attr(title)
                + '" description="' + _attr(description) + '" img="' + _attr(image) + '" >}}'
            )
        elif target == "hexo":
            shortcode = '{% link "' + title.replace('"', "'") + '" ' + url + " %}"
        else:
            shortcode = (
                f'<LinkCard url="{_attr(url)}" title="{_attr(title)}" '
                f'description="{_attr(description)}" image="{_attr(image)}" />'
            )

        return f"\n{shortcode}\n"

    def _convert_image(self, block: NotionBlock, context: ConversionContext) -> str:
        src = block.extra.get("src") or _file_url(block.content) or ""
        caption = convert_rich_text(block.content.get("caption"))
        return f"\n{context.indent}![{caption}]({src})\n"

    def _convert_code(self, block: NotionBlock, context: ConversionContext) -> str:
        language = (block.content.get("language") or "").lower()
        language = LANGUAGE_MAP.get(language, language)

        code = indent_code(block.content.get("rich_text"), context.depth)
        result = f"\n{context.indent}```{language}\n{code}\n{context.indent}```\n"

        caption = convert_rich_text(block.content.get("caption"))
        if caption:
            result += f"{context.indent}*{caption}*\n"

        return result

    def _convert_divider(self, block: NotionBlock, context: ConversionContext) -> str:
        return "\n---\n"

    def _convert_equation(self, block: NotionBlock, context: ConversionContext) -> str:
        expression = block.content.get("expression", "")
        return f"\n$$\n{expression}\n$$\n"

    def _convert_table(self, block: NotionBlock, context: ConversionContext) -> str:
        """Convert table block; rows are its table_row children."""
        rows = [row for row in children_of(block) if row.block_type is BlockType.TABLE_ROW]
        if not rows:
            return ""

        def format_row(cells: list) -> str:
            texts = [convert_rich_text(cell).replace("|", "\\|") for cell in cells]
            return "| " + " | ".join(texts) + " |"

        width = block.content.get("table_width") or len(rows[0].content.get("cells", []))
        separator = "| " + " | ".join("---" for _ in range(width)) + " |"

        lines = []
        if not block.content.get("has_column_header"):
            lines.append(format_row([[] for _ in range(width)]))
            lines.append(separator)

        for i, row in enumerate(rows):
            lines.append(format_row(row.content.get("cells", [])))
            if i == 0 and block.content.get("has_column_header"):
                lines.append(separator)

        return "\n" + "\n".join(lines) + "\n"

    def _convert_container(self, block: NotionBlock, context: ConversionContext) -> str:
        """Columns, synced blocks and templates only contribute their children."""
        return self.render_blocks(children_of(block), context.depth)

    def _convert_media_link(self, block: NotionBlock, context: ConversionContext) -> str:
        """Video, embed, file and PDF blocks become plain links."""
        url = _file_url(block.content)
        if not url:
            return ""
        label = (
            convert_rich_text(block.content.get("caption"))
            or block.content.get("name")
            or block.type.capitalize()
        )
        return f"\n{context.indent}[{label}]({url})\n"

    # =========================================================================
    # Utilities
    # =========================================================================

    def _apply_template(self, content: str) -> str:
        """Pass the body through the user's content template."""
        template = Template(Path(self.content_template).read_text(encoding="utf-8"))
        values = {key: str(value) for key, value in self.front_matter.items()}
        values["content"] = content
        return template.safe_substitute(values)

    def _normalize_whitespace(self, content: str) -> str:
        """
        Normalize whitespace in the output.

        Lines inside fenced code blocks are kept verbatim, as are Markdown
        hard line breaks (two or more trailing spaces).
        """
        result = []
        blank_count = 0
        in_fence = False

        for line in content.split("\n"):
            if line.lstrip().startswith("```"):
                in_fence = not in_fence
                blank_count = 0
                result.append(line.rstrip())
                continue

            if in_fence:
                result.append(line)
                continue

            # Remove trailing whitespace unless it is a hard line break
            if not line.strip() or not line.endswith("  "):
                line = line.rstrip()

            # Remove excessive blank lines (more than 2 consecutive)
            if not line:
                blank_count += 1
                if blank_count <= 2:
                    result.append(line)
            else:
                blank_count = 0
                result.append(line)

        # Ensure single trailing newline
        return "\n".join(result).strip() + "\n"
