"""Tests for the block renderer."""

import io
from unittest.mock import Mock

import pytest

from notion_md_gen.errors import LinkPreviewError
from notion_md_gen.link_preview import LinkPreview
from notion_md_gen.markdown_converter import MarkdownConverter, indent_code
from notion_md_gen.notion_api import BlockType

from conftest import block, span


@pytest.fixture
def converter():
    return MarkdownConverter()


def record_same_block_idx(converter, block_type):
    """Replace a handler with one that records the sibling index it sees."""
    seen = []

    def handler(blk, context):
        seen.append(context.same_block_idx)
        return ""

    converter._handlers[block_type] = handler
    return seen


class TestSameBlockIndex:

    def test_consecutive_blocks_count_up(self, converter):
        seen = record_same_block_idx(converter, BlockType.PARAGRAPH)
        converter.render_blocks([block("paragraph", "x") for _ in range(4)])
        assert seen == [0, 1, 2, 3]

    def test_different_type_resets_counter(self, converter):
        seen = record_same_block_idx(converter, BlockType.PARAGRAPH)
        blocks = [
            block("paragraph", "a"),
            block("paragraph", "b"),
            block("divider"),
            block("paragraph", "c"),
            block("paragraph", "d"),
        ]
        converter.render_blocks(blocks)
        assert seen == [0, 1, 0, 1]

    def test_numbered_list_numbering(self, converter):
        blocks = [block("numbered_list_item", t) for t in ("a", "b", "c")]
        assert converter.generate(blocks) == "1. a\n2. b\n3. c\n"

    def test_numbering_restarts_after_other_block(self, converter):
        blocks = [
            block("numbered_list_item", "a"),
            block("numbered_list_item", "b"),
            block("paragraph", "p"),
            block("numbered_list_item", "c"),
        ]
        assert converter.generate(blocks) == "1. a\n2. b\n\np\n\n1. c\n"

    def test_skipped_blocks_do_not_break_a_run(self, converter):
        blocks = [
            block("numbered_list_item", "a"),
            block("callout", "note"),
            block("numbered_list_item", "b"),
        ]
        assert converter.generate(blocks) == "1. a\n2. b\n"


class TestExtendedSyntax:

    def test_callout_omitted_without_target(self, converter):
        assert converter.render_blocks([block("callout", "careful")]) == ""

    def test_callout_children_omitted_without_target(self, converter):
        callout = block("callout", "careful", children=[block("paragraph", "inner")])
        assert converter.render_blocks([callout]) == ""

    def test_callout_hugo(self, converter):
        converter.enable_extended_syntax("hugo")
        callout = block("callout", "careful", icon={"type": "emoji", "emoji": "💡"})
        output = converter.render_blocks([callout])
        assert output == '\n{{< callout emoji="💡" >}}\ncareful\n{{< /callout >}}\n'

    def test_callout_hexo(self, converter):
        converter.enable_extended_syntax("hexo")
        output = converter.render_blocks([block("callout", "careful")])
        assert output == "\n{% note info %}\ncareful\n{% endnote %}\n"

    def test_callout_vuepress_with_children(self, converter):
        converter.enable_extended_syntax("vuepress")
        callout = block(
            "callout", "careful",
            icon={"type": "emoji", "emoji": "⚠"},
            children=[block("paragraph", "inner")],
        )
        output = converter.render_blocks([callout])
        assert output == "\n::: tip ⚠\ncareful\n\ninner\n:::\n"

    def test_bookmark_omitted_without_target(self, converter):
        converter.link_preview = Mock()
        assert converter.render_blocks([block("bookmark", url="https://a.io")]) == ""
        converter.link_preview.fetch.assert_not_called()

    def test_bookmark_uses_link_preview(self, converter):
        converter.link_preview = Mock()
        converter.link_preview.fetch.return_value = LinkPreview(
            title="A", description="About A", image="https://a.io/a.png"
        )
        converter.enable_extended_syntax("vuepress")

        output = converter.render_blocks([block("bookmark", url="https://a.io")])

        converter.link_preview.fetch.assert_called_once_with("https://a.io")
        assert output == (
            '\n<LinkCard url="https://a.io" title="A" '
            'description="About A" image="https://a.io/a.png" />\n'
        )

    def test_bookmark_hugo_escapes_quotes(self, converter):
        converter.link_preview = Mock()
        converter.link_preview.fetch.return_value = LinkPreview(title='Say "hi"', description="")
        converter.enable_extended_syntax("hugo")
        output = converter.render_blocks([block("bookmark", url="https://a.io")])
        assert 'title="Say &quot;hi&quot;"' in output

    def test_bookmark_preview_failure_is_fatal(self, converter):
        converter.link_preview = Mock()
        converter.link_preview.fetch.side_effect = LinkPreviewError("offline")
        converter.enable_extended_syntax("hugo")
        with pytest.raises(LinkPreviewError):
            converter.render_blocks([block("bookmark", url="https://a.io")])

    def test_unknown_target_rejected(self, converter):
        with pytest.raises(ValueError):
            converter.enable_extended_syntax("jekyll")


class TestChildren:

    def test_children_follow_parent_depth_first(self, converter):
        blocks = [
            block("bulleted_list_item", "one", children=[
                block("bulleted_list_item", "one.a"),
                block("bulleted_list_item", "one.b", children=[
                    block("bulleted_list_item", "one.b.i"),
                ]),
            ]),
            block("bulleted_list_item", "two"),
        ]
        assert converter.generate(blocks) == (
            "- one\n"
            "  - one.a\n"
            "  - one.b\n"
            "    - one.b.i\n"
            "- two\n"
        )

    def test_nested_numbering_is_independent(self, converter):
        blocks = [
            block("numbered_list_item", "a", children=[
                block("numbered_list_item", "x"),
                block("numbered_list_item", "y"),
            ]),
            block("numbered_list_item", "b"),
        ]
        assert converter.generate(blocks) == "1. a\n  1. x\n  2. y\n2. b\n"

    def test_quote_renders_its_children(self, converter):
        quote = block("quote", "said", children=[block("paragraph", "more")])
        assert converter.render_blocks([quote]) == "\n> said\n>\n> more\n"

    def test_toggle_wraps_children(self, converter):
        toggle = block("toggle", "Details", children=[block("paragraph", "hidden")])
        assert converter.render_blocks([toggle]) == (
            "\n<details>\n<summary>Details</summary>\n\nhidden\n\n</details>\n"
        )

    def test_columns_are_flattened(self, converter):
        columns = block("column_list", children=[
            block("column", children=[block("paragraph", "left")]),
            block("column", children=[block("paragraph", "right")]),
        ])
        assert converter.generate([columns]) == "left\n\nright\n"

    def test_synced_block_renders_children(self, converter):
        synced = block("synced_block", children=[block("heading_2", "Shared")])
        assert converter.generate([synced]) == "## Shared\n"

    def test_unknown_block_type_is_skipped_with_children(self, converter):
        blocks = [
            block("paragraph", "before"),
            block("ai_block", children=[block("paragraph", "hidden")]),
            block("paragraph", "after"),
        ]
        assert converter.generate(blocks) == "before\n\nafter\n"


class TestCode:

    def test_indent_code_prefixes_every_line(self):
        assert indent_code([span("a\nb")], 2) == "    a\n    b"

    def test_indent_code_depth_zero_unchanged(self):
        assert indent_code([span("a\n  b")], 0) == "a\n  b"

    def test_code_block_with_language_map(self, converter):
        code = block("code", "echo hi", language="Shell")
        assert converter.generate([code]) == "```bash\necho hi\n```\n"

    def test_code_block_inside_list_is_indented(self, converter):
        item = block("bulleted_list_item", "step", children=[
            block("code", "x = 1\ny = 2", language="python"),
        ])
        assert converter.generate([item]) == (
            "- step\n\n  ```python\n  x = 1\n  y = 2\n  ```\n"
        )

    def test_code_content_kept_verbatim(self, converter):
        code = block("code", "a = 1   \n\n\n\n\nb = 2", language="python")
        assert converter.generate([code]) == "```python\na = 1   \n\n\n\n\nb = 2\n```\n"

    def test_hard_line_break_kept(self, converter):
        paragraph = block("paragraph", "first  \nsecond ")
        assert converter.generate([paragraph]) == "first  \nsecond\n"

    def test_code_caption(self, converter):
        code = block("code", "x", language="plain text", caption=[span("example")])
        assert converter.generate([code]) == "```\nx\n```\n*example*\n"


class TestOtherBlocks:

    def test_headings(self, converter):
        blocks = [block("heading_1", "One"), block("heading_2", "Two"), block("heading_3", "Three")]
        assert converter.generate(blocks) == "# One\n\n## Two\n\n### Three\n"

    def test_todo(self, converter):
        blocks = [block("to_do", "done", checked=True), block("to_do", "open", checked=False)]
        assert converter.generate(blocks) == "- [x] done\n- [ ] open\n"

    def test_divider_and_equation(self, converter):
        blocks = [block("divider"), block("equation", expression="a^2")]
        assert converter.generate(blocks) == "---\n\n$$\na^2\n$$\n"

    def test_table_with_header(self, converter):
        table = block("table", has_column_header=True, table_width=2, children=[
            block("table_row", cells=[[span("h1")], [span("h2")]]),
            block("table_row", cells=[[span("1")], [span("a|b")]]),
        ])
        assert converter.generate([table]) == (
            "| h1 | h2 |\n| --- | --- |\n| 1 | a\\|b |\n"
        )

    def test_table_without_header_gets_empty_header(self, converter):
        table = block("table", has_column_header=False, table_width=1, children=[
            block("table_row", cells=[[span("x")]]),
        ])
        assert converter.generate([table]) == "|  |\n| --- |\n| x |\n"

    def test_image_downloaded_through_assets(self, converter):
        converter.assets = Mock()
        converter.assets.ensure_local.return_value = "/images/post/x.png"
        image = block(
            "image",
            type="external",
            external={"url": "https://cdn.io/x.png"},
            caption=[span("a cat")],
        )

        assert converter.generate([image]) == "![a cat](/images/post/x.png)\n"
        converter.assets.ensure_local.assert_called_once_with("https://cdn.io/x.png")

    def test_image_without_assets_keeps_remote_url(self, converter):
        image = block("image", type="file", file={"url": "https://s3.io/y.png"})
        assert converter.generate([image]) == "![](https://s3.io/y.png)\n"

    def test_media_blocks_become_links(self, converter):
        video = block("video", type="external", external={"url": "https://youtu.be/v"})
        assert converter.generate([video]) == "[Video](https://youtu.be/v)\n"


class TestGenerate:

    def test_front_matter_precedes_content(self, converter):
        converter.front_matter = {"title": "Post", "tags": ["a", "b"]}
        output = converter.generate([block("paragraph", "body")])
        assert output == "---\ntags:\n- a\n- b\ntitle: Post\n---\n\nbody\n"

    def test_content_template(self, converter, tmp_path):
        template = tmp_path / "post.tmpl"
        template.write_text("<!-- $title -->\n$content<!-- $missing -->\n", encoding="utf-8")
        converter.content_template = str(template)
        converter.front_matter = {"title": "Post"}

        output = converter.generate([block("paragraph", "body")])

        assert output == "---\ntitle: Post\n---\n\n<!-- Post -->\nbody\n<!-- $missing -->\n"

    def test_excess_blank_lines_collapsed(self, converter):
        blocks = [block("paragraph", "a"), block("paragraph", ""), block("paragraph", ""), block("paragraph", "b")]
        assert converter.generate(blocks) == "a\n\n\nb\n"

    def test_generate_to_writer(self, converter):
        buffer = io.StringIO()
        converter.generate_to([block("heading_2", "Intro")], buffer)
        assert buffer.getvalue() == "## Intro\n"
