"""Shared factories for Notion API payloads."""

from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

from notion_md_gen.config import Config, MarkdownSettings, NotionSettings
from notion_md_gen.notion_api import NotionBlock, NotionPage


def span(content, link=None, **annotations):
    """A rich text object of type ``text``."""
    return {
        "type": "text",
        "text": {"content": content, "link": {"url": link} if link else None},
        "annotations": annotations,
        "plain_text": content,
    }


def block(block_type, text=None, children=None, **content):
    """A NotionBlock with optional rich text and children."""
    if text is not None:
        content["rich_text"] = [span(text)]
    children = children or []
    return NotionBlock(
        id=f"{block_type}-id",
        type=block_type,
        has_children=bool(children),
        content=content,
        children=children,
    )


def title_prop(title):
    return {"id": "title", "type": "title", "title": [span(title)] if title else []}


def page_payload(page_id, title, last_edited="2024-03-05T10:00:00.000Z",
                 created="2024-03-05T08:30:00.000Z", **extra_props):
    """A page object as returned by databases.query."""
    properties = {"Name": title_prop(title)}
    properties.update(extra_props)
    return {
        "object": "page",
        "id": page_id,
        "created_time": created,
        "last_edited_time": last_edited,
        "url": f"https://www.notion.so/{page_id}",
        "cover": None,
        "properties": properties,
    }


def make_page(page_id="page-a", title="Hello World!", last_edited=None, created=None, **extra_props):
    payload = page_payload(page_id, title, **extra_props)
    page = NotionPage.from_api_response(payload)
    if last_edited is not None:
        page.last_edited_time = last_edited
    if created is not None:
        page.created_time = created
    return page


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def config(tmp_path):
    """Config writing into a temporary directory, serial, incremental."""
    return Config(
        notion=NotionSettings(
            database_id="db-1",
            filter_prop="Status",
            filter_value=["Finished"],
            published_value="Published",
        ),
        markdown=MarkdownSettings(
            post_save_path=str(tmp_path / "posts"),
            image_save_path=str(tmp_path / "images"),
            image_public_link="/images",
        ),
        notion_token="secret",
        parallelize=False,
        parallelism=0,
        cache_file=str(tmp_path / "cache" / "cache.json"),
        incremental=True,
    )


@pytest.fixture
def notion_api():
    """NotionAPI stand-in returning one paragraph per page."""
    api = Mock()
    api.request_count = 0
    api.query_database.return_value = []
    api.get_page_blocks.side_effect = lambda page_id: [block("paragraph", f"body of {page_id}")]
    api.update_status.return_value = True
    return api
