"""
Notion API wrapper for the generator.

Provides a clean interface to Notion's API with:
- Rate limiting compliance
- Paginated database queries
- Recursive block fetching
- Status property updates
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

import httpx
from notion_client import Client
from notion_client.errors import APIResponseError, HTTPResponseError, RequestTimeoutError
from ratelimit import limits, sleep_and_retry
from rich.console import Console

from notion_md_gen.rich_text import convert_rich_text

console = Console()

# Notion API rate limit: 3 requests per second
RATE_LIMIT_CALLS = 3
RATE_LIMIT_PERIOD = 1  # second


class BlockType(str, Enum):
    """Block types the renderer knows about."""

    PARAGRAPH = "paragraph"
    HEADING_1 = "heading_1"
    HEADING_2 = "heading_2"
    HEADING_3 = "heading_3"
    BULLETED_LIST_ITEM = "bulleted_list_item"
    NUMBERED_LIST_ITEM = "numbered_list_item"
    TO_DO = "to_do"
    TOGGLE = "toggle"
    QUOTE = "quote"
    CALLOUT = "callout"
    BOOKMARK = "bookmark"
    IMAGE = "image"
    CODE = "code"
    DIVIDER = "divider"
    EQUATION = "equation"
    TABLE = "table"
    TABLE_ROW = "table_row"
    COLUMN_LIST = "column_list"
    COLUMN = "column"
    SYNCED_BLOCK = "synced_block"
    TEMPLATE = "template"
    VIDEO = "video"
    EMBED = "embed"
    FILE = "file"
    PDF = "pdf"

    @classmethod
    def lookup(cls, value: str) -> Optional["BlockType"]:
        """Return the member for ``value``, or None for unknown types."""
        try:
            return cls(value)
        except ValueError:
            return None


def parse_notion_time(value: Optional[str]) -> Optional[datetime]:
    """Parse a Notion ISO-8601 timestamp (``...Z`` suffix allowed)."""
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@dataclass
class NotionPage:
    """Represents a Notion database row with metadata."""

    id: str
    title: str
    last_edited_time: datetime
    created_time: datetime
    url: str
    properties: dict = field(default_factory=dict)
    cover: Optional[str] = None

    @classmethod
    def from_api_response(cls, page: dict) -> "NotionPage":
        """Create NotionPage from API response."""
        properties = page.get("properties", {})

        cover = None
        if page.get("cover"):
            if page["cover"]["type"] == "external":
                cover = page["cover"]["external"]["url"]
            elif page["cover"]["type"] == "file":
                cover = page["cover"]["file"]["url"]

        return cls(
            id=page["id"],
            title=get_page_title(properties),
            last_edited_time=parse_notion_time(page["last_edited_time"]),
            created_time=parse_notion_time(page["created_time"]),
            url=page.get("url", ""),
            properties=properties,
            cover=cover,
        )

    def select_value(self, prop_name: str) -> Optional[str]:
        """Current option name of a select/status property, if any."""
        prop = self.properties.get(prop_name) or {}
        option = prop.get(prop.get("type", ""))
        if isinstance(option, dict):
            return option.get("name")
        return None


def get_page_title(properties: dict) -> str:
    """
    Extract the plain title from page properties.

    Prefers a title-type property named "title" or "name"
    (case-insensitive), then falls back to any non-empty title property.
    """
    for key, prop in properties.items():
        if prop.get("type") == "title" and key.lower() in ("title", "name"):
            return convert_rich_text(prop.get("title"))

    for prop in properties.values():
        if prop.get("type") == "title" and prop.get("title"):
            title = convert_rich_text(prop["title"])
            if title:
                return title

    return ""


@dataclass
class NotionBlock:
    """
    Represents a Notion block.

    Children are always fetched up front and stored in ``children``,
    whatever the block type; ``extra`` holds data computed at render time
    (downloaded image paths, link preview metadata).
    """

    id: str
    type: str
    has_children: bool
    content: dict
    children: list["NotionBlock"] = field(default_factory=list)
    extra: dict = field(default_factory=dict)

    @property
    def block_type(self) -> Optional[BlockType]:
        return BlockType.lookup(self.type)

    @classmethod
    def from_api_response(cls, block: dict) -> "NotionBlock":
        """Create NotionBlock from API response."""
        block_type = block["type"]
        content = block.get(block_type) or {}

        children = [cls.from_api_response(child) for child in content.get("children", [])]

        return cls(
            id=block["id"],
            type=block_type,
            has_children=block.get("has_children", False) or bool(children),
            content=content,
            children=children,
        )


def children_of(block: NotionBlock) -> list[NotionBlock]:
    """Child blocks of ``block``; empty when it declares none."""
    if not block.has_children:
        return []
    return block.children


class NotionAPI:
    """
    Wrapper around Notion API with rate limiting and utilities.

    Handles:
    - Authentication
    - Rate limiting (3 req/sec)
    - Database queries
    - Recursive block fetching
    - Status updates
    """

    def __init__(self, token: str, client: Optional[Client] = None):
        """
        Initialize the Notion API client.

        Args:
            token: Notion integration secret.
            client: Optional pre-built client (used by tests).
        """
        self.client = client or Client(auth=token)
        self._request_count = 0
        self._count_lock = threading.Lock()

    @sleep_and_retry
    @limits(calls=RATE_LIMIT_CALLS, period=RATE_LIMIT_PERIOD)
    def _rate_limited_call(self, func, *args, **kwargs) -> Any:
        """Execute a rate-limited API call."""
        with self._count_lock:
            self._request_count += 1
        return func(*args, **kwargs)

    def query_database(
        self,
        database_id: str,
        filter_prop: str = "",
        filter_values: Optional[list[str]] = None,
    ) -> list[NotionPage]:
        """
        Get all pages of a database, optionally filtered by a select property.

        Args:
            database_id: The ID of the database.
            filter_prop: Select property to filter on.
            filter_values: Accepted option names; a page matches any of them.

        Returns:
            List of NotionPage objects.
        """
        query: dict[str, Any] = {"database_id": database_id}
        if filter_prop and filter_values:
            query["filter"] = {
                "or": [
                    {"property": filter_prop, "select": {"equals": value}}
                    for value in filter_values
                ]
            }

        pages = []
        has_more = True
        start_cursor = None

        while has_more:
            if start_cursor:
                query["start_cursor"] = start_cursor
            try:
                response = self._rate_limited_call(self.client.databases.query, **query)
            except APIResponseError as e:
                console.print(f"[red]API Error querying database: {e}[/red]")
                raise

            for page in response.get("results", []):
                pages.append(NotionPage.from_api_response(page))

            has_more = response.get("has_more", False)
            start_cursor = response.get("next_cursor")

        return pages

    def get_page_blocks(self, page_id: str) -> list[NotionBlock]:
        """
        Get the full block tree of a page.

        Every block's children are resolved before returning, so the
        renderer never has to call the API.
        """
        return self._fetch_blocks(page_id)

    def _fetch_blocks(self, block_id: str) -> list[NotionBlock]:
        """Recursively fetch blocks."""
        blocks = []
        has_more = True
        start_cursor = None

        while has_more:
            params: dict[str, Any] = {"block_id": block_id}
            if start_cursor:
                params["start_cursor"] = start_cursor
            try:
                response = self._rate_limited_call(self.client.blocks.children.list, **params)
            except APIResponseError as e:
                console.print(f"[red]API Error fetching blocks: {e}[/red]")
                raise

            for block_data in response.get("results", []):
                block = NotionBlock.from_api_response(block_data)
                if block.has_children:
                    block.children = self._fetch_blocks(block.id)
                blocks.append(block)

            has_more = response.get("has_more", False)
            start_cursor = response.get("next_cursor")

        return blocks

    def update_status(self, page: NotionPage, prop_name: str, new_value: str) -> bool:
        """
        Set a select property on a page, e.g. "Finished" -> "Published".

        Failures are reported and treated as "not changed".

        Returns:
            True if the property was changed.
        """
        if not prop_name or not new_value:
            return False
        if page.select_value(prop_name) == new_value:
            return False

        prop = page.properties.get(prop_name) or {}
        prop_type = prop.get("type", "select")
        try:
            self._rate_limited_call(
                self.client.pages.update,
                page_id=page.id,
                properties={prop_name: {prop_type: {"name": new_value}}},
            )
        except (HTTPResponseError, RequestTimeoutError, httpx.HTTPError) as e:
            console.print(f"[yellow]Warning: Failed to update status of {page.id}: {e}[/yellow]")
            return False

        return True

    @property
    def request_count(self) -> int:
        """Number of API requests made."""
        return self._request_count
