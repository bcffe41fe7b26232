"""
Front matter generation from Notion page properties.

Each property is converted according to its Notion type; properties of an
unsupported type, or with an empty value, produce no key at all.
"""

from typing import Any, Optional

import yaml

from notion_md_gen.assets import AssetPipeline
from notion_md_gen.notion_api import NotionPage, parse_notion_time
from notion_md_gen.rich_text import convert_rich_text

# The offset is a literal, not the page's timezone.
FRONT_MATTER_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S+07:00"


def _format_time(value: Optional[str]) -> Optional[str]:
    parsed = parse_notion_time(value)
    if parsed is None:
        return None
    return parsed.strftime(FRONT_MATTER_TIME_FORMAT)


def property_value(prop: dict) -> Any:
    """
    Convert one Notion property to a front matter value.

    Returns:
        The converted value, or None if the property should be omitted.
    """
    prop_type = prop.get("type")
    value = prop.get(prop_type) if prop_type else None

    if prop_type in ("select", "status"):
        return value.get("name") if value else None

    if prop_type == "multi_select":
        return [option.get("name") for option in value or []]

    if prop_type in ("title", "rich_text"):
        return convert_rich_text(value or [])

    if prop_type == "date":
        if not value:
            return None
        return _format_time(value.get("start")) or _format_time(value.get("end"))

    if prop_type in ("created_time", "last_edited_time"):
        return _format_time(value)

    if prop_type in ("created_by", "last_edited_by"):
        return value.get("name") if value else None

    if prop_type == "people":
        names = [person.get("name") for person in value or [] if person.get("name")]
        return names or None

    if prop_type in ("url", "email", "phone_number", "number"):
        return value

    # unsupported property type
    return None


def build_front_matter(page: NotionPage, assets: Optional[AssetPipeline] = None) -> dict:
    """
    Build the front matter mapping for a page.

    Keys are the lower-cased property names. If the page has a cover and
    an asset pipeline is given, the cover is downloaded first and its local
    path stored under ``cover``.

    Raises:
        AssetError: If the cover image cannot be downloaded.
    """
    front_matter: dict[str, Any] = {}

    if page.cover and assets is not None:
        front_matter["cover"] = assets.ensure_local(page.cover)

    for key, prop in page.properties.items():
        value = property_value(prop)
        if value is not None:
            front_matter[key.lower()] = value

    return front_matter


def dump_front_matter(front_matter: dict) -> str:
    """Serialize front matter as a ``---`` delimited YAML block."""
    if not front_matter:
        return ""
    body = yaml.safe_dump(front_matter, allow_unicode=True, sort_keys=True, default_flow_style=False)
    return f"---\n{body}---\n\n"
