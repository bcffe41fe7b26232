"""
Configuration management for the Notion → Markdown generator.

Loads settings from a YAML file and environment variables and provides
structured configuration for all generator components.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv

from notion_md_gen.errors import ConfigError

DEFAULT_CONFIG_FILE = "notion-md-gen.yaml"
DEFAULT_CACHE_FILE = ".notion-md-gen-cache.json"
DEFAULT_PARALLELISM = 5

SHORTCODE_TARGETS = ("hugo", "hexo", "vuepress")


@dataclass
class NotionSettings:
    """Where pages come from and how their status is flipped."""

    database_id: str = ""
    filter_prop: str = ""
    filter_value: list[str] = field(default_factory=list)
    published_value: str = ""


@dataclass
class MarkdownSettings:
    """Where and how Markdown files are written."""

    shortcode_syntax: str = ""
    page_name_prefix: str = ""
    post_save_path: str = ""
    image_save_path: str = ""
    image_public_link: str = ""

    # Optional
    group_by_month: bool = False
    template: str = ""


@dataclass
class Config:
    """
    Central configuration for the generator.

    Loaded from ``notion-md-gen.yaml``; the Notion token always comes from
    the ``NOTION_SECRET`` environment variable (or ``.env``), never from the
    YAML file.
    """

    notion: NotionSettings = field(default_factory=NotionSettings)
    markdown: MarkdownSettings = field(default_factory=MarkdownSettings)

    notion_token: str = ""

    # Sync behavior
    parallelize: bool = True
    parallelism: int = DEFAULT_PARALLELISM
    cache_file: str = DEFAULT_CACHE_FILE
    incremental: bool = False
    debug: bool = False

    @property
    def serial(self) -> bool:
        """True when pages must be processed one after another."""
        return not self.parallelize or self.parallelism <= 0

    @classmethod
    def from_dict(cls, data: dict) -> "Config":
        """
        Build a Config from the parsed YAML document.

        Args:
            data: Mapping using the YAML key names (``databaseId``, ...).

        Returns:
            Configured Config instance.

        Raises:
            ConfigError: If a value has the wrong shape.
        """
        notion_data = data.get("notion") or {}
        markdown_data = data.get("markdown") or {}
        if not isinstance(notion_data, dict) or not isinstance(markdown_data, dict):
            raise ConfigError("'notion' and 'markdown' sections must be mappings")

        filter_value = notion_data.get("filterValue") or []
        if isinstance(filter_value, str):
            filter_value = [filter_value]

        notion = NotionSettings(
            database_id=str(notion_data.get("databaseId") or ""),
            filter_prop=str(notion_data.get("filterProp") or ""),
            filter_value=[str(v) for v in filter_value],
            published_value=str(notion_data.get("publishedValue") or ""),
        )

        shortcode_syntax = str(markdown_data.get("shortcodeSyntax") or "").lower()
        if shortcode_syntax and shortcode_syntax not in SHORTCODE_TARGETS:
            raise ConfigError(
                f"Unknown shortcodeSyntax {shortcode_syntax!r}, "
                f"expected one of: {', '.join(SHORTCODE_TARGETS)}"
            )

        markdown = MarkdownSettings(
            shortcode_syntax=shortcode_syntax,
            page_name_prefix=str(markdown_data.get("pageNamePrefix") or ""),
            post_save_path=str(markdown_data.get("postSavePath") or ""),
            image_save_path=str(markdown_data.get("imageSavePath") or ""),
            image_public_link=str(markdown_data.get("imagePublicLink") or ""),
            group_by_month=bool(markdown_data.get("groupByMonth", False)),
            template=str(markdown_data.get("template") or ""),
        )

        try:
            parallelism = int(data.get("parallelism", DEFAULT_PARALLELISM))
        except (TypeError, ValueError):
            raise ConfigError(f"parallelism must be an integer, got {data.get('parallelism')!r}")

        return cls(
            notion=notion,
            markdown=markdown,
            parallelize=bool(data.get("parallelize", True)),
            parallelism=parallelism,
            cache_file=str(data.get("cacheFile") or DEFAULT_CACHE_FILE),
            incremental=bool(data.get("incremental", False)),
        )

    @classmethod
    def from_file(cls, config_path: Optional[Path] = None, env_file: Optional[Path] = None) -> "Config":
        """
        Load configuration from a YAML file and the environment.

        Args:
            config_path: Path to the YAML file. Defaults to
                         ``notion-md-gen.yaml`` in the current directory.
            env_file: Optional path to a .env file. If not provided,
                      looks for .env in the current directory.

        Returns:
            Configured Config instance.

        Raises:
            ConfigError: If the file is missing, unparseable or invalid.
        """
        if env_file:
            load_dotenv(env_file)
        else:
            load_dotenv()

        path = Path(config_path) if config_path else Path(DEFAULT_CONFIG_FILE)
        if not path.exists():
            raise ConfigError(
                f"Config file not found: {path}\n"
                "Run 'notion-md-gen init' to create one."
            )

        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Could not parse {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"{path} must contain a mapping")

        config = cls.from_dict(data)
        config.notion_token = os.getenv("NOTION_SECRET", "")
        return config

    def validate_for_sync(self) -> None:
        """
        Check the settings a sync run cannot do without.

        Raises:
            ConfigError: If a required value is missing.
        """
        if not self.notion_token:
            raise ConfigError(
                "NOTION_SECRET environment variable is required.\n"
                "Create a Notion integration at https://www.notion.so/my-integrations"
            )
        if not self.notion.database_id:
            raise ConfigError("notion.databaseId is required.")
        if not self.markdown.post_save_path:
            raise ConfigError("markdown.postSavePath is required.")


def default_config_dict() -> dict:
    """Starter configuration written by ``notion-md-gen init``."""
    return {
        "notion": {
            "databaseId": "YOUR-NOTION-DATABASE-ID",
            "filterProp": "Status",
            "filterValue": ["Finished", "Published"],
            "publishedValue": "Published",
        },
        "markdown": {
            "shortcodeSyntax": "vuepress",
            "pageNamePrefix": "",
            "postSavePath": "posts/notion",
            "imageSavePath": "static/images/notion",
            "imagePublicLink": "/images/notion",
        },
        "parallelize": True,
        "parallelism": 4,
        "cacheFile": DEFAULT_CACHE_FILE,
        "incremental": False,
    }


def write_default_config(directory: Path) -> tuple[Path, Path]:
    """
    Write a starter config file and .env template into ``directory``.

    Returns:
        Tuple of (config_path, env_path).

    Raises:
        ConfigError: If either file already exists.
    """
    config_path = directory / DEFAULT_CONFIG_FILE
    env_path = directory / ".env"

    for path in (config_path, env_path):
        if path.exists():
            raise ConfigError(f"{path} already exists, refusing to overwrite it.")

    with open(config_path, "w", encoding="utf-8") as f:
        yaml.safe_dump(default_config_dict(), f, sort_keys=False, allow_unicode=True)

    with open(env_path, "w", encoding="utf-8") as f:
        f.write("NOTION_SECRET=xxxx\n")

    return config_path, env_path
