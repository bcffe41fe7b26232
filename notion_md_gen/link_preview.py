"""OpenGraph metadata for bookmark blocks."""

from dataclasses import dataclass
from typing import Optional
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup

from notion_md_gen.errors import LinkPreviewError

FETCH_TIMEOUT = 30  # seconds
USER_AGENT = "Mozilla/5.0 (compatible; notion-md-gen)"


@dataclass
class LinkPreview:
    """Title, description and optional image of a web page."""

    title: str = ""
    description: str = ""
    image: Optional[str] = None

    def to_extra(self) -> dict:
        extra = {"Title": self.title, "Description": self.description}
        if self.image:
            extra["Image"] = self.image
        return extra


def parse_preview(html: str, base_url: str) -> LinkPreview:
    """
    Extract OpenGraph data from an HTML document.

    Falls back to ``<title>`` and ``<meta name="description">`` when the
    ``og:`` tags are missing. Relative image URLs are resolved against
    ``base_url``.
    """
    soup = BeautifulSoup(html, "html.parser")

    def meta(*, prop: str = None, name: str = None) -> str:
        attrs = {"property": prop} if prop else {"name": name}
        tag = soup.find("meta", attrs=attrs)
        if tag and tag.get("content"):
            return tag["content"].strip()
        return ""

    title = meta(prop="og:title")
    if not title and soup.title and soup.title.string:
        title = soup.title.string.strip()

    description = meta(prop="og:description") or meta(name="description")

    image = meta(prop="og:image") or meta(prop="og:image:url")
    if image:
        image = urljoin(base_url, image)

    return LinkPreview(title=title, description=description, image=image or None)


class LinkPreviewFetcher:
    """Fetches link previews over HTTP."""

    def __init__(self, session: requests.Session = None):
        self.session = session or requests.Session()

    def fetch(self, url: str) -> LinkPreview:
        """
        Fetch ``url`` and parse its preview metadata.

        Raises:
            LinkPreviewError: If the page cannot be fetched.
        """
        try:
            response = self.session.get(
                url,
                timeout=FETCH_TIMEOUT,
                headers={"User-Agent": USER_AGENT},
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise LinkPreviewError(f"failed to fetch link preview for {url}: {e}") from e

        return parse_preview(response.text, response.url or url)
