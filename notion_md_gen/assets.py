"""
Image download for rendered pages.

Images and covers referenced by a page are fetched over HTTP, written under
the page's image directory and replaced by a site-relative visit path.
"""

import posixpath
from pathlib import Path
from urllib.parse import quote, urlparse

import requests

from notion_md_gen.errors import AssetError

DOWNLOAD_TIMEOUT = 30  # seconds


def local_filename(url: str) -> str:
    """
    Derive a collision-free local filename for an image URL.

    Notion names many uploads "Untitled.png", so the host and the full URL
    path are folded into the name. For "Untitled.*" files the parent path
    segment (the block's upload ID) replaces the generic stem.

    Examples:
        https://s3.example.com/a/b/photo.png
            -> "s3.example.com__a_b_photo.png_photo.png"
        https://s3.example.com/a/abc123/Untitled.png
            -> "s3.example.com__a_abc123_Untitled.png_abc123.png"
    """
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        raise AssetError(f"malformed url: {url!r}")

    segments = parsed.path.split("/")
    image_filename = segments[-1]
    if image_filename.startswith("Untitled.") and len(segments) > 1:
        image_filename = segments[-2] + posixpath.splitext(parsed.path)[1]

    url_path = "_".join(segments)
    return f"{parsed.hostname}_{url_path}_{image_filename}"


class AssetPipeline:
    """
    Downloads remote images for one page.

    Args:
        save_dir: Directory the files are written to.
        visit_path: Site-relative prefix used in the Markdown output.
    """

    def __init__(self, save_dir: Path, visit_path: str, session: requests.Session = None):
        self.save_dir = Path(save_dir)
        self.visit_path = visit_path
        self._owns_session = session is None
        self.session = session or requests.Session()
        self.downloaded: list[Path] = []

    @classmethod
    def for_page(
        cls,
        image_save_path: str,
        image_public_link: str,
        page_name: str,
        session: requests.Session = None,
    ) -> "AssetPipeline":
        """Pipeline saving to ``<image_save_path>/<page_name>``."""
        return cls(
            save_dir=Path(image_save_path) / page_name,
            visit_path=posixpath.join(image_public_link, quote(page_name, safe="")),
            session=session,
        )

    def ensure_local(self, url: str) -> str:
        """
        Download ``url`` and return the path to reference it by.

        Raises:
            AssetError: On any network or filesystem failure.
        """
        filename = local_filename(url)

        try:
            response = self.session.get(url, timeout=DOWNLOAD_TIMEOUT, stream=True)
            response.raise_for_status()
        except requests.RequestException as e:
            raise AssetError(f"failed to download image {url}: {e}") from e

        target_path = self.save_dir / filename
        try:
            self.save_dir.mkdir(parents=True, exist_ok=True)
            with open(target_path, "wb") as f:
                for chunk in response.iter_content(chunk_size=8192):
                    f.write(chunk)
        except requests.RequestException as e:
            raise AssetError(f"failed to download image {url}: {e}") from e
        except OSError as e:
            raise AssetError(f"couldn't create image file {target_path}: {e}") from e
        finally:
            response.close()

        self.downloaded.append(target_path)
        return posixpath.join(self.visit_path, filename)

    def close(self) -> None:
        """Close the HTTP session if this pipeline created it."""
        if self._owns_session:
            self.session.close()
