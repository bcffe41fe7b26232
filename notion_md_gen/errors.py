"""Exception types raised by the generator."""


class NotionMdGenError(Exception):
    """Base class for all generator errors."""


class ConfigError(NotionMdGenError, ValueError):
    """Configuration is missing or invalid."""


class CacheError(NotionMdGenError):
    """The incremental cache file could not be read or parsed."""


class AssetError(NotionMdGenError):
    """An image could not be downloaded or written to disk."""


class LinkPreviewError(NotionMdGenError):
    """Link preview metadata could not be fetched for a bookmark."""


class PageSyncError(NotionMdGenError):
    """A single page pipeline failed; aborts the whole run."""

    def __init__(self, display_name: str, message: str):
        self.display_name = display_name
        super().__init__(f"[{display_name:<30}] {message}")
