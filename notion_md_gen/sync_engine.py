"""
Main sync engine for Notion → Markdown generation.

Orchestrates:
- Querying the Notion database
- Keyword / --since filtering
- Incremental change detection
- Block fetching and Markdown rendering (optionally in parallel)
- Status updates on the source pages
- Cache persistence
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from notion_md_gen.assets import AssetPipeline
from notion_md_gen.config import Config, MarkdownSettings
from notion_md_gen.errors import PageSyncError
from notion_md_gen.link_preview import LinkPreviewFetcher
from notion_md_gen.markdown_converter import MarkdownConverter
from notion_md_gen.notion_api import NotionAPI, NotionBlock, NotionPage
from notion_md_gen.sync_cache import (
    SyncCache,
    cache_timestamp,
    is_unchanged,
    load_cache,
    save_cache,
)

console = Console()


def generate_article_filename(title: str, created: datetime, settings: MarkdownSettings) -> str:
    """
    Relative output path for a page.

    The title is lower-cased, stripped of non-ASCII characters and has its
    spaces replaced by hyphens. With ``group_by_month`` the file goes into
    a ``YYYY-MM-DD`` directory named after the creation date.

    Examples:
        "Hello World!" -> "hello-world!.md"
        "Hello World!" (grouped, created 2024-03-05) -> "2024-03-05/hello-world!.md"
    """
    slug = title.lower().encode("ascii", "ignore").decode("ascii").replace(" ", "-")
    filename = f"{slug}.md"

    if settings.group_by_month:
        return f"{created.strftime('%Y-%m-%d')}/{filename}"

    return filename


def display_name(index: int, page: NotionPage) -> str:
    """``<n>:<title>`` for progress messages, falling back to the page ID."""
    return f"{index + 1}:{page.title or page.id}"


def filter_pages(
    pages: list[NotionPage],
    keywords: Optional[list[str]] = None,
    since: Optional[datetime] = None,
) -> list[NotionPage]:
    """
    Keep pages edited strictly after ``since`` whose title contains every
    keyword (case-insensitive). Untitled pages never match a keyword filter.
    """
    lowered = [keyword.lower() for keyword in keywords or []]
    matched = []

    for page in pages:
        if since is not None and not page.last_edited_time > since:
            continue

        if lowered:
            if not page.title:
                continue
            title = page.title.lower()
            if not all(keyword in title for keyword in lowered):
                continue

        matched.append(page)

    return matched


@dataclass
class SyncResult:
    """Result of a sync operation."""

    pages_processed: list[str] = field(default_factory=list)
    pages_skipped: int = 0
    status_updated: int = 0
    images_downloaded: int = 0
    dry_run_pages: list[NotionPage] = field(default_factory=list)


class SyncEngine:
    """
    Main orchestrator for Notion → Markdown generation.

    Runs: query → filter → cache check → (dry-run report | render pages →
    update status → persist cache).
    """

    def __init__(
        self,
        config: Config,
        notion_api: Optional[NotionAPI] = None,
        link_preview: Optional[LinkPreviewFetcher] = None,
    ):
        """
        Initialize sync engine.

        Args:
            config: Configuration instance.
            notion_api: Optional API wrapper (built from the config token
                        when omitted).
            link_preview: Optional bookmark metadata fetcher.
        """
        self.config = config
        self.notion_api = notion_api or NotionAPI(config.notion_token)
        self.link_preview = link_preview or LinkPreviewFetcher()
        self.cache = SyncCache()
        # Output paths recorded by the previous run, read before any page updates the cache
        self._previous_outputs: dict[str, str] = {}

    @property
    def post_dir(self) -> Path:
        return Path(self.config.markdown.post_save_path)

    def output_path(self, page: NotionPage) -> str:
        """Relative output path of a page inside the post directory."""
        return generate_article_filename(page.title or page.id, page.created_time, self.config.markdown)

    def sync(
        self,
        keywords: Optional[list[str]] = None,
        since: Optional[datetime] = None,
        dry_run: bool = False,
    ) -> SyncResult:
        """
        Perform a full run.

        Args:
            keywords: Title keywords every processed page must contain.
            since: Only pages edited after this time are processed.
            dry_run: List what would be processed without writing anything.

        Returns:
            SyncResult with details of the operation.

        Raises:
            NotionMdGenError: On the first fatal page failure, after every
                              dispatched page has finished.
        """
        result = SyncResult()
        notion = self.config.notion

        pages = self.notion_api.query_database(
            notion.database_id, notion.filter_prop, notion.filter_value
        )
        console.print("[green]✔[/green] Querying Notion database: Completed")

        if keywords or since is not None:
            if keywords:
                console.print(f"Filtering pages by keywords: {keywords}")
            pages = filter_pages(pages, keywords, since)
            console.print(f"[green]✔[/green] Filtering completed: {len(pages)} pages matched")

        if not pages:
            console.print("[yellow]No pages found matching the criteria.[/yellow]")
            return result

        if self.config.incremental:
            self.cache = load_cache(self.config.cache_file)
            self._previous_outputs = {
                page_id: entry.output_path for page_id, entry in self.cache.pages.items()
            }
            pages = self._drop_unchanged(pages, result)

        if dry_run:
            result.dry_run_pages = pages
            self._print_dry_run(pages)
            return result

        if result.pages_skipped:
            console.print(f"[green]✔[/green] Incremental sync: skipped {result.pages_skipped} unchanged pages")

        if not pages:
            console.print("[dim]No changed pages to process.[/dim]")
            return result

        self.post_dir.mkdir(parents=True, exist_ok=True)

        if self.config.serial:
            self._run_serial(pages, result)
        else:
            self._run_parallel(pages, result)

        if self.config.incremental:
            save_cache(self.config.cache_file, self.cache)
            console.print(f"[green]✔[/green] Cache updated: {self.config.cache_file}")

        self._print_summary(result)
        return result

    def _drop_unchanged(self, pages: list[NotionPage], result: SyncResult) -> list[NotionPage]:
        """Remove pages whose cached timestamp matches and whose file still exists."""
        changed = []
        for page in pages:
            output_file = self.post_dir / self.output_path(page)
            if is_unchanged(self.cache, page.id, page.last_edited_time, output_file):
                result.pages_skipped += 1
                continue
            changed.append(page)
        return changed

    # =========================================================================
    # Page pipeline
    # =========================================================================

    def _run_serial(self, pages: list[NotionPage], result: SyncResult) -> None:
        for i, page in enumerate(pages):
            self._record(page, self._process_page(i, page, len(pages)), result)

    def _run_parallel(self, pages: list[NotionPage], result: SyncResult) -> None:
        """
        Process pages on a bounded thread pool.

        A failing page does not cancel the others: every submitted page runs
        to completion and the first failure is raised afterwards.
        """
        errors: list[Exception] = []

        with ThreadPoolExecutor(max_workers=self.config.parallelism) as executor:
            future_to_page = {
                executor.submit(self._process_page, i, page, len(pages)): page
                for i, page in enumerate(pages)
            }
            for future in as_completed(future_to_page):
                page = future_to_page[future]
                try:
                    outcome = future.result()
                except Exception as e:
                    errors.append(e)
                    continue
                self._record(page, outcome, result)

        if errors:
            raise errors[0]

    def _record(self, page: NotionPage, outcome: tuple[str, bool, int], result: SyncResult) -> None:
        _, status_changed, images = outcome
        result.pages_processed.append(page.title or page.id)
        result.images_downloaded += images
        if status_changed:
            result.status_updated += 1

    def _process_page(self, index: int, page: NotionPage, total: int) -> tuple[str, bool, int]:
        """
        Fetch, render and publish one page.

        Returns:
            Tuple of (output_rel_path, status_changed, images_downloaded).

        Raises:
            PageSyncError: If fetching or rendering fails.
        """
        name = display_name(index, page)
        label = escape(f"[{name:<30}]")
        console.print(f"{label} -- article [{index + 1}/{total}] --")

        try:
            blocks = self.notion_api.get_page_blocks(page.id)
        except Exception as e:
            raise PageSyncError(name, f"error getting blocks: {e}") from e
        console.print(f"{label} [green]✔[/green] getting blocks tree: completed")

        output_rel_path = self.output_path(page)
        if self.config.debug:
            console.print(f"[dim]{label} {len(blocks)} top-level blocks -> {escape(output_rel_path)}[/dim]")
        try:
            images = self.generate(page, blocks, self.post_dir / output_rel_path)
        except Exception as e:
            raise PageSyncError(name, f"error generating blog post: {e}") from e
        console.print(f"{label} [green]✔[/green] generating blog post: completed")

        self._remove_stale_output(page, output_rel_path)
        self.cache.put(page.id, cache_timestamp(page.last_edited_time), output_rel_path)

        status_changed = self.notion_api.update_status(
            page, self.config.notion.filter_prop, self.config.notion.published_value
        )
        return output_rel_path, status_changed, images

    def _remove_stale_output(self, page: NotionPage, output_rel_path: str) -> None:
        """Delete the file a previous run wrote for this page under another name."""
        if not self.config.incremental:
            return
        previous = self._previous_outputs.get(page.id)
        if not previous or previous == output_rel_path:
            return
        previous_file = self.post_dir / previous
        if previous_file.exists():
            previous_file.unlink()
            console.print(f"[dim]Removed stale output {previous_file}[/dim]")

    def generate(self, page: NotionPage, blocks: list[NotionBlock], output_file: Path) -> int:
        """
        Render ``blocks`` with the page's front matter into ``output_file``.

        Returns:
            Number of images downloaded.
        """
        settings = self.config.markdown
        page_name = settings.page_name_prefix + (page.title or page.id)

        assets = AssetPipeline.for_page(settings.image_save_path, settings.image_public_link, page_name)
        try:
            converter = MarkdownConverter(
                assets=assets,
                link_preview=self.link_preview,
                content_template=settings.template,
            )
            if settings.shortcode_syntax:
                converter.enable_extended_syntax(settings.shortcode_syntax)
            converter.with_front_matter(page)

            content = converter.generate(blocks)
        finally:
            assets.close()

        output_file.parent.mkdir(parents=True, exist_ok=True)
        with open(output_file, "w", encoding="utf-8") as f:
            f.write(content)

        return len(assets.downloaded)

    # =========================================================================
    # Reporting
    # =========================================================================

    def _print_dry_run(self, pages: list[NotionPage]) -> None:
        console.print("\n[bold]-- Dry Run Active --[/bold]")
        if not pages:
            console.print("[dim]No pages would be processed.[/dim]")
            return

        table = Table(title="Articles that would be processed")
        table.add_column("#", style="dim")
        table.add_column("Title", style="cyan")
        table.add_column("ID", style="green")
        table.add_column("Last Edited", style="yellow")

        for i, page in enumerate(pages):
            table.add_row(
                str(i + 1),
                escape(page.title or f"[Untitled Page: {page.id}]"),
                page.id,
                page.last_edited_time.astimezone().strftime("%d %b %y %H:%M %Z"),
            )

        console.print(table)

    def _print_summary(self, result: SyncResult) -> None:
        """Print sync summary."""
        table = Table(show_header=False, box=None)
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="white")

        table.add_row("Pages processed", str(len(result.pages_processed)))
        table.add_row("Pages skipped", str(result.pages_skipped))
        table.add_row("Status updated", str(result.status_updated))
        table.add_row("Images downloaded", str(result.images_downloaded))
        table.add_row("API requests", str(self.notion_api.request_count))

        console.print(table)
        console.print(
            f"[green]✔[/green] Sync complete: processed={len(result.pages_processed)}, "
            f"skipped={result.pages_skipped}, status-updated={result.status_updated}"
        )


def print_cache_status(cache: SyncCache) -> None:
    """Print the pages recorded in the incremental cache."""
    if not cache.pages:
        console.print("[yellow]No pages have been cached yet.[/yellow]")
        console.print("Enable 'incremental' in the config and run a sync first.")
        return

    table = Table(title="Cached Pages")
    table.add_column("Page ID", style="cyan")
    table.add_column("Output", style="green")
    table.add_column("Last Edited", style="yellow")

    for page_id, entry in sorted(cache.pages.items(), key=lambda item: item[1].output_path):
        table.add_row(page_id, escape(entry.output_path), entry.last_edited)

    console.print(table)
