"""
Notion → Markdown CLI

Usage:
    notion-md-gen                       # Generate all matching pages
    notion-md-gen sync rust async       # Only pages whose title has both words
    notion-md-gen sync --since 20240301 # Only pages edited after a date
    notion-md-gen sync --dry-run        # Preview without writing files
    notion-md-gen init                  # Write a starter config and .env
    notion-md-gen status                # Show the incremental cache
"""

import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import click
from rich.console import Console

from notion_md_gen import __version__
from notion_md_gen.config import Config, write_default_config
from notion_md_gen.errors import ConfigError

console = Console()

SINCE_FORMATS = ("%Y%m%d-%H.%M.%S", "%Y%m%d")


def parse_since(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a ``--since`` value (``YYYYMMDD`` or ``YYYYMMDD-HH.MM.SS``) as UTC.

    An unparsable value is reported and ignored.
    """
    if not value:
        return None
    for fmt in SINCE_FORMATS:
        try:
            return datetime.strptime(value, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    console.print(f"[yellow]Warning: could not parse --since value '{value}', ignoring it.[/yellow]")
    return None


def load_config(ctx: click.Context) -> Config:
    return Config.from_file(ctx.obj.get("config_path"))


@click.group(invoke_without_command=True)
@click.option("--config", "config_path", type=click.Path(path_type=Path), default=None,
              help="Config file (default is notion-md-gen.yaml)")
@click.option("--debug", is_flag=True, help="Enable debug output")
@click.pass_context
def cli(ctx, config_path: Optional[Path], debug: bool):
    """
    Notion → Markdown Generator

    Renders the pages of a Notion database as Markdown files.
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["debug"] = debug

    # If no subcommand, run sync
    if ctx.invoked_subcommand is None:
        ctx.invoke(sync)


@cli.command()
@click.argument("keywords", nargs=-1)
@click.option("--parallelize/--no-parallelize", default=None,
              help="Fetch and render pages in parallel")
@click.option("-j", "--parallelism", type=int, default=None,
              help="Number of concurrent pages (use 0 for serial mode)")
@click.option("--since", default=None,
              help="Only pages modified since this date (YYYYMMDD or YYYYMMDD-HH.MM.SS)")
@click.option("--dry-run", is_flag=True, help="List the pages that would be generated")
@click.pass_context
def sync(ctx, keywords: tuple = (), parallelize: Optional[bool] = None,
         parallelism: Optional[int] = None, since: Optional[str] = None, dry_run: bool = False):
    """Generate Markdown for pages whose title contains every KEYWORD."""
    # Import here to keep `--help` fast
    from notion_md_gen.sync_engine import SyncEngine

    debug = ctx.obj.get("debug", False)

    try:
        config = load_config(ctx)

        # Apply CLI overrides
        if parallelism is not None:
            config.parallelism = parallelism
        if parallelize is not None:
            config.parallelize = parallelize
        config.debug = debug

        config.validate_for_sync()

        since_time = parse_since(since)
        if since_time is not None:
            console.print(f"Filtering pages modified since: {since_time.isoformat()}")

        engine = SyncEngine(config)
        engine.sync(keywords=list(keywords), since=since_time, dry_run=dry_run)

    except ConfigError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Sync cancelled.[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"[red]Error:[/red] {e}")
        if debug:
            import traceback
            traceback.print_exc()
        sys.exit(1)


@cli.command()
@click.pass_context
def status(ctx):
    """Show the pages recorded in the incremental cache."""
    from notion_md_gen.sync_cache import load_cache
    from notion_md_gen.sync_engine import print_cache_status

    try:
        config = load_config(ctx)
        print_cache_status(load_cache(config.cache_file))
    except Exception as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)


@cli.command()
def init():
    """Write a starter notion-md-gen.yaml and .env in the current directory."""
    try:
        config_path, env_path = write_default_config(Path.cwd())
    except ConfigError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        sys.exit(1)
    console.print(
        f"[green]Config file {config_path.name} and {env_path.name} created, "
        "please edit them for yourself.[/green]"
    )


@cli.command()
def version():
    """Show version information."""
    console.print(f"notion-md-gen v{__version__}")


def main():
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
