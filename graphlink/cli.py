"""
`graphlink` command line: exercise the request pipeline from a shell.

Every command runs through the same client stack an application would use,
so retries, error mapping and caching behave exactly as they do in code.
"""

from __future__ import annotations

import asyncio
import json
import platform
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar

import click
import rich_click
from rich.console import Console
from rich.table import Table

import graphlink

from .batch import format_batch_summary
from .client import GraphClient
from .clients.http import StaticTokenProvider
from .config import GraphSettings, load_settings
from .exceptions import GraphError, format_error_for_user
from .logging import configure_logging, restore_logging
from .models.pagination import PageParams

T = TypeVar("T")

_VERBOSITY_LEVELS = {1: "info", 2: "debug"}


class CLIError(click.ClickException):
    def __init__(self, message: str, *, exit_code: int = 1) -> None:
        super().__init__(message)
        self.exit_code = exit_code


def _run(settings: GraphSettings, fn: Callable[[GraphClient], Awaitable[T]]) -> T:
    if not settings.access_token:
        raise CLIError("Missing access token. Set GRAPH_ACCESS_TOKEN or pass --token.", exit_code=2)

    async def _main() -> T:
        async with GraphClient(
            StaticTokenProvider(settings.access_token or ""),
            base_url=settings.base_url,
            timeout=settings.timeout,
            max_retries=settings.max_retries,
            enable_cache=settings.enable_cache,
        ) as client:
            return await fn(client)

    try:
        return asyncio.run(_main())
    except GraphError as e:
        raise CLIError(format_error_for_user(e)) from e


def _emit_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, ensure_ascii=False, default=str))


@click.group(
    name="graphlink",
    invoke_without_command=True,
    context_settings={"help_option_names": ["-h", "--help"]},
    cls=rich_click.RichGroup,
)
@click.option(
    "--token", type=str, default=None, help="Bearer token (default: GRAPH_ACCESS_TOKEN)."
)
@click.option("--base-url", type=str, default=None, help="Override the Graph base URL.")
@click.option(
    "--max-retries", type=int, default=None, help="Maximum retries for transient failures."
)
@click.option("--no-cache", is_flag=True, help="Disable read-through response caching.")
@click.option("-v", "verbose", count=True, help="Increase verbosity (-v, -vv).")
@click.version_option(version=graphlink.__version__, prog_name="graphlink")
@click.pass_context
def cli(
    click_ctx: click.Context,
    *,
    token: str | None,
    base_url: str | None,
    max_retries: int | None,
    no_cache: bool,
    verbose: int,
) -> None:
    if click_ctx.invoked_subcommand is None:
        # No args: show help; no network calls.
        click.echo(click_ctx.get_help())
        raise click.exceptions.Exit(0)

    settings = load_settings()
    overrides: dict[str, Any] = {}
    if token:
        overrides["access_token"] = token
    if base_url:
        overrides["base_url"] = base_url
    if max_retries is not None:
        overrides["max_retries"] = max_retries
    if no_cache:
        overrides["enable_cache"] = False
    if overrides:
        settings = GraphSettings.model_validate({**settings.model_dump(), **overrides})
    click_ctx.obj = settings

    # Warnings only unless -v or LOG_LEVEL asks for more.
    if verbose:
        level = _VERBOSITY_LEVELS.get(verbose, "debug")
    else:
        level = settings.log_level or "warning"
    previous_logging = configure_logging(level)
    click_ctx.call_on_close(lambda: restore_logging(previous_logging))


@cli.command(name="version", cls=rich_click.RichCommand)
def version_cmd() -> None:
    """Show version information."""
    _emit_json(
        {
            "version": graphlink.__version__,
            "pythonVersion": platform.python_version(),
            "platform": platform.platform(),
        }
    )


@cli.command(name="get", cls=rich_click.RichCommand)
@click.argument("path")
@click.option("--all", "fetch_all", is_flag=True, help="Follow @odata.nextLink across pages.")
@click.option("--max-items", type=int, default=None, help="Stop after this many items.")
@click.option("--top", type=int, default=None, help="Page size ($top).")
@click.option("--select", type=str, default=None, help="Fields to return ($select).")
@click.option("--filter", "filter_", type=str, default=None, help="OData filter ($filter).")
@click.option("--json", "as_json", is_flag=True, help="Emit raw JSON.")
@click.pass_obj
def get_cmd(
    settings: GraphSettings,
    path: str,
    *,
    fetch_all: bool,
    max_items: int | None,
    top: int | None,
    select: str | None,
    filter_: str | None,
    as_json: bool,
) -> None:
    """Fetch one page (or every page with --all) of a Graph collection."""
    params = PageParams(top=top, select=select, filter=filter_)

    async def fn(client: GraphClient) -> dict[str, Any]:
        if not fetch_all:
            page = await client.pagination.fetch_page(path, params)
            items = page.items
            if max_items is not None:
                items = items[:max_items]
            return {"items": items, "hasMore": page.has_more, "nextCursor": page.next_cursor}
        cap = max_items if max_items is not None else settings.max_items
        collected: list[Any] = []
        async for batch in client.pagination.paginate(path, cap):
            collected.extend(batch)
        return {"items": collected, "hasMore": None, "nextCursor": None}

    result = _run(settings, fn)
    if as_json:
        _emit_json(result)
        return
    _render_items(result["items"], select)
    if result["hasMore"]:
        Console(stderr=True).print("[dim]More results available (use --all).[/dim]")


def _render_items(items: list[Any], select: str | None) -> None:
    console = Console()
    if not items:
        console.print("[dim]No items.[/dim]")
        return
    if select:
        columns = [c.strip() for c in select.split(",") if c.strip()]
    elif isinstance(items[0], dict):
        columns = [k for k in items[0] if not k.startswith("@")][:5]
    else:
        columns = []
    if not columns:
        for item in items:
            console.print_json(data=item)
        return
    table = Table(show_header=True, header_style="bold")
    for column in columns:
        table.add_column(column)
    for item in items:
        row = item if isinstance(item, dict) else {}
        table.add_row(*(str(row.get(column, "")) for column in columns))
    console.print(table)


@cli.command(name="batch", cls=rich_click.RichCommand)
@click.argument("file", type=click.Path(dir_okay=False, allow_dash=True))
@click.option("--json", "as_json", is_flag=True, help="Emit raw sub-responses as JSON.")
@click.pass_obj
def batch_cmd(settings: GraphSettings, file: str, *, as_json: bool) -> None:
    """Run sub-requests from a JSON file (or '-' for stdin) as $batch calls."""
    raw = sys.stdin.read() if file == "-" else Path(file).read_text(encoding="utf-8")
    try:
        requests = json.loads(raw)
    except json.JSONDecodeError as e:
        raise CLIError(f"Batch file is not valid JSON: {e}", exit_code=2) from e
    if isinstance(requests, dict):
        requests = requests.get("requests", [])
    if not isinstance(requests, list):
        raise CLIError("Batch file must contain a list of requests.", exit_code=2)

    async def fn(client: GraphClient) -> Any:
        return await client.batch.execute_all(requests)

    try:
        result = _run(settings, fn)
    except ValueError as e:
        raise CLIError(str(e), exit_code=2) from e

    if as_json:
        _emit_json([r.model_dump(exclude_none=True) for r in result])
        return
    click.echo(format_batch_summary(result.summarize(), "succeeded", "failed"))
