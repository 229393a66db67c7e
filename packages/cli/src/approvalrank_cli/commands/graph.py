"""graph command — write the ranked approval graph as a force-graph document."""

from __future__ import annotations

import json
from pathlib import Path

import click
from rich.console import Console

from approvalrank_cli.commands.sync import open_store, run_sync, split_repo
from approvalrank_core.errors import ApprovalRankError
from approvalrank_core.models import parse_timestamp
from approvalrank_core.pipeline import compute_graph
from approvalrank_store.base import StoreError

console = Console(stderr=True)


def parse_window_option(value: str | None, name: str):
    try:
        return parse_timestamp(value)
    except ValueError:
        raise click.BadParameter(f"not an RFC 3339 timestamp: {value!r}", param_hint=name)


def window_options(func):
    func = click.option("--end", default=None, help="Only pull requests created at or before this time (RFC 3339).")(func)
    func = click.option("--start", default=None, help="Only pull requests created at or after this time (RFC 3339).")(func)
    return func


def load_graph(ctx: click.Context, repo: str, start: str | None, end: str | None, sync: bool):
    """Optionally sync, then build the graph for the requested window."""
    config = ctx.obj["config"]
    owner, name = split_repo(repo)
    start_at = parse_window_option(start, "--start")
    end_at = parse_window_option(end, "--end")
    store = open_store(ctx, owner, name)

    if sync:
        run_sync(config, store, owner, name)

    try:
        return compute_graph(store, start_at, end_at, workers=config.get("loader_workers", 16))
    except (ApprovalRankError, StoreError) as e:
        raise click.ClickException(f"Could not build graph for {repo}: {e}")


@click.command("graph")
@click.option("--repo", required=True, help="GitHub repository (owner/name).")
@window_options
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, writable=True),
    default=None,
    help="Write the JSON document to this file instead of stdout.",
)
@click.option("--sync/--no-sync", default=True, show_default=True, help="Fetch new pull requests first.")
@click.pass_context
def graph_cmd(ctx, repo: str, start: str | None, end: str | None, output: str | None, sync: bool):
    """Build the approval graph of a repository.

    The document has the shape {"nodes": [...], "links": [...]} expected by
    force-directed graph renderers.
    """
    graph = load_graph(ctx, repo, start, end, sync)
    payload = json.dumps(graph.to_dict(), indent=2)

    if output:
        Path(output).write_text(payload + "\n", encoding="utf-8")
        console.print(f"[green]Wrote {len(graph.nodes)} node(s) and {len(graph.links)} link(s) to {output}.[/green]")
    else:
        click.echo(payload)
