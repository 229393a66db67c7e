"""rank command — show the most influential reviewers."""

from __future__ import annotations

from collections import Counter

import click
from rich.console import Console
from rich.table import Table

from approvalrank_cli.commands.graph import load_graph, window_options

console = Console()


@click.command("rank")
@click.option("--repo", required=True, help="GitHub repository (owner/name).")
@click.option("--top", default=10, show_default=True, help="Number of contributors to show.")
@window_options
@click.option("--sync/--no-sync", default=False, show_default=True, help="Fetch new pull requests first.")
@click.pass_context
def rank_cmd(ctx, repo: str, top: int, start: str | None, end: str | None, sync: bool):
    """Rank contributors by weighted PageRank over approvals.

    An approval counts as a vote from the pull request author for the
    reviewer, so people whose approval is sought by sought-after people
    rank highest.
    """
    graph = load_graph(ctx, repo, start, end, sync)
    if not graph.nodes:
        console.print("[yellow]No approvals found for this repository and window.[/yellow]")
        return

    given: Counter[str] = Counter()
    received: Counter[str] = Counter()
    for link in graph.links:
        given[link.target] += link.value
        received[link.source] += link.value

    table = Table(title=f"Top {top} reviewers — {repo}", show_header=True, header_style="bold cyan")
    table.add_column("#", justify="right", width=4)
    table.add_column("Login", style="bold")
    table.add_column("Score", justify="right")
    table.add_column("PageRank", justify="right")
    table.add_column("Approvals given", justify="right")
    table.add_column("Approvals received", justify="right")

    for position, node in enumerate(graph.nodes[:top], 1):
        table.add_row(
            str(position),
            node.id,
            f"{node.score:.2f}",
            f"{node.rank:.5f}",
            str(given[node.id]),
            str(received[node.id]),
        )

    console.print(table)
