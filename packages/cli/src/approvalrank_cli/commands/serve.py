"""serve command — run the HTTP query service."""

from __future__ import annotations

import click
from rich.console import Console

console = Console()


@click.command("serve")
@click.option("--host", default=None, help="Interface to bind. Overrides config file.")
@click.option("--port", type=int, default=None, help="Port to listen on. Overrides config file.")
@click.pass_context
def serve_cmd(ctx, host: str | None, port: int | None):
    """Serve GET /graph?owner=&repo=&start=&end= over HTTP."""
    import uvicorn

    from approvalrank_cli.server import create_app, github_source_factory

    config = ctx.obj["config"]
    host = host or config.get("host", "127.0.0.1")
    port = port or config.get("port", 8080)

    source_factory = None
    if config.get("sync_on_query"):
        if not config.get("github_token"):
            raise click.UsageError("sync_on_query is enabled but no GitHub token was found.")
        source_factory = github_source_factory(config)

    app = create_app(config, ctx.obj["store_factory"], source_factory=source_factory)
    console.print(f"[cyan]Serving approval graphs on http://{host}:{port}/graph[/cyan]")
    uvicorn.run(app, host=host, port=port)
