"""CLI entry point for approvalrank.

Commands:
  sync   — pull new merged pull requests of a repository into the cache
  graph  — sync, then write the ranked approval graph as JSON
  rank   — print the most influential reviewers of a repository
  serve  — run the HTTP query service
"""

from __future__ import annotations

import functools
import importlib.metadata
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from approvalrank_cli.commands.graph import graph_cmd
from approvalrank_cli.commands.rank import rank_cmd
from approvalrank_cli.commands.serve import serve_cmd
from approvalrank_cli.commands.sync import sync_cmd

console = Console()


def build_store(config: dict, owner: str, repo: str):
    """Instantiate the configured cache for one owner/repo namespace.

    Store selection:
      store: disk   → DiskStore   (cache_dir, default .disk-cache)
      store: sqlite → SQLiteStore (store_path, default .approvalrank.db)
      store: memory → MemoryStore (nothing persisted)

    This factory lives in the CLI package so neither approvalrank_core nor
    approvalrank_store know about the config format.
    """
    store_type = config.get("store", "disk")

    if store_type == "disk":
        from approvalrank_store.disk import DiskStore

        return DiskStore(owner, repo, cache_dir=config.get("cache_dir", ".disk-cache"))

    if store_type == "sqlite":
        from approvalrank_store.sqlite import SQLiteStore

        return SQLiteStore(owner, repo, db_path=config.get("store_path", ".approvalrank.db"))

    if store_type == "memory":
        from approvalrank_store.memory import MemoryStore

        return MemoryStore()

    raise ValueError(f"Unknown store: {store_type!r}. Choose 'disk', 'sqlite' or 'memory'.")


@click.group()
@click.version_option(
    version=importlib.metadata.version("approvalrank"),
    prog_name="approvalrank",
)
@click.option(
    "--config",
    "config_path",
    default=".approvalrank.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="APPROVALRANK_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Log debug output.")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """Rank a repository's contributors by who approves whose pull requests."""
    from approvalrank_core.config import load_config
    from approvalrank_cli.auth import resolve_github_token

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )

    ctx.ensure_object(dict)

    config = load_config(config_path)

    # Resolve the token once so every subcommand shares the same answer.
    token = resolve_github_token()
    if token:
        config["github_token"] = token

    ctx.obj["config"] = config
    ctx.obj["store_factory"] = functools.partial(build_store, config)


main.add_command(sync_cmd)
main.add_command(graph_cmd)
main.add_command(rank_cmd)
main.add_command(serve_cmd)
