"""sync command — pull new merged pull requests into the cache."""

from __future__ import annotations

import click
from rich.console import Console

from approvalrank_core.errors import ApprovalRankError
from approvalrank_core.gh.pull_request import GithubSource
from approvalrank_core.sync import SyncEngine
from approvalrank_store.base import StoreError

console = Console()


def split_repo(value: str) -> tuple[str, str]:
    """Split ``owner/name`` into its two parts."""
    owner, _, repo = value.partition("/")
    if not owner or not repo or "/" in repo:
        raise click.BadParameter(f"expected owner/name, got {value!r}", param_hint="--repo")
    return owner, repo


def open_store(ctx: click.Context, owner: str, repo: str):
    """Build the configured store for owner/repo and close it with the context."""
    try:
        store = ctx.obj["store_factory"](owner, repo)
    except ValueError as e:
        raise click.UsageError(str(e))
    ctx.call_on_close(store.close)
    return store


def run_sync(config: dict, store, owner: str, repo: str) -> list:
    """Run one sync pass, turning failures into CLI errors."""
    token = config.get("github_token")
    if not token:
        raise click.UsageError(
            "No GitHub token found. Set GITHUB_TOKEN or run `gh auth login` first.\n"
            "Create a token at https://github.com/settings/tokens"
        )

    source = GithubSource.from_token(token, owner, repo, per_page=config.get("per_page", 100))
    engine = SyncEngine(
        store,
        source,
        cooldown_seconds=config.get("cooldown_seconds", 20),
        workers=config.get("sync_workers", 4),
    )
    try:
        return engine.sync()
    except (ApprovalRankError, StoreError) as e:
        raise click.ClickException(f"Sync of {owner}/{repo} failed: {e}")


@click.command("sync")
@click.option("--repo", required=True, help="GitHub repository (owner/name).")
@click.pass_context
def sync_cmd(ctx, repo: str):
    """Download merged pull requests, their reviews and files into the cache.

    Only pull requests newer than the last sync are fetched. Running the
    command again within the cooldown window is a no-op.
    """
    owner, name = split_repo(repo)
    store = open_store(ctx, owner, name)

    ingested = run_sync(ctx.obj["config"], store, owner, name)

    if ingested:
        console.print(f"[green]Synced {len(ingested)} new merged pull request(s) for {repo}.[/green]")
    else:
        console.print(f"[yellow]{repo} is already up to date.[/yellow]")
