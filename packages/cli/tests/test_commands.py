"""Tests for the CLI entry point."""

import json
import subprocess
from unittest.mock import MagicMock, patch

from click.testing import CliRunner

from approvalrank_cli.cli import build_store, main
from approvalrank_core.errors import RemoteAPIError
from approvalrank_core.models import encode
from approvalrank_store.disk import DiskStore
from approvalrank_store.memory import MemoryStore
from approvalrank_store.sqlite import SQLiteStore


def _make_config(github_token="tok", store="memory"):
    return {
        "github_token": github_token,
        "store": store,
        "cache_dir": ".disk-cache",
        "store_path": ".approvalrank.db",
        "cooldown_seconds": 20,
        "per_page": 100,
        "sync_workers": 4,
        "loader_workers": 4,
        "sync_on_query": False,
        "host": "127.0.0.1",
        "port": 8080,
        "cors_origins": [],
    }


def _seed(store, number, author, approvers, created_at="2021-01-10T00:00:00Z"):
    store.put(
        str(number),
        encode({"number": number, "user": {"login": author}, "created_at": created_at, "merged_at": created_at}),
    )
    store.put(f"{number}/reviews", encode([{"user": {"login": a}, "state": "APPROVED"} for a in approvers]))
    store.put(f"{number}/files", encode([]))


def _seeded_store():
    store = MemoryStore()
    _seed(store, 1, "alice", ["bob"])
    _seed(store, 2, "alice", ["bob", "carol"], created_at="2021-06-01T00:00:00Z")
    _seed(store, 3, "carol", ["bob"])
    return store


def _patch_common(mocker, config=None, token="tok", store=None):
    """Patch load_config, resolve_github_token and build_store for most tests."""
    cfg = config or _make_config()
    mocker.patch("approvalrank_core.config.load_config", return_value=cfg)
    mocker.patch("approvalrank_cli.auth.resolve_github_token", return_value=token)
    store = store if store is not None else MemoryStore()
    mocker.patch("approvalrank_cli.cli.build_store", return_value=store)
    return cfg, store


# ---------------------------------------------------------------------------
# build_store
# ---------------------------------------------------------------------------


class TestBuildStore:
    def test_disk_store_namespaced(self, tmp_path):
        store = build_store({"store": "disk", "cache_dir": str(tmp_path)}, "owner", "repo")
        assert isinstance(store, DiskStore)
        assert store.root == tmp_path / "owner" / "repo"

    def test_sqlite_store(self, tmp_path):
        store = build_store({"store": "sqlite", "store_path": str(tmp_path / "c.db")}, "owner", "repo")
        assert isinstance(store, SQLiteStore)
        store.close()

    def test_memory_store(self):
        assert isinstance(build_store({"store": "memory"}, "owner", "repo"), MemoryStore)

    def test_disk_store_rejects_path_segments(self, tmp_path):
        try:
            build_store({"store": "disk", "cache_dir": str(tmp_path)}, "..", "repo")
        except ValueError as e:
            assert ".." in str(e)
        else:
            raise AssertionError("expected ValueError")
        assert list(tmp_path.iterdir()) == []

    def test_unknown_store_rejected(self):
        try:
            build_store({"store": "s3"}, "owner", "repo")
        except ValueError as e:
            assert "s3" in str(e)
        else:
            raise AssertionError("expected ValueError")


# ---------------------------------------------------------------------------
# sync
# ---------------------------------------------------------------------------


class TestSyncCommand:
    def test_runs_engine_with_configured_settings(self, mocker):
        _, store = _patch_common(mocker)
        mock_source = mocker.patch("approvalrank_cli.commands.sync.GithubSource")
        mock_engine = mocker.patch("approvalrank_cli.commands.sync.SyncEngine")
        mock_engine.return_value.sync.return_value = [MagicMock(), MagicMock()]

        result = CliRunner().invoke(main, ["sync", "--repo", "owner/repo"])

        assert result.exit_code == 0, result.output
        mock_source.from_token.assert_called_once_with("tok", "owner", "repo", per_page=100)
        args, kwargs = mock_engine.call_args
        assert args == (store, mock_source.from_token.return_value)
        assert kwargs == {"cooldown_seconds": 20, "workers": 4}
        assert "Synced 2" in result.output

    def test_up_to_date(self, mocker):
        _patch_common(mocker)
        mocker.patch("approvalrank_cli.commands.sync.GithubSource")
        mock_engine = mocker.patch("approvalrank_cli.commands.sync.SyncEngine")
        mock_engine.return_value.sync.return_value = []

        result = CliRunner().invoke(main, ["sync", "--repo", "owner/repo"])

        assert result.exit_code == 0
        assert "up to date" in result.output

    def test_missing_token(self, mocker):
        _patch_common(mocker, config=_make_config(github_token=None), token=None)

        result = CliRunner().invoke(main, ["sync", "--repo", "owner/repo"])

        assert result.exit_code != 0
        assert "token" in result.output.lower()

    def test_sync_failure_reported(self, mocker):
        _patch_common(mocker)
        mocker.patch("approvalrank_cli.commands.sync.GithubSource")
        mock_engine = mocker.patch("approvalrank_cli.commands.sync.SyncEngine")
        mock_engine.return_value.sync.side_effect = RemoteAPIError(502, "bad gateway")

        result = CliRunner().invoke(main, ["sync", "--repo", "owner/repo"])

        assert result.exit_code == 1
        assert "Sync of owner/repo failed" in result.output

    def test_malformed_repo(self, mocker):
        _patch_common(mocker)

        result = CliRunner().invoke(main, ["sync", "--repo", "just-a-name"])

        assert result.exit_code == 2
        assert "owner/name" in result.output

    def test_unsafe_repo_name_is_usage_error(self, mocker, tmp_path):
        config = _make_config(store="disk")
        config["cache_dir"] = str(tmp_path)
        mocker.patch("approvalrank_core.config.load_config", return_value=config)
        mocker.patch("approvalrank_cli.auth.resolve_github_token", return_value="tok")

        result = CliRunner().invoke(main, ["sync", "--repo", "../secret"])

        assert result.exit_code == 2
        assert "invalid owner or repository name" in result.output


# ---------------------------------------------------------------------------
# graph
# ---------------------------------------------------------------------------


class TestGraphCommand:
    def test_writes_document_to_file(self, mocker, tmp_path):
        _patch_common(mocker, store=_seeded_store())
        out = tmp_path / "graph.json"

        result = CliRunner().invoke(main, ["graph", "--repo", "owner/repo", "--no-sync", "-o", str(out)])

        assert result.exit_code == 0, result.output
        document = json.loads(out.read_text())
        assert {node["id"] for node in document["nodes"]} == {"alice", "bob", "carol"}
        assert {"source": "alice", "target": "bob", "value": 2} in document["links"]

    def test_prints_document_to_stdout(self, mocker):
        _patch_common(mocker, store=_seeded_store())

        result = CliRunner().invoke(main, ["graph", "--repo", "owner/repo", "--no-sync"])

        assert result.exit_code == 0
        assert '"nodes"' in result.output
        assert '"links"' in result.output

    def test_window_applied(self, mocker, tmp_path):
        _patch_common(mocker, store=_seeded_store())
        out = tmp_path / "graph.json"

        CliRunner().invoke(
            main,
            ["graph", "--repo", "owner/repo", "--no-sync", "--start", "2021-05-01T00:00:00Z", "-o", str(out)],
        )

        document = json.loads(out.read_text())
        assert sorted((link["source"], link["target"]) for link in document["links"]) == [("alice", "bob"), ("alice", "carol")]

    def test_bad_timestamp_is_usage_error(self, mocker):
        _patch_common(mocker)

        result = CliRunner().invoke(main, ["graph", "--repo", "owner/repo", "--no-sync", "--end", "tomorrow"])

        assert result.exit_code == 2
        assert "RFC 3339" in result.output

    def test_syncs_by_default(self, mocker):
        _patch_common(mocker, store=_seeded_store())
        mock_sync = mocker.patch("approvalrank_cli.commands.graph.run_sync", return_value=[])

        CliRunner().invoke(main, ["graph", "--repo", "owner/repo"])

        mock_sync.assert_called_once()


# ---------------------------------------------------------------------------
# rank
# ---------------------------------------------------------------------------


class TestRankCommand:
    def test_table_lists_top_reviewer_first(self, mocker):
        _patch_common(mocker, store=_seeded_store())

        result = CliRunner().invoke(main, ["rank", "--repo", "owner/repo", "--top", "2"])

        assert result.exit_code == 0, result.output
        assert "Top 2 reviewers" in result.output
        assert result.output.index("bob") < result.output.index("carol")
        assert "alice" not in result.output

    def test_no_approvals(self, mocker):
        _patch_common(mocker)

        result = CliRunner().invoke(main, ["rank", "--repo", "owner/repo"])

        assert result.exit_code == 0
        assert "No approvals found" in result.output


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------


class TestServeCommand:
    def test_runs_uvicorn_with_config(self, mocker):
        _patch_common(mocker)
        mock_run = mocker.patch("uvicorn.run")

        result = CliRunner().invoke(main, ["serve", "--port", "9001"])

        assert result.exit_code == 0, result.output
        _, kwargs = mock_run.call_args
        assert kwargs == {"host": "127.0.0.1", "port": 9001}

    def test_sync_on_query_requires_token(self, mocker):
        config = _make_config(github_token=None)
        config["sync_on_query"] = True
        _patch_common(mocker, config=config, token=None)
        mock_run = mocker.patch("uvicorn.run")

        result = CliRunner().invoke(main, ["serve"])

        assert result.exit_code != 0
        mock_run.assert_not_called()


# ---------------------------------------------------------------------------
# auth.py
# ---------------------------------------------------------------------------


class TestResolveGithubToken:
    def test_returns_env_var_when_set(self, monkeypatch):
        from approvalrank_cli.auth import resolve_github_token

        monkeypatch.setenv("GITHUB_TOKEN", "env-token")
        assert resolve_github_token() == "env-token"

    def test_gh_token_env_var(self, monkeypatch):
        from approvalrank_cli.auth import resolve_github_token

        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        monkeypatch.setenv("GH_TOKEN", "gh-env-token")
        assert resolve_github_token() == "gh-env-token"

    def test_falls_back_to_gh_cli(self, monkeypatch):
        from approvalrank_cli.auth import resolve_github_token

        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        monkeypatch.delenv("GH_TOKEN", raising=False)
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=0, stdout="gh-token\n")
            assert resolve_github_token() == "gh-token"

    def test_returns_none_when_gh_not_installed(self, monkeypatch):
        from approvalrank_cli.auth import resolve_github_token

        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        monkeypatch.delenv("GH_TOKEN", raising=False)
        with patch("subprocess.run", side_effect=FileNotFoundError):
            assert resolve_github_token() is None

    def test_returns_none_when_gh_times_out(self, monkeypatch):
        from approvalrank_cli.auth import resolve_github_token

        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        monkeypatch.delenv("GH_TOKEN", raising=False)
        with patch("subprocess.run", side_effect=subprocess.TimeoutExpired(cmd="gh", timeout=5)):
            assert resolve_github_token() is None

    def test_returns_none_when_gh_returns_error(self, monkeypatch):
        from approvalrank_cli.auth import resolve_github_token

        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        monkeypatch.delenv("GH_TOKEN", raising=False)
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=1, stdout="")
            assert resolve_github_token() is None
