import os
from pathlib import Path
from typing import Optional

import yaml

DEFAULT_CONFIG: dict = {
    "store": "disk",  # "disk" | "sqlite" | "memory"
    "cache_dir": ".disk-cache",
    "store_path": ".approvalrank.db",
    "cooldown_seconds": 20,
    "per_page": 100,
    "sync_workers": 4,
    "loader_workers": 16,
    "sync_on_query": False,  # sync before answering /graph when a token is available
    "host": "127.0.0.1",
    "port": 8080,
    "cors_origins": ["http://localhost:3000"],
}


def load_config(config_path: str = ".approvalrank.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .approvalrank.yml in the current directory
      3. CLI argument overrides
    """
    config = {**DEFAULT_CONFIG, "cors_origins": list(DEFAULT_CONFIG["cors_origins"])}

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    config["github_token"] = os.environ.get("GITHUB_TOKEN")

    return config
