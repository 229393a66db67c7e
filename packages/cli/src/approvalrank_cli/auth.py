"""GitHub token lookup for the sync commands.

Order (first hit wins):
  1. GITHUB_TOKEN, then GH_TOKEN in the environment (CI, explicit override)
  2. `gh auth token`, the session of a locally logged-in GitHub CLI

Anonymous access is limited to 60 requests an hour, far too few to sync
any real repository, so callers treat a missing token as a usage error.
"""

from __future__ import annotations

import logging
import os
import subprocess

logger = logging.getLogger(__name__)

_ENV_VARS = ("GITHUB_TOKEN", "GH_TOKEN")


def resolve_github_token() -> str | None:
    """Return a GitHub token, or None if none is available. Never raises."""
    for name in _ENV_VARS:
        token = os.environ.get(name)
        if token:
            return token

    try:
        result = subprocess.run(
            ["gh", "auth", "token"],
            capture_output=True,
            text=True,
            timeout=5,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return None

    if result.returncode != 0:
        return None
    token = result.stdout.strip()
    if token:
        logger.debug("Using GitHub token from the gh CLI session.")
    return token or None
