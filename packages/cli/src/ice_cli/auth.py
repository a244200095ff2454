"""API token resolution.

Resolution order (stops at first success):
  1. the environment variable named by ``auth.token_env``
  2. ``gh auth token`` when the provider is GitHub (a `gh auth login` session)
"""

from __future__ import annotations

import logging
import subprocess

logger = logging.getLogger(__name__)


def resolve_token(config: dict) -> str | None:
    """Return an API token for the configured provider, or None.

    Never raises; callers decide whether a missing token is fatal.
    """
    from ice_core.config import resolve_token as token_from_env

    token = token_from_env(config)
    if token:
        return token

    if config["auth"].get("provider") != "github":
        return None

    try:
        result = subprocess.run(
            ["gh", "auth", "token"],
            capture_output=True,
            text=True,
            timeout=5,
        )
        if result.returncode == 0:
            gh_token = result.stdout.strip()
            if gh_token:
                logger.debug("Resolved GitHub token via gh CLI session.")
                return gh_token
    except (FileNotFoundError, subprocess.TimeoutExpired):
        # gh is not installed or timed out.
        pass

    return None
