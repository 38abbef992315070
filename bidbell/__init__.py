"""
bidbell - Real-time auction notification client.

This package keeps a live, consistent view of a user's auction notifications
(new bid, outbid, auction won/ended) by combining a WebSocket push channel
with snapshots fetched from the REST API.

Key modules:
- coordinator: Session state machine tying all components together
- store: Authoritative in-memory notification list and unread counter
- transport: WebSocket connection wrapper
- message_router: Push frame parsing and dispatch
- reconnect: Linear backoff policy and cancellable reconnect timer
- snapshot_loader / api_client: REST snapshot and confirmation calls
- config: Client configuration management
- credential_store: Local encrypted bearer token storage
"""

import os
import re
import subprocess
from typing import Optional


def _run_git_command(args: list[str]) -> Optional[str]:
    """Run a Git command and return its output."""
    try:
        result = subprocess.run(
            ['git'] + args,
            capture_output=True,
            text=True,
            check=True,
            timeout=5
        )
        return result.stdout.strip()
    except (subprocess.CalledProcessError, subprocess.TimeoutExpired, FileNotFoundError):
        return None


def _get_version_from_git() -> Optional[str]:
    """
    Get version from Git tags.

    Version Format:
    - Tagged releases: "v1.2.3"
    - Development builds: "v1.2.3-dev.5+a1b2c3d"
    """
    describe = _run_git_command(['describe', '--tags', '--long', '--always'])
    if not describe:
        return None

    match = re.match(r'^(.+?)-(\d+)-g([a-f0-9]+)$', describe)
    if not match:
        return None

    tag, commits_since, commit_hash = match.groups()
    if int(commits_since) == 0:
        return tag
    return f"{tag}-dev.{commits_since}+{commit_hash}"


def _get_version() -> str:
    """
    Get version with priority: BIDBELL_VERSION env var > _version.py > Git tags > fallback.
    """
    env_version = os.environ.get('BIDBELL_VERSION')
    if env_version:
        return env_version

    try:
        from bidbell._version import __version__ as built_version
        return built_version
    except ImportError:
        pass

    git_version = _get_version_from_git()
    if git_version:
        return git_version

    return 'v0.0.0-dev+unknown'


__version__ = _get_version()
