"""Configuration constants for hulunote-outline."""

import os
from pathlib import Path

# Backend base URL, overridable with HULUNOTE_API_URL.
DEFAULT_API_URL: str = "http://localhost:6689"

# API token location. HULUNOTE_TOKEN wins, otherwise the first file found is used.
API_TOKEN_FILES: list[Path] = [
    Path("~/.config/hulunote-token.txt").expanduser(),
    Path("~/.config/secret/hulunote-token.txt").expanduser(),
]

# Directory for the local draft database. First directory which is found is used.
DATA_DIRECTORIES: list[Path] = [
    Path("~/.local/share/hulunote-outline").expanduser(),
    Path("~/.hulunote-outline").expanduser(),
]

DRAFTS_DB_NAME: str = "drafts.db"

# Parent id of the backend's hidden root container node.
ROOT_ID: str = "00000000-0000-0000-0000-000000000000"

# Prefix of optimistic, not-yet-created node ids.
TMP_ID_PREFIX: str = "tmp-"

# Autosave debounce per node, milliseconds.
DEBOUNCE_MS: int = 600

# Retry backoff: 1s, 2s, 4s, ... capped at 60s, jittered.
RETRY_BASE_MS: int = 1000
RETRY_CAP_MS: int = 60_000

# HTTP timeout for a single backend request, seconds.
REQUEST_TIMEOUT: float = 15.0


def resolve_api_url() -> str:
    """Return the backend URL, preferring the environment."""
    return os.environ.get("HULUNOTE_API_URL", DEFAULT_API_URL).rstrip("/")


def resolve_data_directory() -> Path:
    """Return the drafts directory: env override, first existing candidate, or the first default."""
    env = os.environ.get("HULUNOTE_DATA_DIR")
    if env:
        return Path(env).expanduser()
    for candidate in DATA_DIRECTORIES:
        if candidate.is_dir():
            return candidate
    return DATA_DIRECTORIES[0]
