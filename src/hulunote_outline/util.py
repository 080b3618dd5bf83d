"""Small helpers shared across the outline core."""

import random
import time

from hulunote_outline.config import TMP_ID_PREFIX


def now_ms() -> int:
    return int(time.time() * 1000)


def make_tmp_id() -> str:
    """Id for a node created locally and not yet known to the backend."""
    return f"{TMP_ID_PREFIX}{now_ms()}-{random.randrange(10**9)}"


def is_tmp_id(node_id: str) -> bool:
    return node_id.startswith(TMP_ID_PREFIX)
