"""Clock helper. All entity and cache timestamps are epoch milliseconds."""

import time


def now_ms() -> int:
    """Return the current time as integer milliseconds since the epoch."""
    return int(time.time() * 1000)
