"""UTC timezone enforcement.

Importing this module pins the process to UTC and provides the naive-UTC
clock used for every persisted timestamp.
"""

import os
from datetime import datetime, timezone

os.environ["TZ"] = "UTC"


def utcnow() -> datetime:
    """Current time as a naive UTC datetime (the format stored in the database)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
