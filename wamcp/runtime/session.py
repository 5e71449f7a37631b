"""Session artifact inspection."""

from __future__ import annotations

import time
from datetime import datetime
from pathlib import Path

from wamcp.runtime.models import SessionInfo

SECONDS_PER_DAY = 24 * 60 * 60
DEFAULT_EXPIRY_DAYS = 20.0


def inspect_session(
    path: Path,
    *,
    now: datetime | None = None,
    expiry_days: float = DEFAULT_EXPIRY_DAYS,
) -> SessionInfo:
    """Read existence, modification time and size of ``path``.

    Never writes, parses or locks the file. A file that vanishes between the
    existence check and ``stat`` is reported as missing. Age is measured on
    epoch seconds, so DST changes inside the window do not skew it;
    ``modified_at`` is local time for display only.
    """
    try:
        stat = path.stat()
    except OSError:
        return SessionInfo(path=path, exists=False, expiry_days=expiry_days)

    current_ts = now.timestamp() if now is not None else time.time()
    age_days = (current_ts - stat.st_mtime) / SECONDS_PER_DAY
    return SessionInfo(
        path=path,
        exists=True,
        modified_at=datetime.fromtimestamp(stat.st_mtime),
        age_days=age_days,
        size_bytes=stat.st_size,
        expiry_days=expiry_days,
    )
