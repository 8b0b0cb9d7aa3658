"""Atomic file publish: write to a temp file, then rename into place.

Readers of the final path see either the previous complete version or the
new complete version, never a partial write. The temp file lives in the same
directory so the rename never crosses a filesystem boundary.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


def atomic_publish(path: str | Path, content: str | bytes) -> Path:
    """Atomically replace ``path`` with ``content``. Returns the final path."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)

    data = content.encode("utf-8") if isinstance(content, str) else content
    fd, temp_name = tempfile.mkstemp(
        prefix=f".{target.name}.", suffix=".tmp", dir=target.parent
    )
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        os.chmod(temp_name, 0o644)
        os.replace(temp_name, target)
    except BaseException:
        Path(temp_name).unlink(missing_ok=True)
        raise

    logger.debug("Published %s (%d bytes)", target, len(data))
    return target
