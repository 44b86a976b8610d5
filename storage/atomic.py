"""
Atomic JSON writes for the event-history store.

A history record is rewritten after every recorded event, so a crash in the
middle of a write must never leave a truncated record behind:
  1. Serialize and write to a temp file in the target directory
  2. fsync
  3. os.replace over the destination (atomic on POSIX)
"""
from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any


def atomic_write_json(path: Path, payload: Any) -> None:
    """
    Serialize payload as indented JSON and write it atomically.

    Serialization happens before any file is created, so an unserializable
    payload leaves the directory untouched.
    """
    text = json.dumps(payload, indent=2, sort_keys=True)
    path.parent.mkdir(parents=True, exist_ok=True)

    # Same directory as the target so the rename never crosses filesystems
    fd, temp_path = tempfile.mkstemp(
        prefix=f".{path.name}.",
        suffix=".tmp",
        dir=str(path.parent),
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, path)
    except BaseException:
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise


def read_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))
