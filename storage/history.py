"""
Event-history persistence for issuance instances.

Each orchestration instance owns exactly one record:

  {
    "instance_id": "...",
    "input":   CertificateRequest,
    "bounds":  {DNS_PROPAGATION_MAX_SECONDS: ..., ...},
    "status":  "running" | "completed" | "failed",
    "events":  [ {seq, kind, name, ...}, ... ],
    "failure": {"step": ..., "reason": ...} | null
  }

The journal appends to ``events`` and saves the whole record after every
change.  Records are keyed by instance id, so concurrent instances never
touch the same record.  ``bounds`` holds the timeout and backoff settings
in force when the instance was created; replay reads them from here, never
from the live configuration.
"""
from __future__ import annotations

import copy
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

from typing_extensions import TypedDict

from agent.state import CertificateRequest
from storage.atomic import atomic_write_json, read_json

logger = logging.getLogger(__name__)

_SAFE_ID = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


class InstanceRecord(TypedDict):
    instance_id: str
    input: CertificateRequest
    bounds: Dict[str, int]            # Wait bounds in force when the instance started
    status: str
    events: List[Dict[str, Any]]
    failure: Optional[Dict[str, str]]


def new_record(
    instance_id: str,
    request: CertificateRequest,
    bounds: Optional[Dict[str, int]] = None,
) -> InstanceRecord:
    return {
        "instance_id": instance_id,
        "input": request,
        "bounds": dict(bounds or {}),
        "status": "running",
        "events": [],
        "failure": None,
    }


class HistoryStore:
    """Base class; subclasses persist InstanceRecords by instance id."""

    def load(self, instance_id: str) -> Optional[InstanceRecord]:
        raise NotImplementedError

    def save(self, record: InstanceRecord) -> None:
        raise NotImplementedError

    def list_instances(self) -> List[str]:
        raise NotImplementedError


class InMemoryHistoryStore(HistoryStore):
    """
    Process-local store.  Records are deep-copied on the way in and out so
    callers cannot mutate what has been "persisted".
    """

    def __init__(self) -> None:
        self._records: Dict[str, InstanceRecord] = {}

    def load(self, instance_id: str) -> Optional[InstanceRecord]:
        record = self._records.get(instance_id)
        return copy.deepcopy(record) if record is not None else None

    def save(self, record: InstanceRecord) -> None:
        self._records[record["instance_id"]] = copy.deepcopy(record)

    def list_instances(self) -> List[str]:
        return sorted(self._records)


class FileHistoryStore(HistoryStore):
    """One JSON file per instance under ``root``: ``<root>/<instance_id>.json``."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def _path(self, instance_id: str) -> Path:
        if not _SAFE_ID.match(instance_id):
            raise ValueError(f"Invalid instance id {instance_id!r}")
        return self.root / f"{instance_id}.json"

    def load(self, instance_id: str) -> Optional[InstanceRecord]:
        path = self._path(instance_id)
        if not path.exists():
            return None
        return read_json(path)

    def save(self, record: InstanceRecord) -> None:
        path = self._path(record["instance_id"])
        atomic_write_json(path, record)
        logger.debug(
            "Saved history for %s (%d events)", record["instance_id"], len(record["events"])
        )

    def list_instances(self) -> List[str]:
        if not self.root.exists():
            return []
        return sorted(p.stem for p in self.root.glob("*.json"))
