from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
import json
import logging
from pathlib import Path
import threading
from typing import List, Optional

from reincarnate.host.types import Job, RestartCause

logger = logging.getLogger("reincarnate")


@dataclass(frozen=True)
class RestartRequest:
    job: str
    quiet_period: int
    cause: str
    requested_at: str


@dataclass(frozen=True)
class ScriptRequest:
    script: str
    node: Optional[str]
    node_name: Optional[str]
    requested_at: str


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class Outbox:
    """Records restart and script requests instead of sending them to a server.

    With a ``path`` every request is also appended to it as a JSON line, for a
    separate process to pick up.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path is not None else None
        self.restarts: List[RestartRequest] = []
        self.scripts: List[ScriptRequest] = []
        self._lock = threading.Lock()

    def schedule_build(self, job: Job, quiet_period: int, cause: RestartCause) -> bool:
        request = RestartRequest(
            job=job.full_name,
            quiet_period=quiet_period,
            cause=cause.short_description,
            requested_at=utcnow_iso(),
        )
        with self._lock:
            self.restarts.append(request)
            self._append("restart", asdict(request))
        return True

    def execute(
        self, script: str, *, node: Optional[str] = None, node_name: Optional[str] = None
    ) -> str:
        request = ScriptRequest(
            script=script, node=node, node_name=node_name, requested_at=utcnow_iso()
        )
        with self._lock:
            self.scripts.append(request)
            self._append("script", asdict(request))
        return ""

    def _append(self, kind: str, payload: dict) -> None:
        if self.path is None:
            return
        logger.debug("Appending %s request to %s", kind, self.path)
        with open(self.path, "a") as fh:
            fh.write(json.dumps({"type": kind, **payload}, sort_keys=True) + "\n")
