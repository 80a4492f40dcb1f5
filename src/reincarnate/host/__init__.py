from reincarnate.host.outbox import Outbox, RestartRequest, ScriptRequest
from reincarnate.host.snapshot import SnapshotHost, load_snapshot
from reincarnate.host.types import (
    RESTART_MARKER,
    FailureCause,
    RestartCause,
    Result,
    ScriptExecutionError,
    iter_jobs,
)

__all__ = [
    "FailureCause",
    "Outbox",
    "RESTART_MARKER",
    "RestartCause",
    "RestartRequest",
    "Result",
    "ScriptExecutionError",
    "ScriptRequest",
    "SnapshotHost",
    "iter_jobs",
    "load_snapshot",
]
