"""Host adapter backed by a YAML snapshot of the job tree.

The snapshot lists folders, jobs and their build history (newest build
first or in any order, builds are sorted by number), and optionally the
failure cause catalog. A missing ``failure-causes`` key means no failure
classification is available on the host.
"""

from __future__ import annotations

import io
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, TextIO, Union

import pydantic
import yaml

from reincarnate.host.types import FailureCause, RestartCause, Result, iter_jobs
from reincarnate.model import LocalConfig


class SnapshotModel(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(
        extra="forbid", frozen=True, populate_by_name=True
    )


class BuildRecord(SnapshotModel):
    number: int
    result: Optional[Result] = None
    log: Optional[str] = None
    log_file: Optional[Path] = pydantic.Field(None, alias="log-file")
    scm_changes: bool = pydantic.Field(False, alias="scm-changes")
    config_changed: Optional[bool] = pydantic.Field(None, alias="config-changed")
    failure_causes: List[str] = pydantic.Field(
        default_factory=list, alias="failure-causes"
    )
    restart_cause: Optional[str] = pydantic.Field(None, alias="restart-cause")
    built_on: Optional[str] = pydantic.Field(None, alias="built-on")

    @pydantic.field_validator("result", mode="before")
    @classmethod
    def _result_from_name(cls, value):
        if isinstance(value, str):
            try:
                return Result[value.upper()]
            except KeyError:
                raise ValueError(f"Unknown build result {value}")
        return value


class JobRecord(SnapshotModel):
    name: str
    buildable: bool = True
    disabled: bool = False
    building: bool = False
    in_queue: bool = pydantic.Field(False, alias="in-queue")
    local: Optional[LocalConfig] = None
    builds: List[BuildRecord] = pydantic.Field(default_factory=list)


class FolderRecord(SnapshotModel):
    name: str
    jobs: List[JobRecord] = pydantic.Field(default_factory=list)
    folders: List["FolderRecord"] = pydantic.Field(default_factory=list)


class FailureCauseRecord(SnapshotModel):
    id: str
    name: str


class Snapshot(SnapshotModel):
    jobs: List[JobRecord] = pydantic.Field(default_factory=list)
    folders: List[FolderRecord] = pydantic.Field(default_factory=list)
    failure_causes: Optional[List[FailureCauseRecord]] = pydantic.Field(
        None, alias="failure-causes"
    )


class SnapshotBuild:
    def __init__(
        self,
        record: BuildRecord,
        previous: Optional["SnapshotBuild"],
        base_dir: Optional[Path] = None,
    ):
        self.record = record
        self.number = record.number
        self.result = record.result
        self.built_on = record.built_on
        self._previous = previous
        self._base_dir = base_dir

    def previous_build(self) -> Optional["SnapshotBuild"]:
        return self._previous

    def open_log(self) -> TextIO:
        if self.record.log is not None:
            return io.StringIO(self.record.log)
        if self.record.log_file is not None:
            path = self.record.log_file
            if self._base_dir is not None and not path.is_absolute():
                path = self._base_dir / path
            return open(path, encoding="utf-8", errors="replace")
        raise FileNotFoundError(f"No log recorded for build #{self.number}")

    def has_scm_changes(self) -> bool:
        return self.record.scm_changes

    def has_config_change(self) -> Optional[bool]:
        return self.record.config_changed

    def failure_cause_ids(self) -> Sequence[str]:
        return self.record.failure_causes

    def restart_cause(self) -> Optional[RestartCause]:
        if self.record.restart_cause is None:
            return None
        return RestartCause(self.record.restart_cause)

    def __repr__(self) -> str:
        return f"SnapshotBuild(#{self.number}, {self.result})"


class SnapshotJob:
    def __init__(self, record: JobRecord, full_name: str, base_dir: Optional[Path] = None):
        self.record = record
        self.full_name = full_name
        self.buildable = record.buildable
        self.disabled = record.disabled
        self.building = record.building
        self.in_queue = record.in_queue
        self.local_config = record.local

        previous: Optional[SnapshotBuild] = None
        for build in sorted(record.builds, key=lambda b: b.number):
            previous = SnapshotBuild(build, previous, base_dir=base_dir)
        self._last_build = previous

    def last_build(self) -> Optional[SnapshotBuild]:
        return self._last_build

    def __repr__(self) -> str:
        return f"SnapshotJob({self.full_name})"


class SnapshotFolder:
    def __init__(
        self, record: FolderRecord, full_name: str, base_dir: Optional[Path] = None
    ):
        self.record = record
        self.full_name = full_name
        self._base_dir = base_dir

    def children(self) -> Iterable[Union["SnapshotFolder", SnapshotJob]]:
        for folder in self.record.folders:
            yield SnapshotFolder(
                folder, f"{self.full_name}/{folder.name}", base_dir=self._base_dir
            )
        for job in self.record.jobs:
            yield SnapshotJob(job, f"{self.full_name}/{job.name}", base_dir=self._base_dir)


class SnapshotCatalog:
    def __init__(self, causes: Iterable[FailureCauseRecord]):
        self._causes: Dict[str, FailureCause] = {
            c.id: FailureCause(id=c.id, name=c.name) for c in causes
        }

    def get(self, cause_id: str) -> Optional[FailureCause]:
        return self._causes.get(cause_id)

    def __len__(self) -> int:
        return len(self._causes)


class SnapshotHost:
    def __init__(self, snapshot: Snapshot, base_dir: Optional[Path] = None):
        self.snapshot = snapshot
        self.base_dir = base_dir
        self._jobs = [SnapshotJob(j, j.name, base_dir=base_dir) for j in snapshot.jobs]
        self._folders = [
            SnapshotFolder(f, f.name, base_dir=base_dir) for f in snapshot.folders
        ]
        if snapshot.failure_causes is None:
            self.catalog: Optional[SnapshotCatalog] = None
        else:
            self.catalog = SnapshotCatalog(snapshot.failure_causes)

    @property
    def registry(self) -> "SnapshotHost":
        return self

    def items(self) -> Iterable[Union[SnapshotFolder, SnapshotJob]]:
        yield from self._folders
        yield from self._jobs

    def find_job(self, full_name: str) -> Optional[SnapshotJob]:
        for job in iter_jobs(self):
            if job.full_name == full_name:
                return job
        return None

    @classmethod
    def from_data(cls, data, base_dir: Optional[Path] = None) -> "SnapshotHost":
        snapshot = Snapshot() if data is None else Snapshot.model_validate(data)
        return cls(snapshot, base_dir=base_dir)


def load_snapshot(path: Path) -> SnapshotHost:
    path = Path(path)
    with open(path) as fh:
        data = yaml.safe_load(fh)
    return SnapshotHost.from_data(data, base_dir=path.parent)
