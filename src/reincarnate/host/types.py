from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import (
    TYPE_CHECKING,
    Iterable,
    Iterator,
    Optional,
    Protocol,
    Sequence,
    TextIO,
    Union,
    runtime_checkable,
)

if TYPE_CHECKING:
    from reincarnate.model import LocalConfig


RESTART_MARKER = "[reincarnate]"


class Result(IntEnum):
    """Build results, ordered from best to worst."""

    SUCCESS = 0
    UNSTABLE = 1
    FAILURE = 2
    NOT_BUILT = 3
    ABORTED = 4

    def is_worse_or_equal_to(self, other: "Result") -> bool:
        return self >= other

    def is_better_than(self, other: "Result") -> bool:
        return self < other


@dataclass(frozen=True)
class RestartCause:
    """Annotation attached to every build this service schedules."""

    description: str

    @property
    def short_description(self) -> str:
        return f"{RESTART_MARKER} {self.description}"

    def __str__(self) -> str:
        return self.short_description


@dataclass(frozen=True)
class FailureCause:
    id: str
    name: str


class ScriptExecutionError(Exception):
    script: str
    node: Optional[str]

    def __init__(self, *args, script: str, node: Optional[str] = None):
        self.script = script
        self.node = node
        super().__init__(*args)


class Build(Protocol):
    number: int
    result: Optional[Result]
    built_on: Optional[str]

    def previous_build(self) -> Optional["Build"]: ...

    def open_log(self) -> TextIO:
        """Open the console log for streaming; raises ``OSError`` if unreadable."""
        ...

    def has_scm_changes(self) -> bool: ...

    def has_config_change(self) -> Optional[bool]:
        """``None`` when no config history is recorded for this build."""
        ...

    def failure_cause_ids(self) -> Sequence[str]: ...

    def restart_cause(self) -> Optional[RestartCause]: ...


class Job(Protocol):
    full_name: str
    buildable: bool
    disabled: bool
    building: bool
    in_queue: bool
    local_config: Optional["LocalConfig"]

    def last_build(self) -> Optional[Build]: ...


@runtime_checkable
class Folder(Protocol):
    full_name: str

    def children(self) -> Iterable[Union["Folder", Job]]: ...


class JobRegistry(Protocol):
    def items(self) -> Iterable[Union[Folder, Job]]: ...


class FailureCauseCatalog(Protocol):
    def get(self, cause_id: str) -> Optional[FailureCause]: ...


class JobControl(Protocol):
    def schedule_build(self, job: Job, quiet_period: int, cause: RestartCause) -> bool:
        ...


class ScriptRunner(Protocol):
    def execute(
        self, script: str, *, node: Optional[str] = None, node_name: Optional[str] = None
    ) -> str:
        """Run ``script`` on ``node``, or on the controller when ``node`` is None.

        ``node_name`` is passed to controller scripts so they can act on the
        agent the failed build ran on.
        """
        ...


def iter_jobs(registry: JobRegistry) -> Iterator[Job]:
    """Yield every job in the registry, descending into folders in order."""
    stack = [iter(registry.items())]
    while stack:
        try:
            item = next(stack[-1])
        except StopIteration:
            stack.pop()
            continue
        if isinstance(item, Folder):
            stack.append(iter(item.children()))
            continue
        yield item
