from __future__ import annotations

from typing import Optional

from reincarnate.engine.classifier import is_failed
from reincarnate.host.types import Build, Job, Result


def is_unchanged_failure(build: Optional[Build]) -> bool:
    """A first failure after a good build, with nothing changed in between.

    SCM changes are read from the failed build. The config history signal is
    only consulted when the build reports one.
    """
    if build is None or not is_failed(build.result):
        return False
    previous = build.previous_build()
    if previous is None or previous.result is None:
        return False
    if not previous.result.is_better_than(Result.FAILURE):
        return False
    if build.has_scm_changes():
        return False
    return build.has_config_change() is not True


def qualifies_unchanged(job: Optional[Job]) -> bool:
    if job is None:
        return False
    return is_unchanged_failure(job.last_build())
