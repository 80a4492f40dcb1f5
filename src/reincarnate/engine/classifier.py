from __future__ import annotations

from typing import Optional

from reincarnate.host.types import Job, Result


def is_failed(result: Optional[Result]) -> bool:
    return result is not None and result.is_worse_or_equal_to(Result.FAILURE)


def is_candidate(job: Optional[Job]) -> bool:
    if job is None:
        return False
    if not job.buildable or job.disabled:
        return False
    if job.local_config is not None and job.local_config.deactivated:
        return False
    if job.building or job.in_queue:
        return False
    last_build = job.last_build()
    return last_build is not None and is_failed(last_build.result)
