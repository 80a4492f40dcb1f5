from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

from reincarnate.model import Remediation

CRON_RESTART = "Cron restart"
AFTERBUILD_RESTART = "Afterbuild restart"

NO_DIFFERENCE_REASON = "No difference between last two builds"
LOCAL_RESTART_REASON = "Locally configured project."


class RestartCategory(str, Enum):
    CRON_TRIGGER = "cron-trigger"
    UNCHANGED = "unchanged"
    LOCAL = "locally-triggered"
    AFTERBUILD = "after-build"

    @property
    def path_label(self) -> str:
        if self in (RestartCategory.CRON_TRIGGER, RestartCategory.UNCHANGED):
            return CRON_RESTART
        return AFTERBUILD_RESTART


@dataclass(frozen=True)
class RestartDecision:
    job_name: str
    reason: str
    category: RestartCategory
    quiet_period: int = 0
    remediation: Optional[Remediation] = None

    @property
    def cause_text(self) -> str:
        return f"({self.category.path_label}) {self.reason}"


@dataclass(frozen=True)
class CycleResult:
    tick: datetime
    decisions: Tuple[RestartDecision, ...] = ()
    restarted: Tuple[str, ...] = ()
    blocked: Tuple[str, ...] = ()
    errors: Tuple[Tuple[str, str], ...] = ()
    jobs_seen: int = 0
    skipped: Optional[str] = None

    @property
    def scheduled(self) -> frozenset:
        return frozenset(d.job_name for d in self.decisions)
