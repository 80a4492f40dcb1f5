from __future__ import annotations

from datetime import datetime
import logging
import threading
import time
from typing import Dict, List, Optional, Set, Tuple

from reincarnate.engine.classifier import is_candidate
from reincarnate.engine.depth import under_depth_limit
from reincarnate.engine.executor import RestartExecutor
from reincarnate.engine.matcher import Matcher, try_resolve
from reincarnate.engine.summary import format_summary
from reincarnate.engine.timegate import (
    InvalidSchedule,
    is_due,
    schedule_fires,
    to_tick,
)
from reincarnate.engine.types import (
    CRON_RESTART,
    NO_DIFFERENCE_REASON,
    CycleResult,
    RestartCategory,
    RestartDecision,
)
from reincarnate.engine.unchanged import qualifies_unchanged
from reincarnate.host.types import FailureCauseCatalog, Job, JobRegistry, iter_jobs
from reincarnate.metric import (
    error_counter,
    jobs_seen,
    observe_cycle,
    restart_blocked_counter,
)
from reincarnate.model import FailureCauseTrigger, RestartConfig, TriggerBase

logger = logging.getLogger("reincarnate")
summary_logger = logging.getLogger("reincarnate.summary")


class RestartScheduler:
    """Cron path: decides and issues restarts once per tick.

    Cycles are serialised by a lock which also guards configuration swaps, so
    a cycle always works on the snapshot it started with.
    """

    def __init__(
        self,
        *,
        registry: JobRegistry,
        executor: RestartExecutor,
        config: Optional[RestartConfig],
        catalog: Optional[FailureCauseCatalog] = None,
        quiet_period: int = 0,
    ):
        self.registry = registry
        self.executor = executor
        self.catalog = catalog
        self.quiet_period = quiet_period
        self._config = config
        self._lock = threading.Lock()

    @property
    def config(self) -> Optional[RestartConfig]:
        return self._config

    def swap_config(self, config: Optional[RestartConfig]) -> None:
        with self._lock:
            self._config = config

    def swap_host(
        self,
        *,
        config: Optional[RestartConfig],
        registry: JobRegistry,
        catalog: Optional[FailureCauseCatalog],
    ) -> None:
        with self._lock:
            self._config = config
            self.registry = registry
            self.catalog = catalog

    def run_cycle(self, now: datetime) -> CycleResult:
        with self._lock:
            started = time.monotonic()
            result = self._run_cycle(self._config, to_tick(now))
            observe_cycle(
                result="skipped" if result.skipped else "ok",
                seconds=time.monotonic() - started,
                restarts=len(result.restarted),
            )
        if result.skipped is None:
            summary_logger.info("%s", format_summary(result))
        return result

    def _run_cycle(self, config: Optional[RestartConfig], tick: datetime) -> CycleResult:
        if config is None:
            logger.warning("No configuration available, nothing to do")
            return CycleResult(tick=tick, skipped="no configuration")
        if not config.active_cron:
            logger.debug("Cron restart inactive")
            return CycleResult(tick=tick, skipped="cron restart inactive")

        catalog = self.catalog
        jobs = list(iter_jobs(self.registry))
        jobs_seen.set(len(jobs))
        logger.debug("Cycle start tick=%s jobs=%d", tick, len(jobs))

        errors: List[Tuple[str, str]] = []
        hits, scheduled = self._collect_trigger_hits(config, jobs, tick, catalog, errors)
        unchanged = self._collect_unchanged(config, jobs, tick, scheduled, errors)

        decisions: List[RestartDecision] = []
        restarted: List[str] = []
        blocked: List[str] = []

        for trigger, job in hits:
            decision = RestartDecision(
                job_name=job.full_name,
                reason=trigger.describe(),
                category=RestartCategory.CRON_TRIGGER,
                quiet_period=self.quiet_period,
                remediation=trigger.remediation,
            )
            max_depth = config.effective_max_depth(job.local_config)
            try:
                allowed = under_depth_limit(job.last_build(), max_depth, CRON_RESTART)
            except Exception as e:  # noqa: BLE001
                self._record_error(errors, job, "depth_guard", e)
                continue
            if not allowed:
                restart_blocked_counter.labels(category=decision.category.value).inc()
                logger.info(
                    "Restart blocked by depth guard job=%s max_depth=%d",
                    job.full_name,
                    max_depth,
                )
                blocked.append(job.full_name)
                continue
            self._execute(job, decision, decisions, restarted, errors)

        # the unchanged branch is deliberately not depth guarded on the cron path
        for job in unchanged:
            decision = RestartDecision(
                job_name=job.full_name,
                reason=NO_DIFFERENCE_REASON,
                category=RestartCategory.UNCHANGED,
                quiet_period=self.quiet_period,
            )
            self._execute(job, decision, decisions, restarted, errors)

        return CycleResult(
            tick=tick,
            decisions=tuple(decisions),
            restarted=tuple(restarted),
            blocked=tuple(blocked),
            errors=tuple(errors),
            jobs_seen=len(jobs),
        )

    def _collect_trigger_hits(
        self,
        config: RestartConfig,
        jobs: List[Job],
        tick: datetime,
        catalog: Optional[FailureCauseCatalog],
        errors: List[Tuple[str, str]],
    ) -> Tuple[List[Tuple[TriggerBase, Job]], Set[str]]:
        hits: List[Tuple[TriggerBase, Job]] = []
        scheduled: Set[str] = set()
        matchers: Dict[int, Optional[Matcher]] = {}

        # trigger order matters: the first trigger to claim a job wins
        for index, trigger in enumerate(config.triggers):
            if isinstance(trigger, FailureCauseTrigger) and catalog is None:
                logger.debug(
                    "Failure cause catalog unavailable, skipping trigger=%s", trigger
                )
                continue
            if not is_due(trigger, tick, config.schedule):
                continue
            if index not in matchers:
                try:
                    matchers[index] = try_resolve(trigger, catalog)
                except Exception:  # noqa: BLE001
                    error_counter.labels(context="resolve").inc()
                    logger.error(
                        "Trigger resolution failed trigger=%s", trigger, exc_info=True
                    )
                    matchers[index] = None
            matcher = matchers[index]
            if matcher is None:
                continue

            for job in jobs:
                if job.full_name in scheduled:
                    continue
                try:
                    if not is_candidate(job):
                        continue
                    if not matcher(job.last_build()):
                        continue
                except Exception as e:  # noqa: BLE001
                    self._record_error(errors, job, "match", e, trigger=trigger)
                    continue
                logger.debug("Trigger hit trigger=%s job=%s", trigger, job.full_name)
                hits.append((trigger, job))
                scheduled.add(job.full_name)

        return hits, scheduled

    def _collect_unchanged(
        self,
        config: RestartConfig,
        jobs: List[Job],
        tick: datetime,
        scheduled: Set[str],
        errors: List[Tuple[str, str]],
    ) -> List[Job]:
        if not config.restart_unchanged:
            return []
        try:
            if not schedule_fires(config.schedule, tick):
                return []
        except InvalidSchedule as e:
            logger.warning("Skipping unchanged restart pass: %s", e)
            return []

        unchanged: List[Job] = []
        for job in jobs:
            if job.full_name in scheduled:
                continue
            try:
                if not is_candidate(job) or not qualifies_unchanged(job):
                    continue
            except Exception as e:  # noqa: BLE001
                self._record_error(errors, job, "unchanged", e)
                continue
            logger.debug("Unchanged failure job=%s", job.full_name)
            unchanged.append(job)
            scheduled.add(job.full_name)
        return unchanged

    def _execute(
        self,
        job: Job,
        decision: RestartDecision,
        decisions: List[RestartDecision],
        restarted: List[str],
        errors: List[Tuple[str, str]],
    ) -> None:
        try:
            accepted = self.executor.execute(job, decision)
        except Exception as e:  # noqa: BLE001
            self._record_error(errors, job, "restart", e)
            return
        decisions.append(decision)
        if accepted:
            restarted.append(job.full_name)

    @staticmethod
    def _record_error(
        errors: List[Tuple[str, str]],
        job: Job,
        context: str,
        exc: Exception,
        trigger: Optional[TriggerBase] = None,
    ) -> None:
        error_counter.labels(context=context).inc()
        logger.error(
            "Cycle step failed context=%s job=%s trigger=%s",
            context,
            job.full_name,
            trigger,
            exc_info=True,
        )
        errors.append((job.full_name, f"{context}: {exc}"))
