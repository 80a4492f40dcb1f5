from __future__ import annotations

import logging
from typing import Optional

from reincarnate.engine.depth import under_depth_limit
from reincarnate.engine.executor import RestartExecutor
from reincarnate.engine.matcher import try_resolve
from reincarnate.engine.types import (
    AFTERBUILD_RESTART,
    LOCAL_RESTART_REASON,
    NO_DIFFERENCE_REASON,
    RestartCategory,
    RestartDecision,
)
from reincarnate.engine.unchanged import is_unchanged_failure
from reincarnate.host.types import Build, FailureCauseCatalog, Job, Result
from reincarnate.metric import error_counter, restart_blocked_counter
from reincarnate.model import FailureCauseTrigger, RestartConfig

logger = logging.getLogger("reincarnate")


class AfterbuildHandler:
    """Event path: considers a restart once for every completed build.

    Holds no per-build state, so it may run concurrently with itself and with
    a cron cycle.
    """

    def __init__(
        self,
        *,
        executor: RestartExecutor,
        config: Optional[RestartConfig],
        catalog: Optional[FailureCauseCatalog] = None,
        quiet_period: int = 300,
    ):
        self.executor = executor
        self.catalog = catalog
        self.quiet_period = quiet_period
        self._config = config

    @property
    def config(self) -> Optional[RestartConfig]:
        return self._config

    def swap_config(self, config: Optional[RestartConfig]) -> None:
        self._config = config

    def on_completed(
        self, job: Optional[Job], build: Optional[Build]
    ) -> Optional[RestartDecision]:
        if job is None or build is None:
            return None
        try:
            return self._on_completed(job, build)
        except Exception:  # noqa: BLE001
            error_counter.labels(context="afterbuild").inc()
            logger.error(
                "After-build handling failed job=%s build=%s",
                job.full_name,
                build.number,
                exc_info=True,
            )
            return None

    def _on_completed(self, job: Job, build: Build) -> Optional[RestartDecision]:
        if build.result is None or build.result == Result.SUCCESS:
            return None

        config = self._config
        if config is None:
            logger.debug("No configuration available job=%s", job.full_name)
            return None

        local = job.local_config
        if not config.afterbuild_enabled(local):
            return None
        max_depth = config.effective_max_depth(local)

        if local is not None and local.override and local.restart_unconditionally:
            decision = self._decision(job, LOCAL_RESTART_REASON, RestartCategory.LOCAL)
            return self._restart(job, build, decision, max_depth)

        catalog = self.catalog
        for trigger in config.triggers:
            if isinstance(trigger, FailureCauseTrigger) and catalog is None:
                continue
            matcher = try_resolve(trigger, catalog)
            if matcher is None or not matcher(build):
                continue
            logger.debug(
                "After-build trigger hit trigger=%s job=%s build=%s",
                trigger,
                job.full_name,
                build.number,
            )
            decision = self._decision(
                job,
                trigger.describe(),
                RestartCategory.AFTERBUILD,
                remediation=trigger.remediation,
            )
            # the guard only depends on the build history, so a blocked hit
            # blocks every later one as well
            return self._restart(job, build, decision, max_depth)

        if config.restart_unchanged and is_unchanged_failure(build):
            decision = self._decision(
                job, NO_DIFFERENCE_REASON, RestartCategory.AFTERBUILD
            )
            return self._restart(job, build, decision, max_depth)

        return None

    def _decision(
        self, job: Job, reason: str, category: RestartCategory, remediation=None
    ) -> RestartDecision:
        return RestartDecision(
            job_name=job.full_name,
            reason=reason,
            category=category,
            quiet_period=self.quiet_period,
            remediation=remediation,
        )

    def _restart(
        self, job: Job, build: Build, decision: RestartDecision, max_depth: int
    ) -> Optional[RestartDecision]:
        if not under_depth_limit(build, max_depth, AFTERBUILD_RESTART):
            restart_blocked_counter.labels(category=decision.category.value).inc()
            logger.info(
                "After-build restart blocked by depth guard job=%s max_depth=%d",
                job.full_name,
                max_depth,
            )
            return None
        self.executor.execute(job, decision)
        return decision
