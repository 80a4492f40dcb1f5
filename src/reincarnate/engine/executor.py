from __future__ import annotations

import logging
from typing import Optional

from reincarnate.engine.types import RestartDecision
from reincarnate.host.types import (
    Job,
    JobControl,
    RestartCause,
    ScriptExecutionError,
    ScriptRunner,
)
from reincarnate.metric import remediation_error_counter, restart_counter
from reincarnate.model import Remediation

logger = logging.getLogger("reincarnate")


class RestartExecutor:
    def __init__(
        self,
        *,
        control: JobControl,
        scripts: Optional[ScriptRunner] = None,
        dry_run: bool = False,
    ):
        self.control = control
        self.scripts = scripts
        self.dry_run = dry_run

    def execute(self, job: Job, decision: RestartDecision) -> bool:
        cause = RestartCause(decision.cause_text)
        if self.dry_run:
            logger.info(
                "Dry run, not restarting job=%s cause=%s", job.full_name, cause
            )
            return False

        if decision.remediation is not None:
            self._remediate(job, decision.remediation)

        accepted = self.control.schedule_build(job, decision.quiet_period, cause)
        if accepted:
            restart_counter.labels(category=decision.category.value).inc()
            logger.info(
                "Restarting job=%s quiet_period=%d cause=%s",
                job.full_name,
                decision.quiet_period,
                cause,
            )
        else:
            logger.warning(
                "Restart request not accepted job=%s cause=%s", job.full_name, cause
            )
        return accepted

    def _remediate(self, job: Job, remediation: Remediation) -> None:
        if self.scripts is None:
            logger.warning(
                "Remediation configured but no script runner available job=%s",
                job.full_name,
            )
            return

        last_build = job.last_build()
        node = last_build.built_on if last_build is not None else None

        if remediation.node_script is not None:
            if node is None:
                logger.warning(
                    "Cannot run node script, last build has no node job=%s",
                    job.full_name,
                )
            else:
                logger.debug("Executing node script job=%s node=%s", job.full_name, node)
                self._run(job, remediation.node_script, node=node, target="node")

        if remediation.controller_script is not None:
            logger.debug("Executing controller script job=%s", job.full_name)
            self._run(
                job,
                remediation.controller_script,
                node=None,
                node_name=node,
                target="controller",
            )

    def _run(
        self,
        job: Job,
        script: str,
        *,
        node: Optional[str],
        target: str,
        node_name: Optional[str] = None,
    ) -> None:
        try:
            self.scripts.execute(script, node=node, node_name=node_name)
        except (ScriptExecutionError, OSError):
            remediation_error_counter.labels(target=target).inc()
            logger.warning(
                "Problem executing %s script job=%s node=%s script=%r",
                target,
                job.full_name,
                node,
                script,
                exc_info=True,
            )
