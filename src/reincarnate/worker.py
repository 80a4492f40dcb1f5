from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from prometheus_client import push_to_gateway

from reincarnate.config import SETTINGS, Settings
from reincarnate.engine import AfterbuildHandler, RestartExecutor, RestartScheduler
from reincarnate.engine.types import CycleResult
from reincarnate.host import Outbox, SnapshotHost, iter_jobs, load_snapshot
from reincarnate.host.types import Build, Job
from reincarnate.metric import error_counter, push_registry
from reincarnate.model import InvalidConfig, RestartConfig, load_config

logger = logging.getLogger("reincarnate")


def detect_completed_builds(
    seen: Dict[str, int], host: SnapshotHost
) -> Tuple[List[Tuple[Job, Build]], Dict[str, int]]:
    """Find builds that finished since the last snapshot.

    Jobs not present in ``seen`` are only recorded, so that the first
    snapshot does not replay history.
    """
    completed: List[Tuple[Job, Build]] = []
    latest: Dict[str, int] = {}
    for job in iter_jobs(host.registry):
        build = job.last_build()
        if build is None or build.result is None:
            if job.full_name in seen:
                latest[job.full_name] = seen[job.full_name]
            continue
        latest[job.full_name] = build.number
        previous = seen.get(job.full_name)
        if previous is not None and build.number > previous:
            completed.append((job, build))
    return completed, latest


def seconds_to_next_tick(now: datetime, tick_seconds: float) -> float:
    if tick_seconds != 60:
        return tick_seconds
    upcoming = now.replace(second=0, microsecond=0) + timedelta(minutes=1)
    return (upcoming - now).total_seconds()


class Worker:
    def __init__(
        self,
        *,
        config_path: Path,
        snapshot_path: Path,
        outbox: Outbox,
        settings: Settings = SETTINGS,
    ):
        self.config_path = Path(config_path)
        self.snapshot_path = Path(snapshot_path)
        self.outbox = outbox
        self.settings = settings
        self.executor = RestartExecutor(
            control=outbox, scripts=outbox, dry_run=settings.DRY_RUN
        )
        self.config: Optional[RestartConfig] = None
        self.host: Optional[SnapshotHost] = None
        self.scheduler: Optional[RestartScheduler] = None
        self.afterbuild = AfterbuildHandler(
            executor=self.executor,
            config=None,
            quiet_period=settings.AFTERBUILD_QUIET_PERIOD,
        )
        self._seen: Optional[Dict[str, int]] = None

    def reload(self) -> None:
        try:
            self.config = load_config(self.config_path)
        except InvalidConfig as e:
            logger.error(
                "Invalid config file %s, keeping previous configuration:\n%s",
                e.source,
                e,
            )
        except OSError:
            logger.error(
                "Config file %s could not be read", self.config_path, exc_info=True
            )

        self.host = load_snapshot(self.snapshot_path)
        self.afterbuild.catalog = self.host.catalog
        self.afterbuild.swap_config(self.config)
        if self.scheduler is None:
            self.scheduler = RestartScheduler(
                registry=self.host.registry,
                executor=self.executor,
                config=self.config,
                catalog=self.host.catalog,
                quiet_period=self.settings.CRON_QUIET_PERIOD,
            )
        else:
            self.scheduler.swap_host(
                config=self.config,
                registry=self.host.registry,
                catalog=self.host.catalog,
            )

    async def dispatch_completed(self) -> int:
        completed, latest = detect_completed_builds(self._seen or {}, self.host)
        first = self._seen is None
        self._seen = latest
        if first or not completed:
            return 0
        logger.info("Dispatching %d completed build(s)", len(completed))
        await asyncio.gather(
            *(
                asyncio.to_thread(self.afterbuild.on_completed, job, build)
                for job, build in completed
            )
        )
        return len(completed)

    async def tick(self, now: datetime) -> CycleResult:
        await asyncio.to_thread(self.reload)
        await self.dispatch_completed()
        result = await asyncio.to_thread(self.scheduler.run_cycle, now)
        if self.settings.PUSH_GATEWAY is not None:
            await asyncio.to_thread(
                push_to_gateway,
                self.settings.PUSH_GATEWAY,
                job="reincarnate",
                registry=push_registry,
            )
        return result

    async def run(self, stop: Optional[asyncio.Event] = None) -> None:
        logger.info(
            "Entering worker loop config=%s snapshot=%s",
            self.config_path,
            self.snapshot_path,
        )
        stop = stop or asyncio.Event()
        while not stop.is_set():
            try:
                delay = seconds_to_next_tick(
                    datetime.now(timezone.utc), self.settings.TICK_SECONDS
                )
                logger.debug("Sleeping for %.1f seconds", delay)
                try:
                    await asyncio.wait_for(stop.wait(), timeout=delay)
                    break
                except asyncio.TimeoutError:
                    pass
                await self.tick(datetime.now(timezone.utc))
            except (KeyboardInterrupt, asyncio.CancelledError):
                raise
            except Exception:  # noqa: BLE001
                error_counter.labels(context="worker").inc()
                logger.error("Worker loop encountered error", exc_info=True)
        logger.info("Leaving worker loop")
