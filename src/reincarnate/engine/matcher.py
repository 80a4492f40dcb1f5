from __future__ import annotations

import logging
import re
from typing import Callable, Optional

from reincarnate.host.types import RESTART_MARKER, Build, FailureCauseCatalog
from reincarnate.metric import trigger_error_counter
from reincarnate.model import FailureCauseTrigger, PatternTrigger, TriggerBase

logger = logging.getLogger("reincarnate")

Matcher = Callable[[Build], bool]


class TriggerResolutionError(Exception):
    trigger: TriggerBase

    def __init__(self, *args, trigger: TriggerBase):
        self.trigger = trigger
        super().__init__(*args)


class PatternMatcher:
    def __init__(self, pattern: re.Pattern):
        self.pattern = pattern

    def __call__(self, build: Build) -> bool:
        try:
            with build.open_log() as fh:
                for line in fh:
                    # our own cause and summary lines would otherwise re-trigger
                    if RESTART_MARKER in line:
                        continue
                    if self.pattern.search(line) is not None:
                        return True
        except OSError:
            logger.warning(
                "Log could not be read build=%s pattern=%r",
                build.number,
                self.pattern.pattern,
                exc_info=True,
            )
        return False


class FailureCauseMatcher:
    def __init__(self, cause_id: str):
        self.cause_id = cause_id

    def __call__(self, build: Build) -> bool:
        return self.cause_id in build.failure_cause_ids()


def resolve_matcher(
    trigger: TriggerBase, catalog: Optional[FailureCauseCatalog] = None
) -> Matcher:
    if isinstance(trigger, PatternTrigger):
        try:
            return PatternMatcher(re.compile(trigger.value))
        except (re.error, OverflowError, RecursionError) as e:
            raise TriggerResolutionError(
                f"RegEx '{trigger.value}' cannot be compiled: {e}", trigger=trigger
            ) from e
    if isinstance(trigger, FailureCauseTrigger):
        if catalog is None:
            raise TriggerResolutionError(
                "No failure cause catalog available", trigger=trigger
            )
        cause = catalog.get(trigger.value)
        if cause is None:
            raise TriggerResolutionError(
                f"Failure cause with id {trigger.value} does not exist",
                trigger=trigger,
            )
        return FailureCauseMatcher(cause.id)
    raise TypeError(f"Unknown trigger type {type(trigger)!r}")


def try_resolve(
    trigger: TriggerBase, catalog: Optional[FailureCauseCatalog] = None
) -> Optional[Matcher]:
    try:
        return resolve_matcher(trigger, catalog)
    except TriggerResolutionError as e:
        trigger_error_counter.labels(kind=getattr(trigger, "kind", "unknown")).inc()
        logger.warning("Trigger inactive trigger=%s reason=%s", trigger, e)
        return None


def matches(
    build: Optional[Build],
    trigger: TriggerBase,
    catalog: Optional[FailureCauseCatalog] = None,
) -> bool:
    if build is None:
        return False
    matcher = try_resolve(trigger, catalog)
    if matcher is None:
        return False
    return matcher(build)
