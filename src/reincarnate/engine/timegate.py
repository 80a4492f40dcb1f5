from __future__ import annotations

from datetime import datetime, timedelta
import logging
from typing import Optional

from croniter import croniter

from reincarnate.model import TriggerBase

logger = logging.getLogger("reincarnate")


class InvalidSchedule(ValueError):
    pass


def to_tick(now: datetime) -> datetime:
    return now.replace(second=0, microsecond=0)


def schedule_fires(expression: Optional[str], now: datetime) -> bool:
    """True if ``now`` falls on a tick of the cron ``expression``.

    The check has minute granularity: ``now`` is truncated to its minute and
    the schedule fires when its next occurrence from just before that minute
    is the minute itself.
    """
    if expression is None or not expression.strip():
        raise InvalidSchedule("No schedule configured")
    if len(expression.split()) > 5:
        raise InvalidSchedule(f"Schedule '{expression}' has more than five fields")
    tick = to_tick(now)
    try:
        upcoming = croniter(expression, tick - timedelta(seconds=1)).get_next(datetime)
    except (ValueError, KeyError) as e:
        raise InvalidSchedule(f"Could not parse schedule '{expression}': {e}") from e
    return upcoming == tick


def is_due(
    trigger: TriggerBase, now: datetime, global_schedule: Optional[str]
) -> bool:
    if trigger.schedule is not None and trigger.schedule.strip():
        try:
            return schedule_fires(trigger.schedule, now)
        except InvalidSchedule:
            logger.debug(
                "Trigger schedule unusable trigger=%s schedule=%r, trying global schedule",
                trigger,
                trigger.schedule,
            )
    try:
        return schedule_fires(global_schedule, now)
    except InvalidSchedule:
        logger.warning(
            "Global schedule unusable trigger=%s schedule=%r", trigger, global_schedule
        )
        return False
