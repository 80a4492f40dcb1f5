from __future__ import annotations

import logging
from typing import Optional

from reincarnate.host.types import Build

logger = logging.getLogger("reincarnate")


def under_depth_limit(build: Optional[Build], max_depth: int, label: str) -> bool:
    """Whether another automatic restart labelled ``label`` is allowed.

    Walks back from ``build`` for as long as builds were started by a
    restart, counting the causes that mention ``label``.
    """
    if max_depth <= 0:
        return True
    count = 0
    while build is not None:
        cause = build.restart_cause()
        if cause is None:
            break
        if label in cause.short_description:
            count += 1
            if count >= max_depth:
                logger.debug(
                    "Restart depth reached build=%s label=%s max_depth=%d",
                    build.number,
                    label,
                    max_depth,
                )
                return False
        build = build.previous_build()
    return True
