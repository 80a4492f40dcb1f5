from __future__ import annotations

from collections import defaultdict
from typing import Dict, List

from tabulate import tabulate

from reincarnate.engine.types import CycleResult
from reincarnate.host.types import RESTART_MARKER


def format_summary(result: CycleResult) -> str:
    tick = result.tick.strftime("%Y-%m-%d %H:%M")
    if result.skipped is not None:
        return f"{RESTART_MARKER} Cycle at {tick} skipped: {result.skipped}"

    lines = [
        f"{RESTART_MARKER} Restarted {len(result.restarted)} of "
        f"{len(result.decisions)} scheduled job(s) at {tick}"
    ]

    by_cause: Dict[str, List[str]] = defaultdict(list)
    for decision in result.decisions:
        by_cause[decision.cause_text].append(decision.job_name)

    for cause, names in by_cause.items():
        lines.append(f"{RESTART_MARKER} {len(names)} x {cause}: {', '.join(names)}")

    rows = [(name, "blocked", "restart depth reached") for name in result.blocked]
    rows += [(name, "error", error) for name, error in result.errors]
    if rows:
        lines.append(tabulate(rows, headers=("Job", "Status", "Detail"), tablefmt="github"))

    return "\n".join(lines)
