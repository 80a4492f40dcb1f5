from reincarnate.engine.afterbuild import AfterbuildHandler
from reincarnate.engine.executor import RestartExecutor
from reincarnate.engine.scheduler import RestartScheduler
from reincarnate.engine.types import CycleResult, RestartCategory, RestartDecision

__all__ = [
    "AfterbuildHandler",
    "RestartExecutor",
    "RestartScheduler",
    "CycleResult",
    "RestartCategory",
    "RestartDecision",
]
