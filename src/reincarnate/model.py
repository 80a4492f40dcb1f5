from __future__ import annotations

from dataclasses import dataclass
import io
from pathlib import Path
from typing import Annotated, ClassVar, List, Literal, Optional, Union

import pydantic
import yaml


class Model(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(
        extra="forbid", frozen=True, populate_by_name=True
    )


@dataclass(frozen=True)
class Remediation:
    node_script: Optional[str] = None
    controller_script: Optional[str] = None


class TriggerBase(Model):
    value: str
    description: Optional[str] = None
    schedule: Optional[str] = pydantic.Field(None, alias="cron-time")
    node_action: Optional[str] = pydantic.Field(None, alias="node-action")
    controller_action: Optional[str] = pydantic.Field(
        None, alias="controller-action"
    )

    label: ClassVar[str] = "Trigger"

    def describe(self) -> str:
        if self.description:
            return self.description
        return f"{self.label} hit: {self.value}"

    @property
    def remediation(self) -> Optional[Remediation]:
        node = self.node_action if self.node_action and self.node_action.strip() else None
        controller = (
            self.controller_action
            if self.controller_action and self.controller_action.strip()
            else None
        )
        if node is None and controller is None:
            return None
        return Remediation(node_script=node, controller_script=controller)

    def __str__(self) -> str:
        return f"{self.kind}:{self.value}"


class PatternTrigger(TriggerBase):
    kind: Literal["pattern"] = "pattern"

    label: ClassVar[str] = "RegEx"


class FailureCauseTrigger(TriggerBase):
    kind: Literal["failure-cause"] = "failure-cause"

    label: ClassVar[str] = "Failure cause"


Trigger = Annotated[
    Union[PatternTrigger, FailureCauseTrigger], pydantic.Field(discriminator="kind")
]


def _max_depth_or_zero(value):
    if value is None or isinstance(value, bool):
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


MaxDepth = Annotated[int, pydantic.BeforeValidator(_max_depth_or_zero)]


class LocalConfig(Model):
    """Per-job override of the global restart policy."""

    override: bool = False
    enabled: bool = False
    max_depth: MaxDepth = pydantic.Field(0, alias="max-depth")
    restart_unconditionally: bool = pydantic.Field(
        False, alias="restart-unconditionally"
    )
    deactivated: bool = False


class RestartConfig(Model):
    active_cron: bool = pydantic.Field(False, alias="active-cron")
    active_trigger: bool = pydantic.Field(False, alias="active-trigger")
    schedule: Optional[str] = pydantic.Field(None, alias="cron-time")
    max_depth: MaxDepth = pydantic.Field(0, alias="max-depth")
    restart_unchanged: bool = pydantic.Field(False, alias="restart-unchanged")
    triggers: List[Trigger] = pydantic.Field(default_factory=list)

    def effective_max_depth(self, local: Optional[LocalConfig]) -> int:
        if local is not None and local.override:
            return local.max_depth
        return self.max_depth

    def afterbuild_enabled(self, local: Optional[LocalConfig]) -> bool:
        if local is not None and local.override:
            return local.enabled
        return self.active_trigger


class InvalidConfig(Exception):
    raw_config: str
    source: str

    def __init__(self, *args, **kwargs):
        self.raw_config = kwargs.pop("raw_config")
        self.source = kwargs.pop("source")
        super().__init__(*args, **kwargs)


def parse_config(raw_config: str, source: str = "<string>") -> RestartConfig:
    try:
        data = yaml.safe_load(io.StringIO(raw_config))
    except yaml.YAMLError as e:
        raise InvalidConfig(str(e), raw_config=raw_config, source=source)

    try:
        return RestartConfig() if data is None else RestartConfig.model_validate(data)
    except pydantic.ValidationError as e:
        raise InvalidConfig(str(e), raw_config=raw_config, source=source)


def load_config(path: Path) -> RestartConfig:
    path = Path(path)
    return parse_config(path.read_text(), source=str(path))
