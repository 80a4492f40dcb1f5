import pytest

from reincarnate.model import (
    FailureCauseTrigger,
    InvalidConfig,
    LocalConfig,
    PatternTrigger,
    RestartConfig,
    load_config,
    parse_config,
)


CONFIG_YAML = """
active-cron: true
active-trigger: false
cron-time: "*/5 * * * *"
max-depth: 3
restart-unchanged: true
triggers:
  - kind: pattern
    value: "ERROR"
    description: "Error in log"
    cron-time: "0 * * * *"
    node-action: "cleanup.sh"
  - kind: failure-cause
    value: "c0ffee"
  - kind: pattern
    value: "FAIL"
"""


def test_parse_config_with_aliases():
    config = parse_config(CONFIG_YAML)

    assert config.active_cron
    assert not config.active_trigger
    assert config.schedule == "*/5 * * * *"
    assert config.max_depth == 3
    assert config.restart_unchanged

    assert [type(t) for t in config.triggers] == [
        PatternTrigger,
        FailureCauseTrigger,
        PatternTrigger,
    ]
    assert [t.value for t in config.triggers] == ["ERROR", "c0ffee", "FAIL"]
    assert config.triggers[0].schedule == "0 * * * *"
    assert config.triggers[0].node_action == "cleanup.sh"


def test_empty_config_is_default():
    config = parse_config("")
    assert config == RestartConfig()
    assert not config.active_cron
    assert config.triggers == []


@pytest.mark.parametrize("raw", ["abc", "", None, "2.5"])
def test_unparseable_max_depth_is_zero(raw):
    config = RestartConfig.model_validate({"max-depth": raw})
    assert config.max_depth == 0


def test_max_depth_from_string():
    assert RestartConfig.model_validate({"max-depth": "4"}).max_depth == 4


def test_unknown_key_is_invalid():
    raw = "active-cron: true\nbogus: 1\n"
    with pytest.raises(InvalidConfig) as excinfo:
        parse_config(raw, source="policy.yml")
    assert excinfo.value.raw_config == raw
    assert excinfo.value.source == "policy.yml"


def test_unknown_trigger_kind_is_invalid():
    with pytest.raises(InvalidConfig):
        parse_config("triggers:\n  - kind: magic\n    value: x\n")


def test_broken_yaml_is_invalid():
    with pytest.raises(InvalidConfig):
        parse_config("triggers: [\n")


def test_load_config(tmp_path):
    path = tmp_path / "policy.yml"
    path.write_text(CONFIG_YAML)
    assert load_config(path) == parse_config(CONFIG_YAML)


def test_describe_falls_back_to_kind_and_value():
    assert PatternTrigger(value="ERROR").describe() == "RegEx hit: ERROR"
    assert FailureCauseTrigger(value="abc").describe() == "Failure cause hit: abc"
    assert PatternTrigger(value="x", description="Flaky").describe() == "Flaky"


def test_remediation():
    assert PatternTrigger(value="x").remediation is None
    assert PatternTrigger(value="x", node_action="  ").remediation is None

    remediation = PatternTrigger(
        value="x", node_action="rm -rf ws", controller_action="notify"
    ).remediation
    assert remediation.node_script == "rm -rf ws"
    assert remediation.controller_script == "notify"


def test_local_override_supersedes_global():
    config = RestartConfig(active_trigger=False, max_depth=5)

    assert config.effective_max_depth(None) == 5
    assert not config.afterbuild_enabled(None)

    inactive = LocalConfig(override=False, enabled=True, max_depth=1)
    assert config.effective_max_depth(inactive) == 5
    assert not config.afterbuild_enabled(inactive)

    local = LocalConfig(override=True, enabled=True, max_depth=1)
    assert config.effective_max_depth(local) == 1
    assert config.afterbuild_enabled(local)


def test_config_is_immutable():
    config = RestartConfig()
    with pytest.raises(Exception):
        config.active_cron = True


@pytest.mark.parametrize("raw", ["three", None, "1.5"])
def test_unparseable_local_max_depth_is_zero(raw):
    local = LocalConfig.model_validate({"override": True, "max-depth": raw})
    assert local.max_depth == 0
    assert RestartConfig(max_depth=4).effective_max_depth(local) == 0
