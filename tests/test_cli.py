import json
import logging

import pytest
import yaml
from typer.testing import CliRunner

from reincarnate.cli import app
from reincarnate.config import SETTINGS

runner = CliRunner()

CONFIG = {
    "active-cron": True,
    "active-trigger": True,
    "cron-time": "* * * * *",
    "triggers": [{"kind": "pattern", "value": "ERROR"}],
}

SNAPSHOT = {
    "jobs": [
        {
            "name": "A",
            "builds": [
                {"number": 1, "result": "SUCCESS"},
                {"number": 2, "result": "FAILURE", "log": "ERROR: boom\n"},
            ],
        },
        {"name": "B", "builds": [{"number": 1, "result": "SUCCESS"}]},
    ]
}


@pytest.fixture
def files(tmp_path):
    config = tmp_path / "config.yml"
    snapshot = tmp_path / "snapshot.yml"
    config.write_text(yaml.safe_dump(CONFIG))
    snapshot.write_text(yaml.safe_dump(SNAPSHOT))
    return config, snapshot


def test_check_is_dry_run_by_default(files, tmp_path):
    config, snapshot = files
    outbox = tmp_path / "outbox.jsonl"

    result = runner.invoke(
        app,
        ["check", str(config), str(snapshot), "--at", "2026-03-02T10:00:00Z", "--outbox", str(outbox)],
    )

    assert result.exit_code == 0, result.output
    assert "Restarted 0 of 1 scheduled job(s) at 2026-03-02 10:00" in result.output
    assert "(Cron restart) RegEx hit: ERROR: A" in result.output
    assert not outbox.exists()


def test_check_execute_writes_outbox(files, tmp_path):
    config, snapshot = files
    outbox = tmp_path / "outbox.jsonl"

    result = runner.invoke(
        app,
        [
            "check",
            str(config),
            str(snapshot),
            "--at",
            "2026-03-02T10:00:00Z",
            "--execute",
            "--outbox",
            str(outbox),
        ],
    )

    assert result.exit_code == 0, result.output
    lines = [json.loads(line) for line in outbox.read_text().splitlines()]
    assert [(line["type"], line["job"]) for line in lines] == [("restart", "A")]


def test_check_invalid_config(files):
    config, snapshot = files
    config.write_text("triggers: [{kind: unknown, value: x}]")

    result = runner.invoke(app, ["check", str(config), str(snapshot)])

    assert result.exit_code == 1
    assert "Config parsing failed" in result.output


def test_afterbuild_command(files):
    config, snapshot = files

    result = runner.invoke(app, ["afterbuild", str(config), str(snapshot), "A"])
    assert result.exit_code == 0, result.output
    assert "Restart A: (Afterbuild restart) RegEx hit: ERROR" in result.output

    result = runner.invoke(app, ["afterbuild", str(config), str(snapshot), "B"])
    assert result.exit_code == 0, result.output
    assert "No restart for B" in result.output

    result = runner.invoke(app, ["afterbuild", str(config), str(snapshot), "missing"])
    assert result.exit_code == 1


def test_validate_ok(files):
    config, _ = files

    result = runner.invoke(app, ["validate", str(config)])

    assert result.exit_code == 0, result.output
    assert "1 trigger(s) OK" in result.output


def test_validate_reports_problems(files):
    config, snapshot = files
    config.write_text(
        yaml.safe_dump(
            {
                "cron-time": "bogus",
                "triggers": [
                    {"kind": "pattern", "value": "([unclosed"},
                    {"kind": "failure-cause", "value": "gone"},
                ],
            }
        )
    )
    snapshot.write_text(yaml.safe_dump({**SNAPSHOT, "failure-causes": []}))

    result = runner.invoke(app, ["validate", str(config), "--snapshot", str(snapshot)])

    assert result.exit_code == 1
    assert "global:" in result.output
    assert "trigger #1" in result.output
    assert "trigger #2" in result.output


def test_summary_logger_is_not_silenced_by_override(files):
    config, _ = files
    result = runner.invoke(app, ["validate", str(config)])

    assert result.exit_code == 0, result.output
    assert logging.getLogger("reincarnate").level == SETTINGS.OVERRIDE_LOGGING
    assert logging.getLogger("reincarnate.summary").level == SETTINGS.SUMMARY_LOGGING
