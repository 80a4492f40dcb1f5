import json

import pydantic
import pytest

from reincarnate.host import Outbox, RestartCause, Result, load_snapshot, iter_jobs
from reincarnate.host.snapshot import SnapshotHost

SNAPSHOT_YAML = """
failure-causes:
  - id: net
    name: Network flake
folders:
  - name: team
    folders:
      - name: nightly
        jobs:
          - name: integration
            builds:
              - number: 12
                result: FAILURE
                log-file: logs/integration-12.log
              - number: 11
                result: success
    jobs:
      - name: lint
        in-queue: true
jobs:
  - name: standalone
    local:
      override: true
      max-depth: 2
"""


@pytest.fixture
def snapshot_path(tmp_path):
    (tmp_path / "logs").mkdir()
    (tmp_path / "logs" / "integration-12.log").write_text("boom\n")
    path = tmp_path / "snapshot.yml"
    path.write_text(SNAPSHOT_YAML)
    return path


def test_load_snapshot_job_tree(snapshot_path):
    host = load_snapshot(snapshot_path)

    names = [job.full_name for job in iter_jobs(host.registry)]
    assert names == ["team/nightly/integration", "team/lint", "standalone"]

    assert host.find_job("team/lint").in_queue
    assert host.find_job("standalone").local_config.max_depth == 2
    assert host.find_job("missing") is None


def test_builds_are_linked_by_number(snapshot_path):
    job = load_snapshot(snapshot_path).find_job("team/nightly/integration")

    last = job.last_build()
    assert last.number == 12
    assert last.result == Result.FAILURE
    assert last.previous_build().number == 11
    assert last.previous_build().result == Result.SUCCESS
    assert last.previous_build().previous_build() is None


def test_log_file_is_relative_to_snapshot(snapshot_path):
    job = load_snapshot(snapshot_path).find_job("team/nightly/integration")

    with job.last_build().open_log() as fh:
        assert fh.read() == "boom\n"

    with pytest.raises(FileNotFoundError):
        job.last_build().previous_build().open_log()


def test_catalog_presence(snapshot_path):
    host = load_snapshot(snapshot_path)
    assert host.catalog.get("net").name == "Network flake"
    assert host.catalog.get("other") is None

    assert SnapshotHost.from_data({"jobs": []}).catalog is None
    assert len(SnapshotHost.from_data({"failure-causes": []}).catalog) == 0
    assert SnapshotHost.from_data(None).catalog is None


def test_restart_cause_is_exposed():
    host = SnapshotHost.from_data(
        {
            "jobs": [
                {
                    "name": "A",
                    "builds": [
                        {"number": 1, "restart-cause": "(Cron restart) RegEx hit: x"}
                    ],
                }
            ]
        }
    )
    cause = host.find_job("A").last_build().restart_cause()
    assert cause == RestartCause("(Cron restart) RegEx hit: x")
    assert "Cron restart" in cause.short_description


@pytest.mark.parametrize(
    "data",
    [
        {"jobs": [{"name": "A", "builds": [{"number": 1, "result": "BROKEN"}]}]},
        {"jobs": [{"name": "A", "unknown": 1}]},
    ],
)
def test_invalid_snapshot(data):
    with pytest.raises(pydantic.ValidationError):
        SnapshotHost.from_data(data)


def test_outbox_records_requests(tmp_path):
    path = tmp_path / "outbox.jsonl"
    outbox = Outbox(path)
    job = SnapshotHost.from_data({"jobs": [{"name": "A"}]}).find_job("A")

    assert outbox.schedule_build(job, 300, RestartCause("(Afterbuild restart) x"))
    assert outbox.execute("cleanup", node="agent-1") == ""

    assert [r.job for r in outbox.restarts] == ["A"]
    assert outbox.scripts[0].node == "agent-1"

    lines = [json.loads(line) for line in path.read_text().splitlines()]
    assert [line["type"] for line in lines] == ["restart", "script"]
    assert lines[0]["job"] == "A"
    assert lines[0]["quiet_period"] == 300
    assert lines[0]["cause"] == "[reincarnate] (Afterbuild restart) x"
    assert lines[1]["script"] == "cleanup"
    assert lines[1]["node_name"] is None
