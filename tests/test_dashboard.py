from datetime import datetime, timedelta, timezone

import pytest
import yaml
from fastapi.testclient import TestClient

from acron.config.schema import Config
from acron.cron.service import Scheduler
from acron.cron.types import RunOutcome, RunRecord
from acron.dashboard.app import create_app


@pytest.fixture
def config() -> Config:
    return Config.model_validate(
        {
            "ticker_duration": "30s",
            "jobs": [
                {"name": "backup", "rate": "1h", "command": "echo", "args": ["<b>hi</b>"]},
                {"command": "uptime", "disabled": True},
            ],
        }
    )


@pytest.fixture
def scheduler(config) -> Scheduler:
    scheduler = Scheduler(config.definitions())
    scheduler.jobs[0].complete(
        RunRecord(
            started_at=datetime(2026, 3, 4, 5, 6, 7, tzinfo=timezone.utc),
            duration=timedelta(seconds=3, milliseconds=900),
            outcome=RunOutcome.non_zero_exit(2),
            stdout="<b>hi</b>\n",
            stderr="warning\n",
        )
    )
    return scheduler


@pytest.fixture
def client(scheduler, config) -> TestClient:
    return TestClient(create_app(scheduler, config))


def test_list_jobs_reports_last_run(client) -> None:
    resp = client.get("/api/jobs")

    assert resp.status_code == 200
    backup, uptime = resp.json()
    assert backup["index"] == 0
    assert backup["name"] == "backup"
    assert backup["rate"] == "1h"
    assert backup["last_run"] == "2026-03-04 05:06:07"
    assert backup["last_duration"] == "3s"
    assert backup["last_outcome"] == "exit status 2"
    assert uptime["name"] == "uptime"
    assert uptime["disabled"] is True
    assert uptime["last_run"] == "N/A"
    assert uptime["last_duration"] == "N/A"
    assert uptime["last_outcome"] is None


def test_job_detail_includes_output(client) -> None:
    resp = client.get("/api/jobs/0")

    assert resp.status_code == 200
    data = resp.json()
    assert data["stdout"] == "<b>hi</b>\n"
    assert data["stderr"] == "warning\n"
    assert data["runs"] == 1


def test_job_detail_without_runs(client) -> None:
    data = client.get("/api/jobs/1").json()

    assert data["stdout"] is None
    assert data["stderr"] is None
    assert data["runs"] == 0


def test_unknown_job_returns_404(client) -> None:
    assert client.get("/api/jobs/9").status_code == 404
    assert client.get("/logs", params={"idx": 9}).status_code == 404


def test_index_page_lists_jobs(client) -> None:
    resp = client.get("/")

    assert resp.status_code == 200
    assert "text/html" in resp.headers["content-type"]
    assert "backup" in resp.text
    assert "uptime" in resp.text
    assert "&lt;b&gt;hi&lt;/b&gt;" in resp.text
    assert "<b>hi</b>" not in resp.text


def test_logs_page_escapes_output(client) -> None:
    resp = client.get("/logs", params={"idx": 0})

    assert resp.status_code == 200
    assert "&lt;b&gt;hi&lt;/b&gt;" in resp.text
    assert "warning" in resp.text
    assert "exit status 2" in resp.text


def test_config_views(client) -> None:
    as_yaml = yaml.safe_load(client.get("/config").text)
    assert as_yaml["ticker_duration"] == "30s"
    assert as_yaml["jobs"][0]["command"] == "echo"

    as_json = client.get("/config", params={"format": "json"}).json()
    assert as_json == as_yaml

    assert client.get("/api/config").json()["jobs"][1]["disabled"] is True
    assert client.get("/config", params={"format": "toml"}).status_code == 422


def test_status_endpoint(client) -> None:
    assert client.get("/api/status").json() == {"running": False, "jobs": 2, "in_flight": 0}


def test_job_summary_keys_are_snake_case(client) -> None:
    backup = client.get("/api/jobs").json()[0]

    assert set(backup) == {
        "index",
        "name",
        "command",
        "args",
        "rate",
        "startup_delay",
        "dir",
        "env_file",
        "disabled",
        "in_flight",
        "last_run",
        "last_duration",
        "last_outcome",
    }
    assert backup["in_flight"] is False
    assert backup["startup_delay"] is None
