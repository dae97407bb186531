"""FastAPI dashboard: read-only view of job config and last run output."""

from __future__ import annotations

import html
from typing import Any

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import HTMLResponse, PlainTextResponse

from acron import __version__
from acron.config.loader import dump_config
from acron.config.schema import Config
from acron.cron.duration import format_duration
from acron.cron.service import Scheduler
from acron.cron.state import JobState

NOT_AVAILABLE = "N/A"

# ---------------------------------------------------------------------------
# View helpers
# ---------------------------------------------------------------------------


def _last_run_on(state: JobState) -> str:
    value = state.last_run_time()
    if value is None:
        return NOT_AVAILABLE
    return value.strftime("%Y-%m-%d %H:%M:%S")


def _last_time_taken(state: JobState) -> str:
    value = state.last_run_duration()
    if value is None:
        return NOT_AVAILABLE
    return format_duration(value)


def _job_summary(index: int, state: JobState) -> dict[str, Any]:
    d = state.definition
    record = state.last_record()
    return {
        "index": index,
        "name": state.display_name,
        "command": d.command,
        "args": list(d.args),
        "rate": d.interval,
        "startup_delay": d.startup_delay,
        "dir": d.working_dir,
        "env_file": d.env_file,
        "disabled": state.disabled,
        "in_flight": state.in_flight,
        "last_run": _last_run_on(state),
        "last_duration": _last_time_taken(state),
        "last_outcome": str(record.outcome) if record else None,
    }


def _job_detail(index: int, state: JobState) -> dict[str, Any]:
    detail = _job_summary(index, state)
    detail["stdout"] = state.last_output("stdout")
    detail["stderr"] = state.last_output("stderr")
    detail["runs"] = len(state.history)
    return detail


def _page(title: str, body: str) -> str:
    return (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\">"
        f"<title>{html.escape(title)}</title></head><body>"
        "<nav><a href=\"/\">Jobs</a> | <a href=\"/config\">Config</a></nav>"
        f"{body}<footer>acron v{__version__}</footer></body></html>"
    )


def _render_index(scheduler: Scheduler) -> str:
    rows = []
    for index, state in enumerate(scheduler.jobs):
        s = _job_summary(index, state)
        status = "disabled" if s["disabled"] else ("running" if s["in_flight"] else "idle")
        rows.append(
            "<tr>"
            f"<td><a href=\"/logs?idx={index}\">{html.escape(s['name'])}</a></td>"
            f"<td><code>{html.escape(' '.join([s['command'], *s['args']]))}</code></td>"
            f"<td>{html.escape(s['rate'] or '-')}</td>"
            f"<td>{status}</td>"
            f"<td>{s['last_run']}</td>"
            f"<td>{s['last_duration']}</td>"
            "</tr>"
        )
    table = (
        "<table><thead><tr><th>Name</th><th>Command</th><th>Rate</th>"
        "<th>Status</th><th>Last Run</th><th>Time Taken</th></tr></thead>"
        f"<tbody>{''.join(rows)}</tbody></table>"
    )
    return _page("acron", f"<h1>Jobs</h1>{table}")


def _render_logs(index: int, state: JobState) -> str:
    d = _job_detail(index, state)
    body = (
        f"<h1>{html.escape(d['name'])}</h1>"
        f"<p>Last run: {d['last_run']} ({d['last_duration']})"
        f"{' - ' + html.escape(d['last_outcome']) if d['last_outcome'] else ''}</p>"
        f"<h2>stdout</h2><pre>{html.escape(d['stdout'] or '')}</pre>"
        f"<h2>stderr</h2><pre>{html.escape(d['stderr'] or '')}</pre>"
    )
    return _page(f"acron - {d['name']}", body)


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(scheduler: Scheduler, config: Config) -> FastAPI:
    app = FastAPI(title="acron dashboard", version=__version__)

    def _state_or_404(idx: int) -> JobState:
        try:
            return scheduler.job(idx)
        except IndexError:
            raise HTTPException(status_code=404, detail=f"Job {idx} not found") from None

    @app.get("/", response_class=HTMLResponse)
    async def index():
        return _render_index(scheduler)

    @app.get("/logs", response_class=HTMLResponse)
    async def logs(idx: int = Query(...)):
        return _render_logs(idx, _state_or_404(idx))

    @app.get("/config", response_class=PlainTextResponse)
    async def config_view(format: str = Query("yaml", pattern="^(yaml|json)$")):
        return dump_config(config, format)

    @app.get("/api/status")
    async def status():
        return scheduler.status()

    @app.get("/api/jobs")
    async def list_jobs():
        return [_job_summary(i, s) for i, s in enumerate(scheduler.jobs)]

    @app.get("/api/jobs/{idx}")
    async def job_detail(idx: int):
        return _job_detail(idx, _state_or_404(idx))

    @app.get("/api/config")
    async def config_json():
        return config.model_dump(mode="json")

    return app
