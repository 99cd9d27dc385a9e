from __future__ import annotations

import json
import sys

import pytest

import main as cli
from fakes import FakeLLM, ScriptedFactory, make_item
from webapp.runtime import build_context


@pytest.fixture
def ctx(settings, task_store, digest_store, monkeypatch):
    async def _fetch(source, max_results):
        return [make_item(f"{source.url}/1", source.id)]

    context = build_context(
        settings,
        task_store=task_store,
        digest_store=digest_store,
        fetcher=_fetch,
        llm_factory=ScriptedFactory([FakeLLM()]),
    )
    monkeypatch.setattr(cli, "build_context", lambda: context)
    monkeypatch.setattr(cli, "setup_app_logging", lambda level: None)
    return context


def _run(monkeypatch, capsys, *argv):
    monkeypatch.setattr(sys, "argv", ["feed-digest", *argv])
    cli.main()
    return json.loads(capsys.readouterr().out.strip().splitlines()[-1])


def test_trigger_then_process(ctx, monkeypatch, capsys) -> None:
    _run(monkeypatch, capsys, "sources", "add", "--name", "Feed", "--url", "https://f/feed")
    task_id = _run(monkeypatch, capsys, "trigger", "--provider", "grok")["task_id"]

    processed = _run(monkeypatch, capsys, "process")

    assert processed["started"] is True
    assert processed["task"]["id"] == task_id
    assert processed["task"]["status"] == "completed"
    assert processed["steps"][-1]["step"] == "complete"

    status = _run(monkeypatch, capsys, "status", "--state", "completed")
    assert [task["id"] for task in status["tasks"]] == [task_id]

    summaries = _run(monkeypatch, capsys, "summaries", "list")
    shown = _run(monkeypatch, capsys, "summaries", "show", "--id", summaries[0]["id"])
    assert shown["items"][0]["original_link"] == "https://f/feed/1"


def test_resume_requires_processing_job(ctx, monkeypatch, capsys) -> None:
    task_id = ctx.orchestrator.create_task()
    assert _run(monkeypatch, capsys, "resume", "--task-id", task_id)["resumed"] is False

    ctx.orchestrator.claim_task(task_id)
    resumed = _run(monkeypatch, capsys, "resume", "--task-id", task_id)
    assert resumed["resumed"] is True
    assert resumed["steps"][0]["error"] == "no items found"


def test_step_from_json_state(ctx, monkeypatch, capsys) -> None:
    task_id = ctx.orchestrator.create_task()
    payload = json.dumps({"taskId": task_id, "step": "filter_news"})

    result = _run(monkeypatch, capsys, "step", "--state-json", payload)

    assert result["finished"] is True
    assert result["state"]["error"] == "missing precondition: latest_news"
