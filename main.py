"""CLI entrypoint for the feed digest engine: jobs, steps, sources, digests and the API server."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from typing import Any, Optional

from core import ProcessingState, TaskStatus
from utils import setup_app_logging
from webapp.runtime import AppContext, build_context


def _json(text: str):
    raw = str(text or "").strip()
    if not raw:
        return {}
    return json.loads(raw)


def _print(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, default=str))


async def _drain(ctx: AppContext, max_steps: Optional[int]) -> list:
    outcomes = await ctx.runtime.drain(max_steps)
    return [
        {
            "task_id": outcome.state.task_id,
            "step": outcome.executed_step.value,
            "next": outcome.state.step.value,
            "error": outcome.state.error,
        }
        for outcome in outcomes
    ]


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Feed digest CLI")
    parser.add_argument("--log-level", default="INFO")
    sub = parser.add_subparsers(dest="command", required=True)

    trigger = sub.add_parser("trigger", help="queue a news collection job")
    trigger.add_argument("--provider", default=None)

    process = sub.add_parser("process", help="start a pending job and run its chain to the end")
    process.add_argument("--task-id", default=None)

    step = sub.add_parser("step", help="advance one step from a JSON state")
    step.add_argument("--state-json", required=True)
    step.add_argument("--follow", action="store_true", help="keep running the chain after this step")

    resume = sub.add_parser("resume", help="re-drive a stuck processing job from its first step")
    resume.add_argument("--task-id", required=True)
    resume.add_argument("--provider", default=None)

    status = sub.add_parser("status")
    status.add_argument("--task-id", default=None)
    status.add_argument("--state", default=None, choices=[item.value for item in TaskStatus])
    status.add_argument("--limit", type=int, default=20)

    serve = sub.add_parser("serve")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)

    sources = sub.add_parser("sources")
    sources_sub = sources.add_subparsers(dest="sources_command", required=True)
    add = sources_sub.add_parser("add")
    add.add_argument("--name", required=True)
    add.add_argument("--url", required=True)
    add.add_argument("--kind", default="rss")
    sources_sub.add_parser("list")
    remove = sources_sub.add_parser("remove")
    remove.add_argument("--id", required=True)

    summaries = sub.add_parser("summaries")
    summaries_sub = summaries.add_subparsers(dest="summaries_command", required=True)
    summaries_list = summaries_sub.add_parser("list")
    summaries_list.add_argument("--limit", type=int, default=10)
    show = summaries_sub.add_parser("show")
    show.add_argument("--id", required=True)

    return parser


def main() -> None:
    args = _build_parser().parse_args()
    setup_app_logging(level=getattr(logging, str(args.log_level).upper(), logging.INFO))

    if args.command == "serve":
        import uvicorn
        from webapp.app import create_app

        uvicorn.run(create_app(), host=args.host, port=args.port)
        return

    ctx = build_context()

    if args.command == "trigger":
        _print({"task_id": ctx.orchestrator.create_task(args.provider)})
        return

    if args.command == "process":
        result = ctx.orchestrator.start_task(args.task_id)
        steps = asyncio.run(_drain(ctx, None)) if result.started else []
        task = ctx.orchestrator.get_task_status(result.task_id) if result.task_id else None
        _print(
            {
                "started": result.started,
                "reason": result.reason,
                "steps": steps,
                "task": task.model_dump(mode="json") if task else None,
            }
        )
        return

    if args.command == "step":
        state = ProcessingState.model_validate(_json(args.state_json))
        outcome = asyncio.run(ctx.runtime.advance(state))
        followed = asyncio.run(_drain(ctx, None)) if args.follow else []
        _print(
            {
                "finished": outcome.finished,
                "dispatched": outcome.dispatched,
                "state": outcome.state.model_dump(mode="json", by_alias=True),
                "followed": followed,
            }
        )
        return

    if args.command == "resume":
        state = ctx.orchestrator.restart_state(args.task_id, provider=args.provider)
        if state is None:
            _print({"resumed": False, "reason": "task missing or not processing"})
            return
        ctx.runtime.dispatch(state)
        _print({"resumed": True, "steps": asyncio.run(_drain(ctx, None))})
        return

    if args.command == "status":
        if args.task_id:
            task = ctx.orchestrator.get_task_status(args.task_id)
            _print({"task": task.model_dump(mode="json") if task else None})
            return
        state = TaskStatus(args.state) if args.state else None
        tasks = ctx.orchestrator.list_tasks(status=state, limit=args.limit)
        _print({"tasks": [task.model_dump(mode="json") for task in tasks]})
        return

    if args.command == "sources":
        store = ctx.digest_store
        if args.sources_command == "add":
            _print(store.add_source(args.name, args.url, args.kind).model_dump(mode="json"))
        elif args.sources_command == "list":
            _print([source.model_dump(mode="json") for source in store.list_sources()])
        else:
            _print({"removed": store.delete_source(args.id)})
        return

    if args.command == "summaries":
        store = ctx.digest_store
        if args.summaries_command == "list":
            _print([record.model_dump(mode="json") for record in store.list_summary_records(args.limit)])
            return
        record, items = store.get_summary_record_details(args.id)
        _print(
            {
                "record": record.model_dump(mode="json") if record else None,
                "items": [item.model_dump(mode="json") for item in items],
            }
        )


if __name__ == "__main__":
    main()
