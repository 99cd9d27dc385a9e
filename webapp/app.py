"""FastAPI surface for job triggering, step advancing, status, sources and digests."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging
from typing import Any, Dict, List, Optional

from fastapi import Body, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError, field_validator

from core import LLMRoutingConfig, ProcessingState, SourceKind, Task, TaskStatus, normalize_source_kind
from intelligence.llm import SUPPORTED_PROVIDERS, save_routing_config
from utils.exceptions import StoreError
from webapp.runtime import AppContext, build_context


logger = logging.getLogger(__name__)


class TaskCreatePayload(BaseModel):
    provider: Optional[str] = None

    @field_validator("provider")
    @classmethod
    def _known_provider(cls, value: Optional[str]) -> Optional[str]:
        text = str(value or "").strip().lower()
        if text and text not in SUPPORTED_PROVIDERS:
            raise ValueError(f"unsupported provider: {text}")
        return text or None


class SchedulerPayload(BaseModel):
    action: str
    interval_seconds: Optional[float] = Field(default=None, gt=0)
    provider: Optional[str] = None

    @field_validator("action")
    @classmethod
    def _action(cls, value: str) -> str:
        text = str(value or "").strip().lower()
        if text not in {"start", "stop"}:
            raise ValueError("action must be start or stop")
        return text


class SourcePayload(BaseModel):
    name: str
    url: str
    kind: SourceKind = SourceKind.RSS

    @field_validator("name", "url")
    @classmethod
    def _strip_required(cls, value: str) -> str:
        text = str(value or "").strip()
        if not text:
            raise ValueError("value is required")
        return text

    @field_validator("kind", mode="before")
    @classmethod
    def _feed_alias(cls, value: Any) -> Any:
        return normalize_source_kind(value)


def _task_payload(task: Task) -> Dict[str, Any]:
    payload = task.model_dump(mode="json")
    payload["status_text"] = task.status_text
    return payload


def _context(request: Request) -> AppContext:
    return request.app.state.context


def create_app(
    context: Optional[AppContext] = None,
    *,
    start_workers: bool = True,
    start_scheduler: Optional[bool] = None,
) -> FastAPI:
    """Build the app; without a context one is created from settings at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        ctx = context or build_context()
        app.state.context = ctx
        await ctx.startup(start_workers=start_workers, start_scheduler=start_scheduler)
        try:
            yield
        finally:
            await ctx.shutdown()

    app = FastAPI(title="Feed Digest API", version="1.0", lifespan=lifespan)
    if context is not None:
        app.state.context = context

    @app.get("/api/health")
    def health() -> Dict[str, Any]:
        return {"ok": True, "ts": datetime.now(timezone.utc).isoformat(timespec="seconds")}

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    @app.post("/api/tasks")
    def create_task(request: Request, payload: Optional[TaskCreatePayload] = None) -> Dict[str, Any]:
        ctx = _context(request)
        task_id = ctx.orchestrator.create_task(payload.provider if payload else None)
        return {"success": True, "task_id": task_id, "message": "task queued"}

    @app.get("/api/tasks")
    def list_tasks(request: Request, status: Optional[TaskStatus] = None, limit: int = 50) -> Dict[str, Any]:
        tasks = _context(request).orchestrator.list_tasks(status=status, limit=limit)
        return {"success": True, "tasks": [_task_payload(task) for task in tasks]}

    @app.post("/api/tasks/process")
    def process_tasks(request: Request, task_id: Optional[str] = None) -> Dict[str, Any]:
        result = _context(request).orchestrator.start_task(task_id)
        if not result.started and task_id:
            raise HTTPException(status_code=409, detail=result.reason)
        return {
            "success": result.started,
            "task_id": result.task_id,
            "dispatched": result.dispatched,
            "message": result.reason or "task started",
        }

    @app.post("/api/tasks/step")
    async def advance_step(request: Request, payload: Dict[str, Any] = Body(...)) -> Any:
        ctx = _context(request)
        body = dict(payload)
        task_id = str(body.get("taskId") or body.get("task_id") or "").strip()
        if not task_id:
            raise HTTPException(status_code=400, detail="taskId is required")

        if not body.get("step"):
            task = ctx.orchestrator.get_task_status(task_id)
            if task is None:
                raise HTTPException(status_code=404, detail=f"task {task_id} not found")
            state = ctx.orchestrator.restart_state(task_id, provider=body.get("provider"))
            if state is None:
                raise HTTPException(
                    status_code=400,
                    detail=f"task {task_id} is not processing (status: {task.status.value})",
                )
        else:
            try:
                state = ProcessingState.model_validate(body)
            except ValidationError as exc:
                raise HTTPException(status_code=400, detail=f"invalid step state: {exc.errors()[0]['msg']}") from exc

        outcome = await ctx.runtime.advance(state)
        state_payload = outcome.state.model_dump(mode="json", by_alias=True)
        if outcome.failed:
            return JSONResponse(
                status_code=500,
                content={"success": False, "message": outcome.state.error, "state": state_payload},
            )
        return {
            "success": True,
            "state": state_payload,
            "next_step": outcome.state.step.value,
            "is_complete": outcome.finished,
            "dispatched": outcome.dispatched,
        }

    @app.get("/api/tasks/{task_id}")
    def get_task(request: Request, task_id: str) -> Dict[str, Any]:
        task = _context(request).orchestrator.get_task_status(task_id)
        if task is None:
            raise HTTPException(status_code=404, detail="task not found")
        return {"success": True, "task": _task_payload(task)}

    # ------------------------------------------------------------------
    # Scheduler
    # ------------------------------------------------------------------

    @app.get("/api/scheduler")
    def scheduler_status(request: Request) -> Dict[str, Any]:
        return {"success": True, "data": _context(request).scheduler.status().to_dict()}

    @app.post("/api/scheduler")
    async def scheduler_control(request: Request, payload: SchedulerPayload) -> Dict[str, Any]:
        scheduler = _context(request).scheduler
        if payload.action == "start":
            params = {"provider": payload.provider} if payload.provider else None
            status = await scheduler.start(payload.interval_seconds, params)
            return {"success": True, "data": status.to_dict()}
        if not await scheduler.stop():
            raise HTTPException(status_code=400, detail="scheduler is not running")
        return {"success": True, "data": scheduler.status().to_dict()}

    # ------------------------------------------------------------------
    # News sources
    # ------------------------------------------------------------------

    @app.get("/api/news-sources")
    def list_sources(request: Request) -> Dict[str, Any]:
        sources = _context(request).digest_store.list_sources()
        return {"success": True, "data": [source.model_dump(mode="json") for source in sources]}

    @app.post("/api/news-sources")
    def add_source(request: Request, payload: SourcePayload) -> Dict[str, Any]:
        source = _context(request).digest_store.add_source(payload.name, payload.url, payload.kind)
        return {"success": True, "data": source.model_dump(mode="json")}

    @app.get("/api/news-sources/{source_id}")
    def get_source(request: Request, source_id: str) -> Dict[str, Any]:
        source = _context(request).digest_store.get_source(source_id)
        if source is None:
            raise HTTPException(status_code=404, detail="source not found")
        return {"success": True, "data": source.model_dump(mode="json")}

    @app.put("/api/news-sources/{source_id}")
    def update_source(request: Request, source_id: str, payload: SourcePayload) -> Dict[str, Any]:
        source = _context(request).digest_store.update_source(source_id, payload.name, payload.url, payload.kind)
        if source is None:
            raise HTTPException(status_code=404, detail="source not found")
        return {"success": True, "data": source.model_dump(mode="json")}

    @app.delete("/api/news-sources/{source_id}")
    def delete_source(request: Request, source_id: str) -> Dict[str, Any]:
        if not _context(request).digest_store.delete_source(source_id):
            raise HTTPException(status_code=404, detail="source not found")
        return {"success": True}

    # ------------------------------------------------------------------
    # Digests
    # ------------------------------------------------------------------

    @app.get("/api/summaries")
    def list_summaries(request: Request, limit: int = 10) -> Dict[str, Any]:
        records = _context(request).digest_store.list_summary_records(limit=limit)
        return {"success": True, "data": [record.model_dump(mode="json") for record in records]}

    @app.get("/api/summaries/{record_id}")
    def get_summary(request: Request, record_id: str) -> Dict[str, Any]:
        record, items = _context(request).digest_store.get_summary_record_details(record_id)
        if record is None:
            raise HTTPException(status_code=404, detail="summary record not found")
        return {
            "success": True,
            "data": {
                "record": record.model_dump(mode="json"),
                "items": [item.model_dump(mode="json") for item in items],
            },
        }

    # ------------------------------------------------------------------
    # LLM routing
    # ------------------------------------------------------------------

    @app.get("/api/llm-config")
    def get_llm_config(request: Request) -> Dict[str, Any]:
        config = _context(request).provider_policy.routing_config()
        return {"success": True, "data": config.model_dump(), "supported_providers": list(SUPPORTED_PROVIDERS)}

    @app.put("/api/llm-config")
    def put_llm_config(request: Request, payload: LLMRoutingConfig) -> Dict[str, Any]:
        unknown: List[str] = [
            tag for tag in [payload.default_provider, *payload.provider_order] if tag not in SUPPORTED_PROVIDERS
        ]
        if unknown:
            raise HTTPException(status_code=400, detail=f"unsupported provider(s): {', '.join(unknown)}")
        try:
            saved = save_routing_config(_context(request).digest_store, payload)
        except StoreError as exc:
            logger.error("llm_config_save_failed error=%s", exc)
            raise HTTPException(status_code=500, detail="failed to save llm config") from exc
        return {"success": True, "data": saved.model_dump()}

    return app
