from __future__ import annotations

import os
from typing import Any

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from taskmirror.config_manager import MASK, ConfigManager
from taskmirror.scheduler import SyncScheduler
from taskmirror.state_store import StateStore
from taskmirror.sync_engine import SyncEngine


class ConfigUpdateRequest(BaseModel):
    payload: dict[str, Any] = Field(default_factory=dict)


class AppContext:
    def __init__(self, config_path: str, state_path: str) -> None:
        self.config_manager = ConfigManager(config_path)
        self.state_store = StateStore(state_path)
        self.sync_engine = SyncEngine(self.config_manager, self.state_store)
        self.scheduler = SyncScheduler(self.sync_engine, self.config_manager)


def _sanitize_config_payload(payload: dict[str, Any], current: dict[str, Any]) -> dict[str, Any]:
    sanitized = dict(payload)
    current_secret = str(current.get("google", {}).get("client_secret", ""))

    google = sanitized.get("google")
    if isinstance(google, dict):
        secret = google.get("client_secret")
        if secret is not None:
            secret_text = str(secret).strip()
            if secret_text in {"", MASK}:
                if current_secret:
                    google.pop("client_secret", None)
                else:
                    google["client_secret"] = ""
        if not google:
            sanitized.pop("google", None)
    return sanitized


def create_app() -> FastAPI:
    config_path = os.getenv("TASKMIRROR_CONFIG_PATH", "config.yaml")
    state_path = os.getenv("TASKMIRROR_STATE_PATH", "data/state.db")
    context = AppContext(config_path=config_path, state_path=state_path)

    app = FastAPI(title="Taskmirror Admin", version="0.1.0")
    app.state.context = context

    @app.on_event("startup")
    def _startup() -> None:
        app.state.context.scheduler.start()

    @app.on_event("shutdown")
    def _shutdown() -> None:
        app.state.context.scheduler.stop()

    @app.get("/healthz")
    def healthz() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/config")
    def get_config() -> dict[str, Any]:
        return app.state.context.config_manager.masked()

    @app.put("/api/config")
    def put_config(request: ConfigUpdateRequest) -> dict[str, Any]:
        current = app.state.context.config_manager.load().to_dict()
        sanitized_payload = _sanitize_config_payload(request.payload, current)
        try:
            app.state.context.config_manager.update(sanitized_payload)
        except (TypeError, ValueError) as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {
            "message": "config updated",
            "config": app.state.context.config_manager.masked(),
        }

    @app.post("/api/sync/run")
    def run_sync() -> dict[str, Any]:
        result = app.state.context.sync_engine.run_once(trigger="manual")
        if result.status == "busy":
            raise HTTPException(status_code=409, detail=result.message)
        return {"message": "sync completed", "result": result.to_dict()}

    @app.post("/api/sync/trigger")
    def trigger_sync() -> dict[str, str]:
        app.state.context.scheduler.trigger_manual()
        return {"message": "sync triggered"}

    @app.get("/api/sync/status")
    def sync_status(limit: int = 20) -> dict[str, Any]:
        return {
            "running": app.state.context.sync_engine.running,
            "runs": app.state.context.state_store.recent_sync_runs(limit=limit),
        }

    @app.get("/api/audit/events")
    def audit_events(limit: int = 100, run_id: int | None = None) -> dict[str, Any]:
        return {"events": app.state.context.state_store.recent_audit_events(limit=limit, run_id=run_id)}

    return app
