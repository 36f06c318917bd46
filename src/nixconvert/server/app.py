# server/app.py
from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field, ValidationError

from ..converter import Converter
from ..drone import DroneClient
from ..errors import ConversionError
from ..model import ConversionRequest
from ..settings import Settings
from .signature import SignatureError, verify_request

logger = logging.getLogger(__name__)

# -------------------- Schemas --------------------

class BuildInfo(BaseModel):
    event: str = ""
    ref: str = ""
    after: str = ""
    before: str = ""
    action: str = ""
    source: str = ""
    target: str = ""
    trigger: str = ""
    params: Optional[dict[str, str]] = None

class RepoInfo(BaseModel):
    namespace: str
    name: str
    slug: str = ""
    config: str = ""
    default_branch: str = ""

class ConfigData(BaseModel):
    data: str = ""

class ConvertRequest(BaseModel):
    build: BuildInfo = Field(default_factory=BuildInfo)
    repo: RepoInfo
    config: ConfigData = Field(default_factory=ConfigData)

    def to_conversion_request(self) -> ConversionRequest:
        return ConversionRequest(
            original_config=self.config.data,
            repo_namespace=self.repo.namespace,
            repo_name=self.repo.name,
            build_ref=self.build.ref,
            repo_branch=self.repo.default_branch,
            build_event=self.build.event,
            trigger_params=dict(self.build.params or {}),
            repo_config_path=self.repo.config,
            build_after=self.build.after,
            build_before=self.build.before,
            build_action=self.build.action,
            build_source=self.build.source,
            build_target=self.build.target,
            build_trigger=self.build.trigger,
        )

class ConfigResponse(BaseModel):
    data: str

# -------------------- Disconnect --------------------

DISCONNECT_POLL_INTERVAL = 0.5


async def watch_disconnect(request: Request, cancel: threading.Event, interval: float = DISCONNECT_POLL_INTERVAL) -> None:
    """Set `cancel` once the client has gone away."""
    while not cancel.is_set():
        if await request.is_disconnected():
            logger.info("client disconnected, cancelling conversion")
            cancel.set()
            return
        await asyncio.sleep(interval)

# -------------------- App --------------------

def create_app(settings: Settings, converter: Optional[Converter] = None) -> FastAPI:
    if converter is None:
        client = DroneClient(settings.server, settings.token, timeout=settings.http_timeout)
        converter = Converter(client, poll_interval=settings.poll_interval, timeout=settings.eval_timeout)

    app = FastAPI(title="nixconvert")

    @app.post("/", response_model=ConfigResponse)
    async def convert(request: Request) -> Any:
        body = await request.body()
        try:
            verify_request(settings.secret, request.method, request.url.path, request.headers, body)
        except SignatureError as e:
            logger.debug("rejected request: %s", e)
            raise HTTPException(status_code=e.status_code, detail=str(e))

        try:
            payload = ConvertRequest.model_validate_json(body)
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=f"invalid request: {e}")

        # conversion blocks while the evaluation build runs; a dropped client cancels it
        cancel = threading.Event()
        watcher = asyncio.create_task(watch_disconnect(request, cancel))
        try:
            result = await run_in_threadpool(converter.convert, payload.to_conversion_request(), cancel=cancel)
        except ConversionError as e:
            logger.error("conversion failed for %s/%s: %s", payload.repo.namespace, payload.repo.name, e)
            raise HTTPException(status_code=400, detail=str(e))
        finally:
            watcher.cancel()

        return ConfigResponse(data=result.data)

    @app.get("/healthz", response_class=PlainTextResponse)
    async def healthz() -> str:
        return "OK"

    return app
