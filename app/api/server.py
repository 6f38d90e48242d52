from __future__ import annotations
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
import structlog
import uvicorn

from app.api.exception_handlers import setup_exception_handlers
from app.api.routes import RUNTIME_PREFIX, events_router, health_router, runtime_router
from app.config import RuntimeConfig
from app.controller.runtime_api import RuntimeApi
from core.runtime.event_store import EventStore

PROJECT_NAME = "Local Lambda Runtime Emulator"
VERSION = "0.1.0"

log = structlog.get_logger()


def create_app(store: Optional[EventStore] = None, config: Optional[RuntimeConfig] = None) -> FastAPI:
    """Build the HTTP surface around one shared EventStore."""
    cfg = config or RuntimeConfig()
    runtime = RuntimeApi(store=store, config=cfg)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log.info("http.start", function_arn=cfg.function_arn)
        yield
        runtime.close()
        log.info("http.stop")

    app = FastAPI(title=PROJECT_NAME, version=VERSION, lifespan=lifespan)
    app.state.runtime = runtime

    app.include_router(runtime_router, prefix=RUNTIME_PREFIX, tags=["Runtime API"])
    app.include_router(events_router, prefix="/runtime", tags=["Test Events"])
    app.include_router(health_router)

    setup_exception_handlers(app)
    return app


class RuntimeServer(uvicorn.Server):
    """
    uvicorn server that releases parked /invocation/next callers before it waits
    for in-flight requests to drain; lifespan shutdown only runs after that wait.
    """
    def __init__(self, config: uvicorn.Config, runtime: RuntimeApi):
        super().__init__(config)
        self.runtime = runtime

    async def shutdown(self, *args, **kwargs) -> None:
        self.runtime.close()
        await super().shutdown(*args, **kwargs)


def build_server(config: RuntimeConfig, store: Optional[EventStore] = None) -> RuntimeServer:
    app = create_app(store=store, config=config)
    uv_cfg = uvicorn.Config(app, host=config.host, port=config.port, log_config=None)
    return RuntimeServer(uv_cfg, app.state.runtime)
