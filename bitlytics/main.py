"""FastAPI application entry point for the short-link service.

Application Lifecycle Diagram
===========================
::
    ┌─────────────┐
    │  uvicorn    │
    │  startup    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ lifespan()  │
    │ startup:    │
    │ init_db()   │
    │ services    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Serve HTTP  │
    │ requests   │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ lifespan()  │
    │ shutdown:   │
    │ drain click │
    │ queue, close│
    │ Redis + DB  │
    └─────────────┘

How to Use
===========
**Run with uvicorn**::
    uvicorn bitlytics.main:app --host 0.0.0.0 --port 8080

**Make API calls**::
    curl -X POST http://localhost:8080/api/shorten \
         -H "Content-Type: application/json" \
         -d '{"url": "example.com"}'
    curl -i http://localhost:8080/<code>

Key Behaviours
===============
- Tables are created on startup.
- Queued click-tracking jobs get a bounded grace period on shutdown.
- Prometheus metrics are exposed at /metrics.
- /docs, /redoc, /health and /metrics are registered before the catch-all
  redirect route and are reserved as short codes.
"""

__all__ = ["app"]

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from bitlytics.config import get_settings
from bitlytics.database import close_db, init_db
from bitlytics.dependencies import _service_manager
from bitlytics.routes import router

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup
    await init_db()
    await _service_manager.initialize()
    _service_manager.task_queue.start()
    yield
    # Shutdown
    await _service_manager.cleanup()
    await close_db()


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="Short links with cache-first resolution and click analytics",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=False,
    should_respect_env_var=False,
).instrument(app).expose(app)

app.include_router(router)
